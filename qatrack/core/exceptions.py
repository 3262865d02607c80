"""
Exception hierarchy shared by every QA Track service.

Services raise these types; blueprints register handlers against them once
and answer consistent HTTP status codes everywhere.

Usage:
    from qatrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestSuite", resource_id=suite_id)
    raise ValidationError("Unknown step verdict", details={"result": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    The store itself treats unknown ids as silent no-ops; this exception is
    raised by the service and HTTP layers that need an explicit answer.

    Args:
        resource: Human-readable entity name (e.g. "TestCase", "TestSuite").
        resource_id: The id that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Examples: an unknown step verdict, an out-of-range step index, an action
    on an execution session that was already committed.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AssistantError(Exception):
    """Raised when the assistant cannot turn a model reply into store actions.

    Covers transport failures surfaced by the LLM gateway as well as replies
    whose function-call arguments do not have the expected shape. Caught at
    the assistant boundary and reported as an inline assistant message.
    """
