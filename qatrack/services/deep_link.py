"""
Shareable suite links.

A link is the application address with ``?suite=<id>``. Opening it lands on
the suite's detail view; the parameter is removed from the address so a
reload does not navigate again.
"""

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

SUITE_PARAM = "suite"


def build_suite_link(base_url: str, suite_id: str) -> str:
    """Return ``base_url`` with ``suite=<id>`` set, other parameters kept."""
    parts = urlsplit(base_url or "/")
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != SUITE_PARAM]
    query.append((SUITE_PARAM, suite_id))
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), parts.fragment))


def strip_suite_param(url: str) -> str:
    """Remove the suite parameter, keeping everything else."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != SUITE_PARAM]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def resolve_suite_link(store, args) -> str | None:
    """Suite id named by the request arguments, or None when absent or unknown."""
    suite_id = args.get(SUITE_PARAM)
    if not suite_id:
        return None
    if store.get_test_suite(suite_id) is None:
        logger.info("Deep link to unknown suite %s ignored", suite_id, extra={"suite_id": suite_id})
        return None
    return suite_id
