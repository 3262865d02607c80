"""
QA Track
Assistant module.

Submodules:
    - gateway: LLM Gateway (provider routing, function calling, retry)
    - assistant: QA assistant conversation and intent handlers
    - task_runner: background assistant requests with cancellation
"""
