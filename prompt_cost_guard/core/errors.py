"""
Error taxonomy for budget governance and prompt optimization.

Budget rejections are returned as values (BudgetApproval with approved=False),
so BudgetExceeded is only raised by caller layers that cannot continue.
"""


class InvalidConfiguration(ValueError):
    """Raised when a cost or budget configuration fails validation."""


class BudgetExceeded(Exception):
    """Raised by caller layers when a request is rejected by the budget."""

    def __init__(self, message: str, reason: str = ""):
        super().__init__(message)
        self.reason = reason or message


class UnknownAllocation(KeyError):
    """Usage was reported for a request id with no live allocation."""

    def __init__(self, request_id: str):
        super().__init__(request_id)
        self.request_id = request_id

    def __str__(self) -> str:
        return f"No allocation found for request {self.request_id}"


class NoTemplateFound(LookupError):
    """No catalog template matches the requested tool and task type."""

    def __init__(self, tool_name: str, task_type: str):
        super().__init__(f"No templates found for tool: {tool_name}, task: {task_type}")
        self.tool_name = tool_name
        self.task_type = task_type


class OptimizationFailure(RuntimeError):
    """An optimization step failed; optimize() reports it as success=False."""
