from __future__ import annotations


class WorkflowError(Exception):
    """Base class for failures a workflow operation reports to its caller."""

    default_code = "WORKFLOW_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class NotFoundError(WorkflowError):
    """A referenced user, task or log entry does not exist."""

    default_code = "NOT_FOUND"


class ForbiddenError(WorkflowError):
    """The actor lacks the role the requested mutation needs."""

    default_code = "FORBIDDEN"


class ValidationFailure(WorkflowError):
    """A required field is missing or blank."""

    default_code = "VALIDATION_ERROR"
