from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    APPROVED = "approved"
    REJECTED = "rejected"


class LogAction(StrEnum):
    CREATE = "create"
    ASSIGN = "assign"
    MARK_COMPLETED = "mark_completed"
    MARK_FAILED = "mark_failed"
    APPROVE = "approve"
    REJECT = "reject"
    COMMENT = "comment"
    UPDATE = "update"


class TaskRole(StrEnum):
    """Who a requested status change must come from, relative to the task."""

    ASSIGNEE = "assignee"
    CREATOR = "creator"
    ANYONE = "anyone"


INITIAL_TASK_STATUS = TaskStatus.PENDING
