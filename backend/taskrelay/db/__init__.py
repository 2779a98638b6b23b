"""Database layer modules and public helpers."""

from taskrelay.db.enums import INITIAL_TASK_STATUS, LogAction, TaskRole, TaskStatus
from taskrelay.db.models import ContentEdit, LogEdit, Task, TaskLog, User
from taskrelay.db.session import get_session

__all__ = [
    "ContentEdit",
    "INITIAL_TASK_STATUS",
    "LogAction",
    "LogEdit",
    "Task",
    "TaskLog",
    "TaskRole",
    "TaskStatus",
    "User",
    "get_session",
]
