from taskrelay.db.repositories.log_repository import TaskLogRepository
from taskrelay.db.repositories.task_repository import TaskFilters, TaskRepository
from taskrelay.db.repositories.user_repository import UserRepository

__all__ = [
    "TaskFilters",
    "TaskLogRepository",
    "TaskRepository",
    "UserRepository",
]
