from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from taskrelay.db.enums import LogAction, TaskRole, TaskStatus
from taskrelay.db.models import Task, User
from taskrelay.workflow.errors import ForbiddenError

logger = logging.getLogger(__name__)

REQUESTED_STATUS_ACTIONS: Mapping[TaskStatus, LogAction] = {
    TaskStatus.PENDING: LogAction.UPDATE,
    TaskStatus.COMPLETED: LogAction.MARK_COMPLETED,
    TaskStatus.FAILED: LogAction.MARK_FAILED,
    TaskStatus.APPROVED: LogAction.APPROVE,
    TaskStatus.REJECTED: LogAction.REJECT,
}

# A rejected task goes back to the pending pool; only the log remembers the rejection.
STORED_STATUS_FOR_REQUEST: Mapping[TaskStatus, TaskStatus] = {
    TaskStatus.PENDING: TaskStatus.PENDING,
    TaskStatus.COMPLETED: TaskStatus.COMPLETED,
    TaskStatus.FAILED: TaskStatus.FAILED,
    TaskStatus.APPROVED: TaskStatus.APPROVED,
    TaskStatus.REJECTED: TaskStatus.PENDING,
}

REQUIRED_ROLE_FOR_STATUS: Mapping[TaskStatus, TaskRole] = {
    TaskStatus.PENDING: TaskRole.ANYONE,
    TaskStatus.COMPLETED: TaskRole.ASSIGNEE,
    TaskStatus.FAILED: TaskRole.ASSIGNEE,
    TaskStatus.APPROVED: TaskRole.CREATOR,
    TaskStatus.REJECTED: TaskRole.CREATOR,
}


def _ensure_total(name: str, mapping: Mapping[TaskStatus, object]) -> None:
    missing = [status.value for status in TaskStatus if status not in mapping]
    if missing:
        raise RuntimeError(f"{name} has no entry for task status(es): {', '.join(missing)}")


_ensure_total("REQUESTED_STATUS_ACTIONS", REQUESTED_STATUS_ACTIONS)
_ensure_total("STORED_STATUS_FOR_REQUEST", STORED_STATUS_FOR_REQUEST)
_ensure_total("REQUIRED_ROLE_FOR_STATUS", REQUIRED_ROLE_FOR_STATUS)


def to_task_status(value: TaskStatus | str) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    return TaskStatus(str(value))


def action_for_requested_status(requested: TaskStatus) -> LogAction:
    return REQUESTED_STATUS_ACTIONS[requested]


def stored_status_for(requested: TaskStatus) -> TaskStatus:
    return STORED_STATUS_FOR_REQUEST[requested]


def required_role_for(requested: TaskStatus) -> TaskRole:
    return REQUIRED_ROLE_FOR_STATUS[requested]


def is_noop_status_change(
    current: TaskStatus,
    requested: TaskStatus,
    *,
    comment: str | None,
    images: Sequence[str] | None,
) -> bool:
    """Re-submitting the current status with nothing attached changes nothing."""
    return current == requested and not comment and not images


def actor_roles(task: Task, actor: User) -> frozenset[TaskRole]:
    roles = {TaskRole.ANYONE}
    if task.assignee_email == actor.email:
        roles.add(TaskRole.ASSIGNEE)
    if actor.id is not None and task.creator_id == actor.id:
        roles.add(TaskRole.CREATOR)
    return frozenset(roles)


def ensure_actor_may_request(task: Task, actor: User, requested: TaskStatus) -> None:
    """
    Check that the actor holds the role needed to request a status.

    Args:
        task: The task whose status would change.
        actor: The resolved acting user.
        requested: The status the actor asked for (before rejected folds to pending).

    Raises:
        ForbiddenError: If the actor is not the assignee (completed/failed) or
            not the creator (approved/rejected).
    """
    required = required_role_for(requested)
    if required in actor_roles(task, actor):
        return

    error_msg = f"Only the task {required.value} can mark a task '{requested.value}'."
    logger.warning(
        f"Status change denied: task={task.id} actor={actor.email} requested={requested.value}"
    )
    raise ForbiddenError(error_msg)
