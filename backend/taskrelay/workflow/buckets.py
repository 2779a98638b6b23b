from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum

from taskrelay.db.enums import TaskStatus
from taskrelay.db.models import Task
from taskrelay.workflow.state_machine import to_task_status


class TaskListView(StrEnum):
    ASSIGNED = "assigned"
    CREATED = "created"


class StatusBucket(StrEnum):
    ALL = "all"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    REVIEW = "review"


# The same bucket name covers different statuses for assignees and creators:
# an assignee is done once they complete, a creator only once they approve.
ASSIGNED_STATUS_BUCKETS: Mapping[str, frozenset[TaskStatus]] = {
    StatusBucket.COMPLETED: frozenset({TaskStatus.COMPLETED, TaskStatus.APPROVED}),
    StatusBucket.INCOMPLETE: frozenset(
        {TaskStatus.PENDING, TaskStatus.FAILED, TaskStatus.REJECTED}
    ),
}

CREATED_STATUS_BUCKETS: Mapping[str, frozenset[TaskStatus]] = {
    StatusBucket.REVIEW: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    StatusBucket.INCOMPLETE: frozenset({TaskStatus.PENDING, TaskStatus.REJECTED}),
    StatusBucket.COMPLETED: frozenset({TaskStatus.APPROVED}),
}

_BUCKETS_BY_VIEW: Mapping[TaskListView, Mapping[str, frozenset[TaskStatus]]] = {
    TaskListView.ASSIGNED: ASSIGNED_STATUS_BUCKETS,
    TaskListView.CREATED: CREATED_STATUS_BUCKETS,
}


def statuses_for_bucket(view: TaskListView, bucket: str | None) -> frozenset[TaskStatus] | None:
    """Statuses a bucket selects in a view, or None when the bucket does not filter."""
    if not bucket:
        return None
    return _BUCKETS_BY_VIEW[view].get(bucket)


def filter_by_bucket(tasks: Iterable[Task], view: TaskListView, bucket: str | None) -> list[Task]:
    statuses = statuses_for_bucket(view, bucket)
    if statuses is None:
        return list(tasks)
    return [task for task in tasks if to_task_status(task.status) in statuses]
