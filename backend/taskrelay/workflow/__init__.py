from taskrelay.workflow.actor import ActorContext, normalize_email
from taskrelay.workflow.buckets import (
    ASSIGNED_STATUS_BUCKETS,
    CREATED_STATUS_BUCKETS,
    StatusBucket,
    TaskListView,
    filter_by_bucket,
    statuses_for_bucket,
)
from taskrelay.workflow.errors import (
    ForbiddenError,
    NotFoundError,
    ValidationFailure,
    WorkflowError,
)
from taskrelay.workflow.failure_injection import (
    FailureInjectionRule,
    FailureInjectorStub,
    FailureMode,
    InjectedAbortError,
    InjectedCrashError,
)
from taskrelay.workflow.service import (
    CONTENT_UPDATED_COMMENT,
    FAILURE_POINT_AFTER_TASK_WRITE,
    FAILURE_POINT_BEFORE_COMMIT,
    TaskDetail,
    TaskWorkflowService,
    TimelineEntry,
)
from taskrelay.workflow.state_machine import (
    REQUESTED_STATUS_ACTIONS,
    REQUIRED_ROLE_FOR_STATUS,
    STORED_STATUS_FOR_REQUEST,
    action_for_requested_status,
    ensure_actor_may_request,
    is_noop_status_change,
    stored_status_for,
)

__all__ = [
    "ASSIGNED_STATUS_BUCKETS",
    "ActorContext",
    "CONTENT_UPDATED_COMMENT",
    "CREATED_STATUS_BUCKETS",
    "FAILURE_POINT_AFTER_TASK_WRITE",
    "FAILURE_POINT_BEFORE_COMMIT",
    "FailureInjectionRule",
    "FailureInjectorStub",
    "FailureMode",
    "ForbiddenError",
    "InjectedAbortError",
    "InjectedCrashError",
    "NotFoundError",
    "REQUESTED_STATUS_ACTIONS",
    "REQUIRED_ROLE_FOR_STATUS",
    "STORED_STATUS_FOR_REQUEST",
    "StatusBucket",
    "TaskDetail",
    "TaskListView",
    "TaskWorkflowService",
    "TimelineEntry",
    "ValidationFailure",
    "WorkflowError",
    "action_for_requested_status",
    "ensure_actor_may_request",
    "filter_by_bucket",
    "is_noop_status_change",
    "normalize_email",
    "statuses_for_bucket",
    "stored_status_for",
]
