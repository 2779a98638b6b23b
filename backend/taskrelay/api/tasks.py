from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from taskrelay.api.dependencies import Actor, DbSession, Workflow
from taskrelay.api.errors import ApiException, error_response_docs
from taskrelay.api.schemas import UtcDatetime
from taskrelay.api.users import UserRead
from taskrelay.core.logging import bind_log_context
from taskrelay.db.enums import LogAction, TaskStatus
from taskrelay.workflow import TaskDetail, TimelineEntry

router = APIRouter(prefix="/tasks", tags=["tasks"])


class ContentEditRead(BaseModel):
    content: str
    images: list[str] | None
    timestamp: UtcDatetime
    user_id: int
    model_config = ConfigDict(from_attributes=True)


class LogEditRead(BaseModel):
    comment: str | None
    images: list[str] | None
    timestamp: UtcDatetime
    model_config = ConfigDict(from_attributes=True)


class TaskRead(BaseModel):
    id: int
    content: str
    images: list[str] | None
    creator_id: int
    assignee_email: str
    assignee_id: int | None
    status: TaskStatus
    parent_id: int | None
    last_comment: str | None
    last_comment_images: list[str] | None
    creation_time: UtcDatetime
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 7,
                "content": "ship v1",
                "images": None,
                "creator_id": 1,
                "assignee_email": "b@x.com",
                "assignee_id": 2,
                "status": "pending",
                "parent_id": None,
                "last_comment": "try again",
                "last_comment_images": None,
                "creation_time": "2026-10-19T09:00:00Z",
            }
        },
    )


class TaskDetailRead(TaskRead):
    content_edits: list[ContentEditRead]
    creator: UserRead | None
    assignee: UserRead | None
    image_urls: list[str | None]

    @classmethod
    def from_detail(cls, detail: TaskDetail) -> TaskDetailRead:
        task = detail.task
        base = TaskRead.model_validate(task).model_dump()
        return cls(
            **base,
            content_edits=[ContentEditRead.model_validate(edit) for edit in task.content_history()],
            creator=UserRead.model_validate(detail.creator) if detail.creator else None,
            assignee=UserRead.model_validate(detail.assignee) if detail.assignee else None,
            image_urls=detail.image_urls,
        )


class LogEntryRead(BaseModel):
    id: int
    task_id: int
    user_id: int
    action: LogAction
    comment: str | None
    images: list[str] | None
    image_urls: list[str | None]
    timestamp: UtcDatetime
    edits: list[LogEditRead]
    user: UserRead | None

    @classmethod
    def from_entry(cls, entry: TimelineEntry) -> LogEntryRead:
        log = entry.log
        if log.id is None:
            raise RuntimeError("log entry primary key missing")
        return cls(
            id=log.id,
            task_id=log.task_id,
            user_id=log.user_id,
            action=log.action,
            comment=log.comment,
            images=log.images,
            image_urls=entry.image_urls,
            timestamp=log.timestamp,
            edits=[LogEditRead.model_validate(edit) for edit in log.edit_history()],
            user=UserRead.model_validate(entry.user) if entry.user else None,
        )


class TaskCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    assignee_email: str = Field(min_length=1, max_length=320)
    parent_id: int | None = Field(default=None, gt=0)
    images: list[str] | None = None
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": "ship v1",
                "assignee_email": "b@x.com",
                "parent_id": None,
                "images": ["3f2b9c0d4e5a6b7c8d9e0f1a2b3c4d5e"],
            }
        }
    )


class TaskCreated(BaseModel):
    id: int


class ContentEditRequest(BaseModel):
    content: str = Field(min_length=1)
    images: list[str] | None = None


class StatusChangeRequest(BaseModel):
    status: TaskStatus
    comment: str | None = None
    images: list[str] | None = None
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "failed",
                "comment": "blocked on X",
                "images": None,
            }
        }
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=TaskCreated,
    responses=error_response_docs(
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_409_CONFLICT,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
def create_task(
    payload: TaskCreateRequest,
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
) -> TaskCreated:
    task_id = workflow.create_task(
        session,
        actor,
        content=payload.content,
        assignee_email=payload.assignee_email,
        parent_id=payload.parent_id,
        images=payload.images,
    )
    return TaskCreated(id=task_id)


@router.get(
    "/assigned",
    response_model=list[TaskRead],
    responses=error_response_docs(status.HTTP_401_UNAUTHORIZED),
)
def list_assigned_tasks(
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
    status_filter: Annotated[str | None, Query(max_length=32)] = None,
    q: Annotated[str | None, Query(max_length=200)] = None,
) -> list[TaskRead]:
    tasks = workflow.list_tasks_assigned_to(
        session,
        actor.email,
        status_filter=status_filter,
        search_query=q,
    )
    return [TaskRead.model_validate(task) for task in tasks]


@router.get(
    "/created",
    response_model=list[TaskRead],
    responses=error_response_docs(status.HTTP_401_UNAUTHORIZED, status.HTTP_404_NOT_FOUND),
)
def list_created_tasks(
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
    status_filter: Annotated[str | None, Query(max_length=32)] = None,
    q: Annotated[str | None, Query(max_length=200)] = None,
) -> list[TaskRead]:
    tasks = workflow.list_tasks_created_by(
        session,
        actor.email,
        status_filter=status_filter,
        search_query=q,
    )
    return [TaskRead.model_validate(task) for task in tasks]


@router.get(
    "/{task_id}",
    response_model=TaskDetailRead,
    responses=error_response_docs(status.HTTP_404_NOT_FOUND),
)
def get_task(task_id: int, session: DbSession, workflow: Workflow) -> TaskDetailRead:
    detail = workflow.get_task(session, task_id)
    if detail is None:
        raise ApiException(
            status.HTTP_404_NOT_FOUND,
            "TASK_NOT_FOUND",
            f"Task {task_id} does not exist.",
        )
    return TaskDetailRead.from_detail(detail)


@router.get("/{task_id}/subtasks", response_model=list[TaskRead])
def list_subtasks(task_id: int, session: DbSession, workflow: Workflow) -> list[TaskRead]:
    return [TaskRead.model_validate(task) for task in workflow.get_subtasks(session, task_id)]


@router.get("/{task_id}/logs", response_model=list[LogEntryRead])
def list_task_logs(task_id: int, session: DbSession, workflow: Workflow) -> list[LogEntryRead]:
    return [
        LogEntryRead.from_entry(entry) for entry in workflow.get_task_timeline(session, task_id)
    ]


@router.patch(
    "/{task_id}/content",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=error_response_docs(
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
def edit_task_content(
    task_id: int,
    payload: ContentEditRequest,
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
) -> Response:
    bind_log_context(task_id=task_id)
    workflow.edit_task_content(
        session,
        actor,
        task_id=task_id,
        content=payload.content,
        images=payload.images,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{task_id}/status",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=error_response_docs(
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
def change_task_status(
    task_id: int,
    payload: StatusChangeRequest,
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
) -> Response:
    bind_log_context(task_id=task_id)
    workflow.change_task_status(
        session,
        actor,
        task_id=task_id,
        status=payload.status,
        comment=payload.comment,
        images=payload.images,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
