from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request, status
from sqlmodel import Session

from taskrelay.api.errors import ApiException
from taskrelay.core.auth import USER_EMAIL_HEADER, extract_user_email
from taskrelay.core.logging import bind_log_context
from taskrelay.db.session import get_session
from taskrelay.storage import LocalFileStorage
from taskrelay.workflow import ActorContext, TaskWorkflowService


def get_workflow_service(request: Request) -> TaskWorkflowService:
    return request.app.state.workflow_service


def get_file_storage(request: Request) -> LocalFileStorage:
    return request.app.state.file_storage


def get_actor(request: Request) -> ActorContext:
    email = extract_user_email(request)
    if email is None:
        raise ApiException(
            status.HTTP_401_UNAUTHORIZED,
            "UNAUTHORIZED",
            f"Missing {USER_EMAIL_HEADER} header.",
        )
    trace_id = getattr(request.state, "trace_id", None)
    bind_log_context(actor=email)
    return ActorContext.for_email(email, trace_id=trace_id)


DbSession = Annotated[Session, Depends(get_session)]
Workflow = Annotated[TaskWorkflowService, Depends(get_workflow_service)]
Storage = Annotated[LocalFileStorage, Depends(get_file_storage)]
Actor = Annotated[ActorContext, Depends(get_actor)]
