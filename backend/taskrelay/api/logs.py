from __future__ import annotations

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from taskrelay.api.dependencies import Actor, DbSession, Workflow
from taskrelay.api.errors import error_response_docs
from taskrelay.core.logging import bind_log_context

router = APIRouter(prefix="/logs", tags=["logs"])


class LogEditRequest(BaseModel):
    comment: str | None = None
    images: list[str] | None = None


@router.patch(
    "/{log_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=error_response_docs(
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN,
        status.HTTP_404_NOT_FOUND,
    ),
)
def edit_log_comment(
    log_id: int,
    payload: LogEditRequest,
    actor: Actor,
    session: DbSession,
    workflow: Workflow,
) -> Response:
    bind_log_context(log_id=log_id)
    workflow.edit_log_comment(
        session,
        actor,
        log_id=log_id,
        comment=payload.comment,
        images=payload.images,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
