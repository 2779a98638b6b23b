from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from taskrelay.api.dependencies import DbSession, Workflow
from taskrelay.api.errors import ApiException, error_response_docs
from taskrelay.api.schemas import UtcDatetime

router = APIRouter(prefix="/users", tags=["users"])


class UserRead(BaseModel):
    id: int
    email: str
    name: str | None
    picture: str | None
    created_at: UtcDatetime
    model_config = ConfigDict(from_attributes=True)


class UserSyncRequest(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    name: str | None = Field(default=None, max_length=200)
    picture: str | None = Field(default=None, max_length=1024)
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "a@x.com",
                "name": "Ada",
                "picture": "https://cdn.example.com/ada.png",
            }
        }
    )


@router.post(
    "/sync",
    response_model=UserRead,
    responses=error_response_docs(status.HTTP_422_UNPROCESSABLE_CONTENT),
)
def sync_user(payload: UserSyncRequest, session: DbSession, workflow: Workflow) -> UserRead:
    user = workflow.sync_user(
        session,
        email=payload.email,
        name=payload.name,
        picture=payload.picture,
    )
    return UserRead.model_validate(user)


@router.get(
    "/by-email",
    response_model=UserRead,
    responses=error_response_docs(
        status.HTTP_404_NOT_FOUND,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
def get_user_by_email(
    email: Annotated[str, Query(min_length=1, max_length=320)],
    session: DbSession,
    workflow: Workflow,
) -> UserRead:
    user = workflow.get_user_by_email(session, email)
    if user is None:
        raise ApiException(
            status.HTTP_404_NOT_FOUND,
            "USER_NOT_FOUND",
            f"User not found: {email.strip()}",
        )
    return UserRead.model_validate(user)
