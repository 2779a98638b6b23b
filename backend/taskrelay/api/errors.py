from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError

from taskrelay.core.logging import get_logger
from taskrelay.storage import (
    BlobAlreadyExistsError,
    BlobNotFoundError,
    InvalidStorageIdError,
    StorageError,
    UploadNotIssuedError,
    UploadTooLargeError,
)
from taskrelay.workflow import ForbiddenError, NotFoundError, ValidationFailure, WorkflowError

logger = get_logger("taskrelay.api.errors")

_CODE_BY_STATUS: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_413_CONTENT_TOO_LARGE: "PAYLOAD_TOO_LARGE",
    status.HTTP_422_UNPROCESSABLE_CONTENT: "VALIDATION_ERROR",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "INTERNAL_ERROR",
}

# First match wins, so subclasses go before their bases.
_WORKFLOW_STATUSES: tuple[tuple[type[WorkflowError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ValidationFailure, status.HTTP_422_UNPROCESSABLE_CONTENT),
)
_STORAGE_STATUSES: tuple[tuple[type[StorageError], int], ...] = (
    (BlobNotFoundError, status.HTTP_404_NOT_FOUND),
    (UploadNotIssuedError, status.HTTP_404_NOT_FOUND),
    (BlobAlreadyExistsError, status.HTTP_409_CONFLICT),
    (UploadTooLargeError, status.HTTP_413_CONTENT_TOO_LARGE),
    (InvalidStorageIdError, status.HTTP_422_UNPROCESSABLE_CONTENT),
)


class ValidationIssue(BaseModel):
    field: str
    message: str


class ErrorPayload(BaseModel):
    code: str
    message: str
    issues: list[ValidationIssue] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Envelope shared by every non-2xx response under ``/api/v1``."""

    error: ErrorPayload
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "FORBIDDEN",
                    "message": "Only the task assignee can mark a task 'completed'.",
                    "issues": [],
                }
            }
        }
    )


class ApiException(Exception):
    """Raised from route handlers for failures that are not workflow or storage errors."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        issues: list[ValidationIssue] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.issues = list(issues or [])


def code_for_status(status_code: int) -> str:
    return _CODE_BY_STATUS.get(status_code, "UNKNOWN_ERROR")


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown Error"


def _lookup_status(
    exc: Exception,
    table: tuple[tuple[type[Exception], int], ...],
    fallback: int,
) -> int:
    for exc_type, status_code in table:
        if isinstance(exc, exc_type):
            return status_code
    return fallback


def build_error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    issues: list[ValidationIssue] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorPayload(code=code, message=message, issues=issues or []))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _issues_from(exc: RequestValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            field=".".join(str(part) for part in error.get("loc", ())),
            message=str(error.get("msg", "Invalid value")),
        )
        for error in exc.errors()
    ]


async def _on_api_exception(_: Request, exc: ApiException) -> JSONResponse:
    return build_error_response(exc.status_code, exc.code, exc.message, issues=exc.issues)


async def _on_workflow_error(_: Request, exc: WorkflowError) -> JSONResponse:
    status_code = _lookup_status(exc, _WORKFLOW_STATUSES, status.HTTP_400_BAD_REQUEST)
    return build_error_response(status_code, exc.code, exc.message)


async def _on_storage_error(_: Request, exc: StorageError) -> JSONResponse:
    status_code = _lookup_status(exc, _STORAGE_STATUSES, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("storage.failure", error=str(exc))
    return build_error_response(status_code, code_for_status(status_code), str(exc))


async def _on_integrity_error(_: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("request.integrity_conflict", error=str(exc.orig))
    return build_error_response(
        status.HTTP_409_CONFLICT,
        "RESOURCE_CONFLICT",
        "Operation violates a database constraint.",
    )


async def _on_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
    return build_error_response(
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        "VALIDATION_ERROR",
        "Request validation failed.",
        issues=_issues_from(exc),
    )


async def _on_http_exception(_: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else _reason(exc.status_code)
    return build_error_response(exc.status_code, code_for_status(exc.status_code), detail)


async def _on_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "request.unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return build_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "Unexpected server error.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiException, _on_api_exception)  # type: ignore[arg-type]
    app.add_exception_handler(WorkflowError, _on_workflow_error)  # type: ignore[arg-type]
    app.add_exception_handler(StorageError, _on_storage_error)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _on_integrity_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _on_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _on_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _on_unexpected)


def error_response_docs(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """OpenAPI ``responses=`` entries showing the error envelope for each status."""
    docs: dict[int | str, dict[str, Any]] = {}
    for status_code in status_codes:
        reason = _reason(status_code)
        example = {"error": {"code": code_for_status(status_code), "message": reason, "issues": []}}
        docs[status_code] = {
            "model": ErrorResponse,
            "description": reason,
            "content": {"application/json": {"example": example}},
        }
    return docs
