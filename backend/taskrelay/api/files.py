from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from taskrelay.api.dependencies import Storage, Workflow
from taskrelay.api.errors import ApiException, error_response_docs
from taskrelay.core.logging import get_logger
from taskrelay.storage import UploadTooLargeError

router = APIRouter(prefix="/files", tags=["files"])
logger = get_logger("taskrelay.api.files")


class UploadHandleRead(BaseModel):
    storage_id: str
    upload_url: str


class UploadResultRead(BaseModel):
    storage_id: str
    size_bytes: int


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def _read_capped(request: Request, max_bytes: int) -> bytes:
    """Collect the request body, failing as soon as it grows past ``max_bytes``.

    Chunked uploads carry no Content-Length, so the running count is the only guard.
    """
    received = bytearray()
    async for chunk in request.stream():
        received.extend(chunk)
        if len(received) > max_bytes:
            raise UploadTooLargeError(
                f"Upload exceeds quota: more than max_bytes={max_bytes} bytes received."
            )
    return bytes(received)


@router.post("/upload-url", response_model=UploadHandleRead)
def create_upload_url(workflow: Workflow) -> UploadHandleRead:
    handle = workflow.request_upload_handle()
    return UploadHandleRead(storage_id=handle.storage_id, upload_url=handle.upload_url)


@router.put(
    "/{storage_id}",
    response_model=UploadResultRead,
    responses=error_response_docs(
        status.HTTP_404_NOT_FOUND,
        status.HTTP_409_CONFLICT,
        status.HTTP_413_CONTENT_TOO_LARGE,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
async def upload_file(storage_id: str, request: Request, storage: Storage) -> UploadResultRead:
    declared = _declared_length(request)
    if declared is not None and declared > storage.max_upload_bytes:
        raise ApiException(
            status.HTTP_413_CONTENT_TOO_LARGE,
            "PAYLOAD_TOO_LARGE",
            f"Upload exceeds quota: {declared} bytes > max_bytes={storage.max_upload_bytes}.",
        )
    data = await _read_capped(request, storage.max_upload_bytes)
    size_bytes = await asyncio.to_thread(storage.write, storage_id, data)
    return UploadResultRead(storage_id=storage_id, size_bytes=size_bytes)


@router.get(
    "/{storage_id}",
    response_class=Response,
    responses=error_response_docs(
        status.HTTP_404_NOT_FOUND,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
)
def download_file(storage_id: str, storage: Storage) -> Response:
    data = storage.read(storage_id)
    return Response(content=data, media_type="application/octet-stream")
