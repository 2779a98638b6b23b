from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class StorageError(RuntimeError):
    """Base exception for blob storage failures."""


class InvalidStorageIdError(StorageError):
    """Raised when a storage id does not look like one this storage issued."""


class BlobNotFoundError(StorageError):
    """Raised when no bytes were uploaded for a storage id."""


class UploadTooLargeError(StorageError):
    """Raised when an upload exceeds the configured byte quota."""


class UploadNotIssuedError(StorageError):
    """Raised when bytes arrive for a storage id no upload handle was issued for."""


class BlobAlreadyExistsError(StorageError):
    """Raised on a second upload to a storage id; blobs are write-once."""


@dataclass(frozen=True, slots=True)
class UploadHandle:
    storage_id: str
    upload_url: str


class FileStorage(Protocol):
    def request_upload_handle(self) -> UploadHandle: ...

    def resolve(self, reference: str) -> str | None: ...
