from taskrelay.storage.local import LocalFileStorage
from taskrelay.storage.types import (
    BlobAlreadyExistsError,
    BlobNotFoundError,
    FileStorage,
    InvalidStorageIdError,
    StorageError,
    UploadHandle,
    UploadNotIssuedError,
    UploadTooLargeError,
)

__all__ = [
    "BlobAlreadyExistsError",
    "BlobNotFoundError",
    "FileStorage",
    "InvalidStorageIdError",
    "LocalFileStorage",
    "StorageError",
    "UploadHandle",
    "UploadNotIssuedError",
    "UploadTooLargeError",
]
