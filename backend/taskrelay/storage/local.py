from __future__ import annotations

import re
import secrets
from pathlib import Path
from typing import Final

from taskrelay.core.config import Settings
from taskrelay.core.logging import get_logger
from taskrelay.storage.types import (
    BlobAlreadyExistsError,
    BlobNotFoundError,
    InvalidStorageIdError,
    UploadHandle,
    UploadNotIssuedError,
    UploadTooLargeError,
)

DEFAULT_MAX_UPLOAD_BYTES: Final[int] = 10 * 1024 * 1024
_STORAGE_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{32}$")
_RESERVATION_SUFFIX: Final[str] = ".reserved"
logger = get_logger("taskrelay.storage.local")


class LocalFileStorage:
    """Blob store on the local filesystem.

    Storage ids are opaque 32-char hex tokens handed out by
    `request_upload_handle`; the bytes live in one flat directory under the
    configured root. Ids are validated before touching the filesystem so a
    caller-provided reference can never address a path outside the root.

    Issuing a handle leaves a reservation marker next to where the blob will go.
    A write needs that marker and consumes it, so each id takes exactly one upload
    and a stored blob is never replaced.
    """

    def __init__(
        self,
        *,
        root_path: str | Path,
        public_base_url: str,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        if max_upload_bytes <= 0:
            raise ValueError("max_upload_bytes must be greater than 0")
        self._root = Path(root_path).resolve()
        self._public_base_url = public_base_url.rstrip("/")
        self._max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> LocalFileStorage:
        return cls(
            root_path=settings.storage_root,
            public_base_url=settings.storage_public_base_url,
            max_upload_bytes=settings.max_upload_bytes,
        )

    @property
    def root_path(self) -> Path:
        return self._root

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    def request_upload_handle(self) -> UploadHandle:
        storage_id = secrets.token_hex(16)
        self._root.mkdir(parents=True, exist_ok=True)
        self._reservation_path(storage_id).touch(exist_ok=False)
        return UploadHandle(storage_id=storage_id, upload_url=self._url_for(storage_id))

    def write(self, storage_id: str, data: bytes) -> int:
        path = self._blob_path(storage_id)
        if len(data) > self._max_upload_bytes:
            raise UploadTooLargeError(
                f"Upload exceeds quota: {len(data)} bytes > max_bytes={self._max_upload_bytes}."
            )
        if path.exists():
            raise BlobAlreadyExistsError(f"Blob '{storage_id}' is already stored.")
        reservation = self._reservation_path(storage_id)
        if not reservation.is_file():
            raise UploadNotIssuedError(f"No upload handle was issued for '{storage_id}'.")

        try:
            with path.open("xb") as blob:
                blob.write(data)
        except FileExistsError as exc:
            raise BlobAlreadyExistsError(f"Blob '{storage_id}' is already stored.") from exc
        except OSError:
            path.unlink(missing_ok=True)
            raise
        reservation.unlink(missing_ok=True)
        logger.info("storage.blob.written", storage_id=storage_id, size_bytes=len(data))
        return len(data)

    def read(self, storage_id: str) -> bytes:
        path = self._blob_path(storage_id)
        if not path.is_file():
            raise BlobNotFoundError(f"No blob stored for '{storage_id}'.")
        return path.read_bytes()

    def exists(self, storage_id: str) -> bool:
        try:
            return self._blob_path(storage_id).is_file()
        except InvalidStorageIdError:
            return False

    def resolve(self, reference: str) -> str | None:
        if not self.exists(reference):
            return None
        return self._url_for(reference)

    def _url_for(self, storage_id: str) -> str:
        return f"{self._public_base_url}/{storage_id}"

    def _blob_path(self, storage_id: str) -> Path:
        if not _STORAGE_ID_PATTERN.fullmatch(storage_id):
            raise InvalidStorageIdError(f"Invalid storage id: {storage_id!r}")
        return self._root / storage_id

    def _reservation_path(self, storage_id: str) -> Path:
        return self._blob_path(storage_id).with_name(storage_id + _RESERVATION_SUFFIX)
