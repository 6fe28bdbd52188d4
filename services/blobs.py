"""Photo blob storage with size-based eviction."""
from __future__ import annotations

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from werkzeug.utils import secure_filename

from data_paths import uploads_dir

LOGGER = logging.getLogger(__name__)

CLEANUP_THRESHOLD_RATIO = 0.9
TARGET_RATIO = 0.85


class BlobError(RuntimeError):
    """Raised when a blob cannot be stored or removed."""


@dataclass(frozen=True)
class BlobInfo:
    pathname: str
    url: str
    size: int
    uploaded_at: datetime


class LocalBlobStore:
    """Stores blobs as files in a directory and serves them under ``url_prefix``."""

    def __init__(self, root: Optional[Path] = None, *, url_prefix: str = "/uploads") -> None:
        self._root = Path(root) if root else None
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        if self._root is None:
            return uploads_dir()
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root

    def _url_for(self, pathname: str) -> str:
        return f"{self._url_prefix}/{pathname}"

    def put(self, filename: str, data: bytes) -> BlobInfo:
        safe_name = secure_filename(filename) or "upload.jpg"
        stem, dot, extension = safe_name.rpartition(".")
        if not dot:
            stem, extension = safe_name, "jpg"
        pathname = f"{stem}-{uuid.uuid4().hex[:8]}.{extension}"
        target = self.root / pathname
        try:
            target.write_bytes(data)
        except OSError as exc:
            raise BlobError(f"Could not write {pathname}: {exc}") from exc
        return self._info(target)

    def _info(self, path: Path) -> BlobInfo:
        stat = path.stat()
        return BlobInfo(
            pathname=path.name,
            url=self._url_for(path.name),
            size=stat.st_size,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def list(self) -> List[BlobInfo]:
        return [self._info(path) for path in sorted(self.root.iterdir()) if path.is_file()]

    def delete(self, blob: BlobInfo) -> None:
        try:
            (self.root / blob.pathname).unlink(missing_ok=True)
        except OSError as exc:
            raise BlobError(f"Could not delete {blob.pathname}: {exc}") from exc


def enforce_storage_limit(store: LocalBlobStore, limit_bytes: int) -> List[BlobInfo]:
    """Evict oldest blobs once usage passes 90% of the limit, down to 85%.

    Failures are logged and stop the sweep; they never propagate.
    """

    removed: List[BlobInfo] = []
    try:
        blobs = store.list()
        total = sum(blob.size for blob in blobs)
        LOGGER.info("Current blob storage: %.2f MB", total / 1024 / 1024)
        if total <= limit_bytes * CLEANUP_THRESHOLD_RATIO:
            return removed
        LOGGER.info("Storage threshold exceeded. Starting cleanup...")
        for blob in sorted(blobs, key=lambda entry: entry.uploaded_at):
            if total <= limit_bytes * TARGET_RATIO:
                break
            LOGGER.info("Deleting old image: %s (%.2f KB)", blob.pathname, blob.size / 1024)
            store.delete(blob)
            total -= blob.size
            removed.append(blob)
    except (BlobError, OSError) as exc:
        LOGGER.error("Blob cleanup error: %s", exc)
    return removed


def decode_data_url(data: str) -> bytes:
    """Decode a ``data:<mime>;base64,...`` string or bare base64."""
    encoded = data.split(";base64,")[-1]
    if not encoded:
        raise ValueError("No image data")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 image data: {exc}") from exc


def upload_photo(store: LocalBlobStore, data: str, filename: str, limit_bytes: int) -> Optional[str]:
    """Store an inline image and return its URL, or ``None`` when it cannot be stored."""
    try:
        blob = store.put(filename, decode_data_url(data))
    except (BlobError, ValueError) as exc:
        LOGGER.error("Photo upload failed: %s", exc)
        return None
    enforce_storage_limit(store, limit_bytes)
    return blob.url
