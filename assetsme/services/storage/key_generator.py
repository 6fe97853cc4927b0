from __future__ import annotations

import logging
import re
import time
import unicodedata
from datetime import datetime, timezone
from typing import Callable

from assetsme.core.errors import ConflictError
from assetsme.services.storage.adapter import ObjectExistsError, StorageAdapter

logger = logging.getLogger(__name__)

EXTENSION_BY_MIME: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/svg+xml": "svg",
    "application/pdf": "pdf",
    "text/plain": "txt",
}

FALLBACK_BASE_NAME = "asset"
FALLBACK_EXTENSION = "bin"
MAX_SLUG_LENGTH = 100
MAX_EXTENSION_LENGTH = 16

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


class KeyGenerator:
    @staticmethod
    def split_filename(filename: str | None) -> tuple[str, str]:
        """Split a client filename into (stem, extension) without the dot."""
        name = re.split(r"[\\/]", filename or "")[-1]
        if "." not in name:
            return name, ""
        stem, ext = name.rsplit(".", 1)
        return stem, ext

    @staticmethod
    def slugify(value: str) -> str:
        ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
        slug = _NON_SLUG_RE.sub("-", ascii_value.lower()).strip("-")
        return slug[:MAX_SLUG_LENGTH].strip("-")

    @staticmethod
    def sanitize_extension(extension: str) -> str:
        return _NON_ALNUM_RE.sub("", extension.lower())[:MAX_EXTENSION_LENGTH]

    @staticmethod
    def resolve_extension(filename: str | None, mime: str | None) -> str:
        _, client_ext = KeyGenerator.split_filename(filename)
        extension = KeyGenerator.sanitize_extension(client_ext)
        if extension:
            return extension
        return EXTENSION_BY_MIME.get(mime or "", FALLBACK_EXTENSION)

    @staticmethod
    def timestamp_token(now: datetime | None = None) -> str:
        # Microsecond resolution keeps names apart across back-to-back uploads.
        return (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S%f")

    @staticmethod
    def build_file_name(filename: str | None, mime: str | None, *, now: datetime | None = None) -> str:
        stem, _ = KeyGenerator.split_filename(filename)
        base = KeyGenerator.slugify(stem) or FALLBACK_BASE_NAME
        extension = KeyGenerator.resolve_extension(filename, mime)
        return f"{base}-{KeyGenerator.timestamp_token(now)}.{extension}"

    @staticmethod
    def join_key(folder: str | None, file_name: str) -> str:
        return f"{folder}/{file_name}".lstrip("/") if folder else file_name


class PathAllocator:
    """Allocates unique storage keys inside a folder of the byte store."""

    def __init__(
        self,
        adapter: StorageAdapter,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.001,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.adapter = adapter
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _candidate(self, folder: str | None, filename: str | None, mime: str | None) -> tuple[str, str]:
        file_name = KeyGenerator.build_file_name(filename, mime, now=self._clock())
        return file_name, KeyGenerator.join_key(folder, file_name)

    def _exhausted(self, folder: str | None, filename: str | None) -> ConflictError:
        return ConflictError(
            "Could not allocate a unique file name; retry the upload.",
            details={"folder": folder, "original_name": filename, "attempts": self.max_attempts},
        )

    def store(
        self,
        folder: str | None,
        filename: str | None,
        mime: str | None,
        content: bytes,
    ) -> tuple[str, str]:
        """Allocate a key and write ``content`` to it with create-if-absent semantics.

        The existence check alone leaves a window between check and write; the
        exclusive write closes it, and a lost race simply draws a new name.
        """
        for attempt in range(1, self.max_attempts + 1):
            file_name, key = self._candidate(folder, filename, mime)
            if self.adapter.object_exists(key):
                logger.warning("Storage key collision on attempt %d", attempt, extra={"path": key})
                time.sleep(self.backoff_seconds)
                continue
            try:
                self.adapter.write_object(key, content, content_type=mime)
            except ObjectExistsError:
                logger.warning("Lost create race on attempt %d", attempt, extra={"path": key})
                time.sleep(self.backoff_seconds)
                continue
            return file_name, key
        raise self._exhausted(folder, filename)
