from __future__ import annotations

import logging
import re
from uuid import UUID

from assetsme.core.errors import ConflictError, InputError
from assetsme.repositories.folders import FolderNameConflict, FolderRepository

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_LEVEL = "private"

_FOLDER_RE = re.compile(r"^[a-zA-Z0-9_/\-]+$")
_PATH_RE = re.compile(r"^[a-zA-Z0-9_.\-/]+$")


def normalize_folder(folder: str | None) -> str | None:
    """Trim a folder string and strip surrounding slashes; ``None`` means root."""
    if folder is None:
        return None
    folder = folder.strip().strip("/")
    if folder == "":
        return None
    if not _FOLDER_RE.match(folder):
        raise InputError(
            "Folder may only contain letters, numbers, slashes, dashes, and underscores.",
            details={"folder": folder},
        )
    return folder


def normalize_path(path: str | None) -> str:
    normalized = (path or "").strip().lstrip("/")
    if normalized == "" or ".." in normalized:
        raise InputError("The path provided is invalid.", details={"path": path})
    if not _PATH_RE.match(normalized):
        raise InputError(
            "Path may only contain letters, numbers, dots, slashes, dashes, and underscores.",
            details={"path": path},
        )
    return normalized


def folder_segments(folder_path: str | None) -> list[str]:
    if folder_path is None:
        return []
    return [segment for segment in folder_path.strip().strip("/").split("/") if segment.strip()]


async def resolve_folder_id(
    repository: FolderRepository,
    folder_path: str | None,
    owner_id: str,
    *,
    access_level: str = DEFAULT_ACCESS_LEVEL,
    max_attempts: int = 3,
) -> UUID | None:
    """Walk ``a/b/c`` from the root, creating missing segments, and return the last id.

    A sibling created concurrently by another request surfaces as a name
    conflict; the lookup is retried so both callers converge on the same row.
    """
    current_parent_id: UUID | None = None
    for segment in folder_segments(folder_path):
        current_parent_id = await _get_or_create_child(
            repository,
            segment,
            current_parent_id,
            owner_id,
            access_level=access_level,
            max_attempts=max_attempts,
        )
    return current_parent_id


async def _get_or_create_child(
    repository: FolderRepository,
    name: str,
    parent_id: UUID | None,
    owner_id: str,
    *,
    access_level: str,
    max_attempts: int,
) -> UUID:
    for attempt in range(1, max(1, max_attempts) + 1):
        existing = await repository.find_child(name, parent_id)
        if existing is not None:
            return existing.id
        try:
            created = await repository.create(
                name=name,
                parent_id=parent_id,
                owner_id=owner_id,
                access_level=access_level,
            )
        except FolderNameConflict:
            logger.warning(
                "Folder name conflict for %r on attempt %d, re-reading", name, attempt,
                extra={"folder_id": str(parent_id) if parent_id else None},
            )
            continue
        logger.info("Created folder %r", name, extra={"folder_id": str(created.id)})
        return created.id
    raise ConflictError(
        "Folder could not be resolved due to concurrent updates; retry the request.",
        details={"folder": name, "attempts": max_attempts},
    )
