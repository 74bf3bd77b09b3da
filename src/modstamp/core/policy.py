"""Rules deciding whether a document may receive a timestamp write."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from ..services.settings import Settings

__all__ = ["BlockReason", "blocking_reason", "should_write", "is_in_excluded_folder"]


class BlockReason(Enum):
    """Why a write was refused."""

    MISSING_FIELD = "missing_field"
    EXCLUDED_BY_FIELD = "excluded_by_field"
    EXCLUDED_FOLDER = "excluded_folder"


def blocking_reason(
    metadata: Mapping[str, Any] | None,
    settings: Settings,
    document_path: str,
) -> BlockReason | None:
    """Return the first rule that blocks a write, or ``None`` when writing is allowed.

    Must be evaluated when the write is about to happen: metadata can change
    while a debounce timer is pending.
    """

    frontmatter = metadata or {}
    if settings.only_update_existing and settings.frontmatter_property not in frontmatter:
        return BlockReason.MISSING_FIELD
    if settings.exclude_field and frontmatter.get(settings.exclude_field):
        return BlockReason.EXCLUDED_BY_FIELD
    if is_in_excluded_folder(document_path, settings.excluded_folders):
        return BlockReason.EXCLUDED_FOLDER
    return None


def should_write(
    metadata: Mapping[str, Any] | None,
    settings: Settings,
    document_path: str,
) -> bool:
    return blocking_reason(metadata, settings, document_path) is None


def is_in_excluded_folder(document_path: str, folders: list[str]) -> bool:
    # A folder excludes everything beneath it, but not siblings sharing its name as a prefix.
    return any(document_path.startswith(folder + "/") for folder in folders if folder)
