"""File storage seam for content delivery.

Object storage itself is an external collaborator; the API only needs to turn
a content ``file_key`` into something it can stream.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Protocol

from config import settings

MEDIA_TYPE_BY_EXT = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".aiff": "audio/aiff",
    ".m4a": "audio/mp4",
    ".zip": "application/zip",
}


def safe_filename(name: str, default: str = "download") -> str:
    base = os.path.basename(name or default)
    cleaned = "".join(ch if ch.isalnum() or ch in {"-", "_", ".", " "} else "_" for ch in base).strip()
    return cleaned or default


def guess_media_type(file_key: str) -> str:
    return MEDIA_TYPE_BY_EXT.get(Path(file_key or "").suffix.lower(), "application/octet-stream")


class ContentFileStore(Protocol):
    def resolve(self, file_key: str) -> Optional[Path]:
        """Return a readable local path for ``file_key`` or None if it is missing."""


class LocalContentStore:
    """Serves content files from a directory on local disk."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def resolve(self, file_key: str) -> Optional[Path]:
        if not file_key:
            return None
        candidate = (self.root / file_key.lstrip("/")).resolve()
        if self.root not in candidate.parents:
            return None
        if not candidate.is_file():
            return None
        return candidate


def get_content_store() -> ContentFileStore:
    return LocalContentStore(settings.CONTENT_STORAGE_DIR)
