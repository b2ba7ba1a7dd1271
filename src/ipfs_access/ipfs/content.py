"""Content helpers: format sniffing and best-effort parsing of fetched bytes."""

from __future__ import annotations

import json
from typing import Any

import filetype

from ipfs_access.models.records import FileType


def detect_type(data: bytes) -> FileType | None:
    """Classify ``data`` by its magic bytes. None when the format is unknown."""
    if not data:
        return None
    kind = filetype.guess(data)
    if kind is None:
        return None
    return FileType(mime=kind.mime, extension=kind.extension)


def parse_content(data: bytes) -> Any:
    """JSON value when ``data`` is valid JSON, otherwise the decoded text."""
    text = data.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text
