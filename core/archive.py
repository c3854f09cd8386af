"""Archive utilities for packaging named artifacts into zip files."""
from __future__ import annotations

import io
import logging
import os
import zipfile
from datetime import datetime
from typing import Iterable, Optional, Protocol

from core.filename_utils import sanitize_segment
from core.logging_utils import get_logger, log_with_context
from storage.models import utcnow

logger = get_logger(__name__)


class ArchiveEntry(Protocol):
    path: str
    content: str | bytes


def _as_bytes(content: str | bytes) -> bytes:
    if isinstance(content, bytes):
        return content
    return str(content).encode("utf-8")


def _write_entries(archive: zipfile.ZipFile, entries: Iterable[ArchiveEntry]) -> int:
    count = 0
    for entry in entries:
        archive.writestr(entry.path, _as_bytes(entry.content))
        count += 1
    return count


def build_zip_bytes(entries: Iterable[ArchiveEntry]) -> bytes:
    """Return an in-memory zip containing ``entries`` in order."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        _write_entries(archive, entries)
    return buffer.getvalue()


def write_zip_archive(entries: Iterable[ArchiveEntry], destination: str) -> str:
    """Write ``entries`` to a zip file at ``destination`` and return its path."""

    directory = os.path.dirname(destination)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        count = _write_entries(archive, entries)

    log_with_context(
        logger,
        level=logging.INFO,
        message="Wrote artifact archive",
        stage="ARCHIVE",
        path=destination,
        entries=count,
    )
    return destination


def archive_filename(
    conversation_name: Optional[str], created_at: Optional[datetime] = None
) -> str:
    """Download name for a conversation's archive."""

    base = sanitize_segment((conversation_name or "").strip()).strip("_.")
    if not base:
        stamp = (created_at or utcnow()).strftime("%Y%m%d_%H%M%S")
        base = f"conversation_{stamp}"
    if len(base) > 120:
        base = base[:120]
    return f"{base}_artifacts.zip"
