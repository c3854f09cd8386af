"""Formatting helpers for Telegram messages."""
from __future__ import annotations

from typing import Any, Iterable

from bot import texts
from core.export_service import ExportResult
from storage.models import ExportStatus, LayoutPolicy


def _normalize_enum(value: Any, enum_cls):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def format_export_caption(
    result: ExportResult, layout: LayoutPolicy | str, *, max_depth: int
) -> str:
    """Caption sent with the archive document."""

    layout_enum = _normalize_enum(layout, LayoutPolicy)
    lines = [
        texts.EXPORT_CAPTION.format(
            count=result.artifact_count,
            messages=result.messages_visited,
            layout=texts.layout_label(layout_enum.value if layout_enum else None),
        )
    ]
    if result.depth_limit_hit:
        lines.append(texts.EXPORT_DEPTH_WARNING.format(max_depth=max_depth))
    return "\n".join(lines)


def format_run_line(run: Any) -> str:
    status = _normalize_enum(getattr(run, "status", None), ExportStatus)
    status_text = texts.status_label(status.value if status else None)
    if status == ExportStatus.FAILED and getattr(run, "error_type", None):
        status_text = f"{status_text} ({run.error_type})"
    name = getattr(run, "conversation_name", None) or getattr(run, "source_name", None) or "-"
    return texts.HISTORY_LINE.format(
        run_id=run.id,
        name=name,
        count=getattr(run, "artifact_count", 0) or 0,
        status_label=status_text,
    )


def format_history(runs: Iterable[Any]) -> str:
    lines = [format_run_line(run) for run in runs]
    if not lines:
        return texts.HISTORY_EMPTY
    return texts.HISTORY_HEADER + "\n".join(lines)
