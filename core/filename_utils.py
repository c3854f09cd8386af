from __future__ import annotations

import re

from storage.models import LayoutPolicy

_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9._-]+")
_SEPARATORS = re.compile(r"[\\/]")


def sanitize_segment(segment: str | None) -> str:
    """Return a filesystem-safe token for a single path segment.

    Every run of characters outside ``[A-Za-z0-9._-]`` becomes one ``_``.
    Leading and trailing underscores are kept, and an empty segment stays
    empty so callers can decide on their own placeholder.
    """

    if segment is None:
        return ""
    if not isinstance(segment, str):
        segment = str(segment)
    return _UNSAFE_RUN.sub("_", segment)


def _is_dot_segment(segment: str) -> bool:
    return bool(segment) and set(segment) == {"."}


def split_title(raw_title: str | None) -> tuple[list[str], str]:
    """Split a raw title into sanitized directory segments and a leaf name.

    Empty and dot-only directory segments are dropped; a dot-only leaf
    becomes ``_`` so no ``.`` or ``..`` component reaches an archive path.
    """

    if not raw_title:
        return [], ""
    if not isinstance(raw_title, str):
        raw_title = str(raw_title)

    segments = [sanitize_segment(part) for part in _SEPARATORS.split(raw_title)]
    leaf = segments.pop()
    directories = [part for part in segments if part and not _is_dot_segment(part)]
    if _is_dot_segment(leaf):
        leaf = "_"
    return directories, leaf


def _undot(filename: str) -> str:
    return "_" if _is_dot_segment(filename) else filename


def index_prefix(ordinal_index: int | None) -> str:
    if ordinal_index is None:
        return ""
    return f"{ordinal_index + 1}_"


def compose_path(
    raw_title: str | None,
    extension: str,
    ordinal_index: int | None = None,
    suffix: str | None = None,
    layout: LayoutPolicy = LayoutPolicy.FLAT,
    *,
    nest_directories: bool = True,
) -> str:
    """Build the candidate archive path for one artifact.

    ``FLAT`` discards directories: ``{n+1}_{leaf}{suffix}{extension}``.
    ``DIRECTORY_STRUCTURE`` keeps them, either as real ``/`` segments or,
    with ``nest_directories=False``, joined into the file name with ``_``.
    The numeric prefix is only added when ``ordinal_index`` is given.
    """

    directories, leaf = split_title(raw_title)
    prefix = index_prefix(ordinal_index)
    tail = f"{sanitize_segment(suffix)}{extension or ''}"

    if layout == LayoutPolicy.FLAT or not directories:
        return _undot(f"{prefix}{leaf}{tail}")

    if not nest_directories:
        return _undot(f"{prefix}{'_'.join([*directories, leaf])}{tail}")

    filename = _undot(f"{prefix}{leaf}{tail}")
    if not filename:
        return "/".join(directories)
    return "/".join([*directories, filename])
