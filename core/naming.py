"""Collision-free archive path assignment for extracted artifacts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from core.extensions import resolve_extension
from core.filename_utils import compose_path
from core.logging_utils import get_logger, log_with_context
from extract.base import ArtifactRef
from storage.models import LayoutPolicy

logger = get_logger(__name__)

DEFAULT_MARKER = "*"


class AllocationSet:
    """Paths already handed out during one archive build.

    Only grows: there is no way to release a path once assigned. Every
    directory implied by an allocated path is tracked too, so a file can
    never take the name of a directory and vice versa.
    """

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths: set[str] = set()
        self._directories: set[str] = set()
        for path in paths:
            self.add(path)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def add(self, path: str) -> None:
        self._paths.add(path)
        self._directories.update(_directory_prefixes(path))

    def is_directory(self, path: str) -> bool:
        return path in self._directories

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._paths)


def _directory_prefixes(path: str) -> list[str]:
    parts = path.split("/")[:-1]
    return ["/".join(parts[: i + 1]) for i in range(len(parts))]


def _is_directory(path: str, allocated: AllocationSet | set[str]) -> bool:
    if isinstance(allocated, AllocationSet):
        return allocated.is_directory(path)
    return any(other.startswith(f"{path}/") for other in allocated)


def _taken(path: str, allocated: AllocationSet | set[str]) -> bool:
    return path in allocated or _is_directory(path, allocated)


def _free_directories(candidate: str, allocated: AllocationSet | set[str], marker: str) -> str:
    # A directory segment already allocated as a file gets the marker.
    parts = candidate.split("/")
    for i in range(len(parts) - 1):
        if "/".join(parts[: i + 1]) not in allocated:
            continue
        run_length = 1
        while "/".join([*parts[:i], f"{parts[i]}_{marker * run_length}"]) in allocated:
            run_length += 1
        parts[i] = f"{parts[i]}_{marker * run_length}"
    return "/".join(parts)


@dataclass(frozen=True)
class ResolvedPath:
    path: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class NamingOptions:
    """Naming configuration shared by every artifact of one run."""

    layout: LayoutPolicy = LayoutPolicy.FLAT
    # None follows the layout: prefixes in FLAT, none in DIRECTORY_STRUCTURE.
    include_index: Optional[bool] = None
    nest_directories: bool = True
    suffix: Optional[str] = None
    collision_marker: str = DEFAULT_MARKER

    @property
    def use_index(self) -> bool:
        if self.include_index is not None:
            return self.include_index
        return self.layout == LayoutPolicy.FLAT


def _split_extension(leaf: str, extension: Optional[str]) -> tuple[str, str]:
    if extension and leaf.endswith(extension):
        return leaf[: len(leaf) - len(extension)], extension
    dot = leaf.rfind(".")
    if dot > 0:
        return leaf[:dot], leaf[dot:]
    return leaf, ""


def resolve_unique_path(
    candidate: str,
    allocated: AllocationSet | set[str],
    *,
    extension: Optional[str] = None,
    marker: str = DEFAULT_MARKER,
) -> str:
    """Return ``candidate`` or the first free ``_*``, ``_**``... variant of it.

    The marker goes right before the extension of the leaf. Directory
    segments only change when an earlier path already uses one of them as a
    file name. The returned path is added to ``allocated``.
    """

    candidate = _free_directories(candidate, allocated, marker)
    if not _taken(candidate, allocated):
        allocated.add(candidate)
        return candidate

    directory, slash, leaf = candidate.rpartition("/")
    stem, ext = _split_extension(leaf, extension)
    prefix = f"{directory}{slash}"

    run_length = 1
    while True:
        unique = f"{prefix}{stem}_{marker * run_length}{ext}"
        if not _taken(unique, allocated):
            allocated.add(unique)
            return unique
        run_length += 1


def _coerce_index(value: object) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


def assign(
    artifact: ArtifactRef,
    policy: LayoutPolicy,
    allocated: AllocationSet | set[str],
    *,
    suffix: Optional[str] = None,
    include_index: Optional[bool] = None,
    nest_directories: bool = True,
    marker: str = DEFAULT_MARKER,
) -> ResolvedPath:
    """Assign the final archive path for one artifact within a run."""

    options = NamingOptions(
        layout=policy,
        include_index=include_index,
        nest_directories=nest_directories,
        suffix=suffix,
        collision_marker=marker,
    )
    return _assign_with_options(artifact, options, allocated, suffix=suffix)


def _assign_with_options(
    artifact: ArtifactRef,
    options: NamingOptions,
    allocated: AllocationSet | set[str],
    *,
    suffix: Optional[str],
) -> ResolvedPath:
    extension = resolve_extension(getattr(artifact, "language", None))
    ordinal_index = (
        _coerce_index(getattr(artifact, "ordinal_index", None)) if options.use_index else None
    )
    candidate = compose_path(
        getattr(artifact, "raw_title", None),
        extension,
        ordinal_index,
        suffix,
        options.layout,
        nest_directories=options.nest_directories,
    )
    path = resolve_unique_path(
        candidate, allocated, extension=extension, marker=options.collision_marker
    )

    if path != candidate:
        log_with_context(
            logger,
            logging.DEBUG,
            "Resolved name collision",
            stage="NAMING",
            candidate=candidate,
            path=path,
        )
    return ResolvedPath(path)


class NamingEngine:
    """Assigns paths for one archive build and owns its allocation set."""

    def __init__(self, options: NamingOptions | None = None) -> None:
        self.options = options or NamingOptions()
        self._allocated = AllocationSet()

    @property
    def allocated(self) -> frozenset[str]:
        return self._allocated.snapshot()

    def assign(self, artifact: ArtifactRef, suffix: Optional[str] = None) -> ResolvedPath:
        return _assign_with_options(
            artifact,
            self.options,
            self._allocated,
            suffix=suffix if suffix is not None else self.options.suffix,
        )
