"""Iterative walk over the message tree of a conversation export."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from core.logging_utils import get_logger, log_with_context

logger = get_logger(__name__)

DEPTH_LIMIT_WARNING = "Maximum traversal depth reached. Stopping message processing."
CYCLE_WARNING = "Messages unreachable from any root. Walking them from the lowest index."


@dataclass
class WalkResult:
    messages: list[Mapping[str, Any]] = field(default_factory=list)
    depths: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    depth_limit_hit: bool = False


def _messages(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    messages = payload.get("chat_messages") or []
    return [message for message in messages if isinstance(message, Mapping)]


def _sort_key(message: Mapping[str, Any]) -> tuple[str, int]:
    index = message.get("index")
    if isinstance(index, bool) or not isinstance(index, int):
        index = -1
    return (str(message.get("created_at") or ""), index)


def _root_key(message: Mapping[str, Any]) -> tuple[int, str]:
    created_at, index = _sort_key(message)
    return (index, created_at)


def iter_children(
    message: Mapping[str, Any], payload: Mapping[str, Any]
) -> list[Mapping[str, Any]]:
    """Return the direct replies to ``message`` ordered by creation time."""

    uuid = message.get("uuid")
    if not uuid:
        return []
    children = [
        candidate
        for candidate in _messages(payload)
        if candidate.get("parent_message_uuid") == uuid and candidate is not message
    ]
    return sorted(children, key=_sort_key)


def find_roots(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Messages whose parent is not part of the payload, in conversation order."""

    messages = _messages(payload)
    known = {message.get("uuid") for message in messages if message.get("uuid")}
    roots = [
        message
        for message in messages
        if message.get("parent_message_uuid") not in known
    ]
    return sorted(roots, key=_root_key)


def _key(message: Mapping[str, Any]) -> Any:
    return message.get("uuid") or id(message)


def _reachable(
    seeds: list[Mapping[str, Any]],
    children_by_parent: Mapping[Any, list[Mapping[str, Any]]],
) -> set[Any]:
    seen: set[Any] = set()
    pending = list(seeds)
    while pending:
        message = pending.pop()
        key = _key(message)
        if key in seen:
            continue
        seen.add(key)
        if message.get("uuid"):
            pending.extend(children_by_parent.get(message.get("uuid"), []))
    return seen


def walk_conversation(
    payload: Mapping[str, Any],
    *,
    max_depth: int = 100,
    sink: Optional[logging.Logger] = None,
    start: Optional[Mapping[str, Any]] = None,
    start_depth: int = 0,
) -> WalkResult:
    """Visit messages depth-first in discovery order.

    The walk starts at ``start`` (or at every root) and never descends below
    ``max_depth``; hitting the ceiling logs a warning to ``sink`` and keeps
    everything visited so far. Messages are visited at most once, so cyclic
    parent links terminate. When walking a whole payload, messages that no
    root reaches are walked afterwards from the lowest index.
    """

    sink = sink or logger
    result = WalkResult()

    children_by_parent: dict[Any, list[Mapping[str, Any]]] = {}
    for message in _messages(payload):
        parent = message.get("parent_message_uuid")
        if parent:
            children_by_parent.setdefault(parent, []).append(message)
    for children in children_by_parent.values():
        children.sort(key=_sort_key)

    visited: set[Any] = set()

    def warn_depth(message: Mapping[str, Any], depth: int) -> None:
        result.depth_limit_hit = True
        result.warnings.append(DEPTH_LIMIT_WARNING)
        log_with_context(
            sink,
            logging.WARNING,
            DEPTH_LIMIT_WARNING,
            stage="WALK",
            message_uuid=message.get("uuid"),
            depth=depth,
            max_depth=max_depth,
        )

    def drain(initial: list[Mapping[str, Any]], depth: int) -> None:
        stack = [(message, depth) for message in reversed(initial)]
        while stack:
            message, depth = stack.pop()
            key = _key(message)
            if key in visited:
                continue
            visited.add(key)
            result.messages.append(message)
            result.depths.append(depth)

            children = children_by_parent.get(message.get("uuid"), []) if message.get("uuid") else []
            if depth > max_depth or (children and depth + 1 > max_depth):
                warn_depth(message, depth)
                continue
            for child in reversed(children):
                stack.append((child, depth + 1))

    if start is not None:
        drain([start], start_depth)
        return result

    roots = find_roots(payload)
    drain(roots, start_depth)

    covered = _reachable(roots, children_by_parent)
    detached = [
        message
        for message in sorted(_messages(payload), key=_root_key)
        if _key(message) not in covered
    ]
    if detached:
        result.warnings.append(CYCLE_WARNING)
        log_with_context(
            sink,
            logging.WARNING,
            CYCLE_WARNING,
            stage="WALK",
            message_uuid=detached[0].get("uuid"),
            detached=len(detached),
        )
    for message in detached:
        if _key(message) in covered:
            continue
        covered |= _reachable([message], children_by_parent)
        drain([message], start_depth)

    return result
