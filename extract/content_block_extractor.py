"""Extractor for structured ``content`` blocks in newer transcripts."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from core.extensions import language_for_mime_type
from core.logging_utils import get_logger, log_with_context
from extract.base import DEFAULT_LANGUAGE, DEFAULT_TITLE, ArtifactRef, BaseExtractor
from extract.tag_extractor import extract_tagged_artifacts

logger = get_logger(__name__)

ARTIFACT_TOOL_NAME = "artifacts"
FULL_CONTENT_COMMANDS = {"create", "rewrite"}


def _first_text(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


class ContentBlockExtractor(BaseExtractor):
    """Read artifacts from ``tool_use`` blocks and from tags inside text blocks."""

    def extract(self, message: Mapping[str, Any]) -> list[ArtifactRef]:
        blocks = message.get("content")
        if not isinstance(blocks, list):
            return []

        artifacts: list[ArtifactRef] = []
        for block in blocks:
            if not isinstance(block, Mapping):
                continue
            block_type = block.get("type")
            if block_type == "text":
                artifacts.extend(extract_tagged_artifacts(block.get("text")))
            elif block_type == "tool_use" and block.get("name") == ARTIFACT_TOOL_NAME:
                artifact = self._from_tool_input(block.get("input"), message)
                if artifact is not None:
                    artifacts.append(artifact)
        return artifacts

    def _from_tool_input(
        self, tool_input: Any, message: Mapping[str, Any]
    ) -> ArtifactRef | None:
        if not isinstance(tool_input, Mapping):
            return None

        command = tool_input.get("command") or "create"
        content = tool_input.get("content")
        if command not in FULL_CONTENT_COMMANDS or not isinstance(content, str):
            log_with_context(
                logger,
                logging.DEBUG,
                "Skipping artifact block without full content",
                stage="EXTRACT",
                message_uuid=message.get("uuid"),
                artifact_id=tool_input.get("id"),
                command=command,
            )
            return None

        title = _first_text(tool_input.get("title"), tool_input.get("id")) or DEFAULT_TITLE
        language = (
            _first_text(tool_input.get("language"))
            or language_for_mime_type(tool_input.get("type"))
            or DEFAULT_LANGUAGE
        )
        return ArtifactRef(
            raw_title=title,
            language=language,
            ordinal_index=None,
            content=content,
        )
