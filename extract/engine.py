from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from extract.base import ArtifactRef, BaseExtractor, ExtractionError
from extract.content_block_extractor import ContentBlockExtractor
from extract.tag_extractor import TagExtractor
from storage.models import ErrorType


def load_conversation(raw: str | bytes) -> dict[str, Any]:
    """Decode an uploaded conversation export into a payload dict."""

    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ExtractionError(ErrorType.PARSER_ERROR, f"Transcript is not valid JSON: {exc}") from exc

    validate_conversation(payload)
    return payload


def validate_conversation(payload: Any) -> None:
    if not isinstance(payload, Mapping):
        raise ExtractionError(ErrorType.PARSER_ERROR, "Transcript must be a JSON object")
    messages = payload.get("chat_messages")
    if not isinstance(messages, list):
        raise ExtractionError(
            ErrorType.PARSER_ERROR, "Transcript has no chat_messages list"
        )


def _message_index(message: Mapping[str, Any]) -> Optional[int]:
    index = message.get("index")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        return None
    return index


class ExtractionEngine:
    """Dispatch messages to the extractor that understands their format."""

    def __init__(self) -> None:
        self._structured = ContentBlockExtractor()
        self._legacy = TagExtractor()

    def get_extractor(self, message: Mapping[str, Any]) -> BaseExtractor:
        content = message.get("content")
        if isinstance(content, list) and content:
            return self._structured
        return self._legacy

    def extract(self, message: Mapping[str, Any]) -> list[ArtifactRef]:
        """Return the message's artifacts stamped with its ordinal index."""

        extractor = self.get_extractor(message)
        index = _message_index(message)
        return [artifact.with_index(index) for artifact in extractor.extract(message)]
