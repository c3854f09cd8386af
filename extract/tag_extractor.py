"""Extractor for artifacts embedded as ``<antArtifact>`` tags in message text."""
from __future__ import annotations

import re
from typing import Any, Mapping

from extract.base import DEFAULT_LANGUAGE, DEFAULT_TITLE, ArtifactRef, BaseExtractor

ARTIFACT_TAG_RE = re.compile(
    r"<antArtifact(?P<attrs>[^>]*)>(?P<content>.*?)</antArtifact>", re.DOTALL
)
ATTRIBUTE_RE = re.compile(r"(?P<name>[\w-]+)\s*=\s*(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)')")


def _parse_attributes(raw: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for match in ATTRIBUTE_RE.finditer(raw):
        value = match.group("dq")
        if value is None:
            value = match.group("sq")
        attributes[match.group("name").lower()] = value
    return attributes


def extract_tagged_artifacts(text: str | None) -> list[ArtifactRef]:
    """Return every tagged artifact in ``text`` in order of appearance.

    Missing titles become ``Untitled`` and missing languages ``txt``; the
    content between the tags is kept verbatim.
    """

    if not text:
        return []

    artifacts: list[ArtifactRef] = []
    for match in ARTIFACT_TAG_RE.finditer(text):
        attributes = _parse_attributes(match.group("attrs"))
        artifacts.append(
            ArtifactRef(
                raw_title=attributes.get("title") or DEFAULT_TITLE,
                language=attributes.get("language") or DEFAULT_LANGUAGE,
                ordinal_index=None,
                content=match.group("content"),
            )
        )
    return artifacts


class TagExtractor(BaseExtractor):
    """Legacy transcripts carry artifacts inline in ``message["text"]``."""

    def extract(self, message: Mapping[str, Any]) -> list[ArtifactRef]:
        text = message.get("text")
        if not isinstance(text, str):
            return []
        return extract_tagged_artifacts(text)
