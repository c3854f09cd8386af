from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from storage.models import ErrorType

DEFAULT_TITLE = "Untitled"
DEFAULT_LANGUAGE = "txt"


class ExtractionError(Exception):
    """Represents a transcript that cannot be read as a conversation."""

    def __init__(self, error_type: ErrorType, message: str):
        super().__init__(message)
        self.error_type = error_type


@dataclass(frozen=True)
class ArtifactRef:
    raw_title: str
    language: Optional[str]
    ordinal_index: Optional[int]
    content: str | bytes

    def with_index(self, ordinal_index: Optional[int]) -> "ArtifactRef":
        return ArtifactRef(
            raw_title=self.raw_title,
            language=self.language,
            ordinal_index=ordinal_index,
            content=self.content,
        )


class BaseExtractor(ABC):
    @abstractmethod
    def extract(self, message: Mapping[str, Any]) -> list[ArtifactRef]:
        ...
