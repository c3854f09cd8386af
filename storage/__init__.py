"""Persistence layer for database models and repositories."""

from storage.db import Base, get_engine, get_session_factory, init_db
from storage.models import (
    ChatSettings,
    ErrorType,
    ExportedFile,
    ExportRun,
    ExportStatus,
    LayoutPolicy,
)
from storage.repositories import (
    ChatSettingsRepository,
    ExportedFileRepository,
    ExportRunRepository,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "ChatSettings",
    "ErrorType",
    "ExportedFile",
    "ExportRun",
    "ExportStatus",
    "LayoutPolicy",
    "ChatSettingsRepository",
    "ExportedFileRepository",
    "ExportRunRepository",
]
