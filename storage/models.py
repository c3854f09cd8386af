"""ORM models and domain enums for the storage layer."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LayoutPolicy(StrEnum):
    """How artifact paths are laid out inside one archive."""

    FLAT = "FLAT"
    DIRECTORY_STRUCTURE = "DIRECTORY_STRUCTURE"


class ExportStatus(StrEnum):
    """Lifecycle status for an export run."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ErrorType(StrEnum):
    """Error classification for failed exports."""

    PARSER_ERROR = "PARSER_ERROR"
    NO_ARTIFACTS = "NO_ARTIFACTS"
    SIZE_LIMIT = "SIZE_LIMIT"
    STORAGE_ERROR = "STORAGE_ERROR"
    UNKNOWN = "UNKNOWN"


class ExportRun(Base):
    """One archive build for one uploaded conversation."""

    __tablename__ = "export_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    source_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    conversation_uuid: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    conversation_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    layout: Mapped[str] = mapped_column(
        String, nullable=False, default=LayoutPolicy.FLAT.value
    )
    include_index: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ExportStatus.PENDING.value, index=True
    )
    artifact_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_visited: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    depth_limit_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    archive_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    files: Mapped[list["ExportedFile"]] = relationship(
        "ExportedFile",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ExportedFile.id",
    )


class ExportedFile(Base):
    """A single archive entry written by an export run."""

    __tablename__ = "exported_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(Integer, ForeignKey("export_runs.id"), nullable=False)
    path: Mapped[str] = mapped_column(String, nullable=False)
    language: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    ordinal_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    run: Mapped[ExportRun] = relationship("ExportRun", back_populates="files")


class ChatSettings(Base):
    """Per-chat naming preferences."""

    __tablename__ = "chat_settings"

    chat_id: Mapped[str] = mapped_column(String, primary_key=True)
    layout: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # None means "use the layout's default".
    include_index: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    nest_directories: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
