"""Repository helpers for database operations."""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from storage.models import (
    ChatSettings,
    ExportedFile,
    ExportRun,
    ExportStatus,
    LayoutPolicy,
    utcnow,
)


def _enum_value(value: str | Enum | None) -> Optional[str]:
    """Return the string value for enum members while allowing raw strings."""

    if value is None:
        return None
    return value.value if isinstance(value, Enum) else value


class ExportRunRepository:
    """CRUD operations for ExportRun entities."""

    def __init__(self, session: Session):
        self.session = session

    def create_run(
        self,
        *,
        layout: LayoutPolicy | str,
        include_index: bool,
        chat_id: Optional[str] = None,
        user_id: Optional[str] = None,
        source_name: Optional[str] = None,
        commit: bool = True,
    ) -> ExportRun:
        run = ExportRun(
            chat_id=str(chat_id) if chat_id is not None else None,
            user_id=str(user_id) if user_id is not None else None,
            source_name=source_name,
            layout=_enum_value(layout),
            include_index=include_index,
            status=ExportStatus.PENDING.value,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        self.session.add(run)
        if commit:
            self.session.commit()
            self.session.refresh(run)
        else:
            self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> Optional[ExportRun]:
        return self.session.get(ExportRun, run_id)

    def list_recent_for_chat(self, chat_id: str | int, limit: int = 5) -> list[ExportRun]:
        stmt = (
            select(ExportRun)
            .where(ExportRun.chat_id == str(chat_id))
            .order_by(ExportRun.created_at.desc(), ExportRun.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_by_status(self, status: ExportStatus | str, limit: int = 100) -> list[ExportRun]:
        stmt = (
            select(ExportRun)
            .where(ExportRun.status == _enum_value(status))
            .order_by(ExportRun.created_at.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_cleanup_candidates(
        self, *, cutoff: datetime, limit: int = 50
    ) -> Sequence[ExportRun]:
        stmt = (
            select(ExportRun)
            .where(
                ExportRun.status == ExportStatus.COMPLETED.value,
                ExportRun.archive_path.is_not(None),
                ExportRun.updated_at < cutoff,
            )
            .order_by(ExportRun.updated_at.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def save(self, run: ExportRun) -> None:
        run.updated_at = utcnow()
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)


class ExportedFileRepository:
    """Archive entries recorded for export runs."""

    def __init__(self, session: Session):
        self.session = session

    def add_file(
        self,
        run_id: int,
        *,
        path: str,
        language: Optional[str],
        ordinal_index: Optional[int],
        size_bytes: int,
        commit: bool = True,
    ) -> ExportedFile:
        record = ExportedFile(
            run_id=run_id,
            path=path,
            language=language,
            ordinal_index=ordinal_index,
            size_bytes=size_bytes,
        )
        self.session.add(record)
        if commit:
            self.session.commit()
            self.session.refresh(record)
        return record

    def list_for_run(self, run_id: int) -> list[ExportedFile]:
        stmt = (
            select(ExportedFile)
            .where(ExportedFile.run_id == run_id)
            .order_by(ExportedFile.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())


class ChatSettingsRepository:
    """Access per-chat naming preferences."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, chat_id: str | int) -> Optional[ChatSettings]:
        return self.session.get(ChatSettings, str(chat_id))

    def get_or_create(self, chat_id: str | int) -> ChatSettings:
        settings = self.get(chat_id)
        if settings:
            return settings

        settings = ChatSettings(
            chat_id=str(chat_id),
            layout=None,
            include_index=None,
            nest_directories=True,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        self.session.add(settings)
        self.session.commit()
        self.session.refresh(settings)
        return settings

    def set_layout(self, chat_id: str | int, layout: LayoutPolicy | str) -> ChatSettings:
        settings = self.get_or_create(chat_id)
        settings.layout = _enum_value(layout)
        return self._save(settings)

    def cycle_index_mode(self, chat_id: str | int) -> ChatSettings:
        """Rotate include_index through default, on and off."""

        settings = self.get_or_create(chat_id)
        if settings.include_index is None:
            settings.include_index = True
        elif settings.include_index:
            settings.include_index = False
        else:
            settings.include_index = None
        return self._save(settings)

    def toggle_nesting(self, chat_id: str | int) -> ChatSettings:
        settings = self.get_or_create(chat_id)
        settings.nest_directories = not settings.nest_directories
        return self._save(settings)

    def _save(self, settings: ChatSettings) -> ChatSettings:
        settings.updated_at = utcnow()
        self.session.add(settings)
        self.session.commit()
        self.session.refresh(settings)
        return settings
