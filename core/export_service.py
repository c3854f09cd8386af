from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session, sessionmaker

from config.settings import Settings
from core.archive import archive_filename, write_zip_archive
from core.logging_utils import get_logger, log_with_context
from core.naming import NamingEngine, NamingOptions
from core.state_machine import mark_run_completed, mark_run_failed, mark_run_running
from core.transcript_walker import walk_conversation
from extract.base import ExtractionError
from extract.engine import ExtractionEngine, load_conversation, validate_conversation
from storage.models import ChatSettings, ErrorType, LayoutPolicy
from storage.repositories import ExportedFileRepository, ExportRunRepository

logger = get_logger(__name__)


class ExportError(Exception):
    """Raised when an export run cannot produce an archive."""

    def __init__(self, error_type: ErrorType, message: str):
        super().__init__(message)
        self.error_type = error_type


@dataclass(frozen=True)
class ExportEntry:
    path: str
    content: str | bytes
    language: Optional[str] = None
    ordinal_index: Optional[int] = None

    @property
    def size_bytes(self) -> int:
        if isinstance(self.content, bytes):
            return len(self.content)
        return len(self.content.encode("utf-8"))


@dataclass
class ExportResult:
    entries: list[ExportEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    messages_visited: int = 0
    depth_limit_hit: bool = False
    conversation_uuid: Optional[str] = None
    conversation_name: Optional[str] = None

    @property
    def artifact_count(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.entries]


@dataclass(frozen=True)
class ExportOutcome:
    run_id: int
    archive_path: str
    archive_name: str
    result: ExportResult


def naming_options_for_chat(
    chat_settings: Optional[ChatSettings], settings: Settings
) -> NamingOptions:
    """Combine a chat's stored preferences with the global defaults."""

    layout = settings.default_layout
    include_index = None
    nest_directories = True
    if chat_settings is not None:
        if chat_settings.layout:
            try:
                layout = LayoutPolicy(chat_settings.layout)
            except ValueError:
                layout = settings.default_layout
        include_index = chat_settings.include_index
        nest_directories = chat_settings.nest_directories
    return NamingOptions(
        layout=layout,
        include_index=include_index,
        nest_directories=nest_directories,
        collision_marker=settings.collision_marker,
    )


def build_export(
    payload: Mapping[str, Any],
    options: NamingOptions,
    *,
    max_depth: int = 100,
    sink: Optional[logging.Logger] = None,
) -> ExportResult:
    """Name every artifact of a conversation for a single archive build.

    Each call starts from an empty allocation set, so identical payloads and
    options always produce identical path sequences.
    """

    validate_conversation(payload)
    walk = walk_conversation(payload, max_depth=max_depth, sink=sink)

    naming = NamingEngine(options)
    extraction = ExtractionEngine()
    result = ExportResult(
        warnings=list(walk.warnings),
        messages_visited=len(walk.messages),
        depth_limit_hit=walk.depth_limit_hit,
        conversation_uuid=payload.get("uuid"),
        conversation_name=payload.get("name"),
    )

    for message in walk.messages:
        if message.get("sender") != "assistant":
            continue
        for artifact in extraction.extract(message):
            resolved = naming.assign(artifact)
            result.entries.append(
                ExportEntry(
                    path=resolved.path,
                    content=artifact.content,
                    language=artifact.language,
                    ordinal_index=artifact.ordinal_index,
                )
            )

    log_with_context(
        logger,
        logging.INFO,
        "Named conversation artifacts",
        stage="EXPORT",
        conversation_uuid=result.conversation_uuid,
        layout=options.layout.value,
        messages=result.messages_visited,
        artifacts=result.artifact_count,
        depth_limit_hit=result.depth_limit_hit or None,
    )
    return result


class ExportService:
    """Runs one archive build per uploaded transcript and records its history."""

    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _get_session(self) -> Session:
        return self._session_factory()

    @property
    def max_upload_bytes(self) -> int:
        return self._settings.max_upload_size_mb * 1024 * 1024

    def export_transcript(
        self,
        raw: str | bytes,
        *,
        options: NamingOptions,
        chat_id: Optional[int | str] = None,
        user_id: Optional[int | str] = None,
        source_name: Optional[str] = None,
    ) -> ExportOutcome:
        session = self._get_session()
        try:
            run_repo = ExportRunRepository(session)
            run = run_repo.create_run(
                layout=options.layout,
                include_index=options.use_index,
                chat_id=chat_id,
                user_id=user_id,
                source_name=source_name,
            )
            mark_run_running(session, run)

            try:
                outcome = self._build(session, run, raw, options)
            except ExtractionError as exc:
                mark_run_failed(
                    session, run, error_type=exc.error_type, error_message=str(exc)
                )
                raise ExportError(exc.error_type, str(exc)) from exc
            except ExportError as exc:
                mark_run_failed(
                    session, run, error_type=exc.error_type, error_message=str(exc)
                )
                raise
            except OSError as exc:
                session.rollback()
                mark_run_failed(
                    session, run, error_type=ErrorType.STORAGE_ERROR, error_message=str(exc)
                )
                log_with_context(
                    logger,
                    level=logging.ERROR,
                    message="Failed to write archive",
                    stage="EXPORT",
                    run_id=run.id,
                    error=str(exc),
                )
                raise ExportError(ErrorType.STORAGE_ERROR, str(exc)) from exc

            return outcome
        finally:
            session.close()

    def _build(
        self, session: Session, run, raw: str | bytes, options: NamingOptions
    ) -> ExportOutcome:
        if len(raw) > self.max_upload_bytes:
            raise ExportError(
                ErrorType.SIZE_LIMIT,
                f"Transcript is larger than {self._settings.max_upload_size_mb} MB",
            )

        payload = load_conversation(raw)
        result = build_export(
            payload, options, max_depth=self._settings.max_traversal_depth
        )
        if not result.entries:
            raise ExportError(ErrorType.NO_ARTIFACTS, "No artifacts found in conversation")

        archive_name = archive_filename(result.conversation_name, run.created_at)
        destination = os.path.join(self._settings.export_root, str(run.id), archive_name)
        write_zip_archive(result.entries, destination)

        file_repo = ExportedFileRepository(session)
        for entry in result.entries:
            file_repo.add_file(
                run.id,
                path=entry.path,
                language=entry.language,
                ordinal_index=entry.ordinal_index,
                size_bytes=entry.size_bytes,
                commit=False,
            )

        run.archive_path = destination
        run.artifact_count = result.artifact_count
        run.messages_visited = result.messages_visited
        run.depth_limit_hit = result.depth_limit_hit
        run.warning_count = len(result.warnings)
        run.conversation_uuid = result.conversation_uuid
        run.conversation_name = result.conversation_name
        mark_run_completed(session, run)

        return ExportOutcome(
            run_id=run.id,
            archive_path=destination,
            archive_name=archive_name,
            result=result,
        )
