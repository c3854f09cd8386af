from __future__ import annotations

import asyncio
import logging
import os
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from config.settings import Settings
from core.logging_utils import get_logger, log_with_context
from storage.models import utcnow
from storage.repositories import ExportRunRepository

logger = get_logger(__name__)


def _safe_unlink(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError:
        log_with_context(
            logger,
            level=logging.WARNING,
            message="Failed to delete archive during cleanup",
            stage="CLEANUP",
            path=path,
        )
        return False


def _is_within(path: str, root: str) -> bool:
    root_abs = os.path.abspath(root)
    return os.path.commonpath([os.path.abspath(path), root_abs]) == root_abs


async def cleanup_loop(settings: Settings, session_factory: sessionmaker) -> None:
    """Periodically delete archives older than the retention window."""

    if settings.export_retention_days is None or settings.export_retention_days <= 0:
        log_with_context(
            logger,
            level=logging.INFO,
            message="Cleanup loop disabled by configuration",
            stage="CLEANUP",
            export_retention_days=settings.export_retention_days,
        )
        return

    poll_interval = settings.cleanup_poll_interval_seconds

    log_with_context(
        logger,
        level=logging.INFO,
        message="Starting cleanup loop",
        stage="CLEANUP",
        export_retention_days=settings.export_retention_days,
        poll_interval=poll_interval,
    )

    try:
        while True:
            try:
                cleanup_once(settings, session_factory)
            except Exception as exc:  # pragma: no cover - defensive
                log_with_context(
                    logger,
                    level=logging.ERROR,
                    message="Cleanup iteration failed",
                    stage="CLEANUP",
                    error=str(exc),
                )
            await asyncio.sleep(poll_interval)
    except asyncio.CancelledError:
        log_with_context(
            logger,
            level=logging.INFO,
            message="Cleanup loop cancelled",
            stage="CLEANUP",
        )
        raise


def cleanup_once(settings: Settings, session_factory: sessionmaker) -> int:
    """Delete expired archives under ``export_root``; return how many were removed."""

    deleted_count = 0
    session = session_factory()
    try:
        repo = ExportRunRepository(session)
        cutoff = utcnow() - timedelta(days=settings.export_retention_days or 0)
        candidates = repo.list_cleanup_candidates(cutoff=cutoff, limit=50)

        for run in candidates:
            archive_path = run.archive_path
            if not archive_path:
                continue
            if not os.path.exists(archive_path):
                run.archive_path = None
                session.add(run)
                session.commit()
                continue

            if not _is_within(archive_path, settings.export_root):
                log_with_context(
                    logger,
                    level=logging.WARNING,
                    message="Skipping cleanup for archive outside export_root",
                    stage="CLEANUP",
                    run_id=run.id,
                    path=archive_path,
                )
                continue

            if _safe_unlink(archive_path):
                run.archive_path = None
                session.add(run)
                session.commit()
                deleted_count += 1
                log_with_context(
                    logger,
                    level=logging.INFO,
                    message="Deleted expired archive",
                    stage="CLEANUP",
                    run_id=run.id,
                    deleted_path=archive_path,
                )
    finally:
        session.close()
    return deleted_count
