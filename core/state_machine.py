"""Export run state machine and lifecycle logging."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from core.logging_utils import get_logger, log_with_context
from storage.models import ErrorType, ExportRun, ExportStatus, utcnow

logger = get_logger(__name__)


class InvalidStatusTransition(Exception):
    """Raised when an illegal status transition is attempted."""


ALLOWED_TRANSITIONS: dict[ExportStatus, set[ExportStatus]] = {
    ExportStatus.PENDING: {ExportStatus.RUNNING, ExportStatus.FAILED},
    ExportStatus.RUNNING: {ExportStatus.COMPLETED, ExportStatus.FAILED},
    ExportStatus.COMPLETED: set(),
    ExportStatus.FAILED: set(),
}


def _normalize_status(status: ExportStatus | str) -> ExportStatus:
    return status if isinstance(status, ExportStatus) else ExportStatus(status)


def _normalize_error_type(error_type: ErrorType | str | None) -> ErrorType | None:
    if error_type is None:
        return None
    return error_type if isinstance(error_type, ErrorType) else ErrorType(error_type)


def transition_status(
    session: Session,
    run: ExportRun,
    to_status: ExportStatus,
    *,
    error_type: ErrorType | None = None,
    error_message: str | None = None,
) -> ExportRun:
    """Move a run to a new status with validation and lifecycle logging."""

    current_status = _normalize_status(run.status)
    new_status = _normalize_status(to_status)

    allowed = ALLOWED_TRANSITIONS.get(current_status, set())
    if new_status not in allowed:
        log_with_context(
            logger,
            logging.ERROR,
            "Invalid status transition attempted",
            run_id=run.id,
            old_status=current_status.value,
            new_status=new_status.value,
            stage="STATE_MACHINE",
        )
        raise InvalidStatusTransition(
            f"Cannot transition run {run.id} from {current_status.value} to {new_status.value}"
        )

    normalized_error_type = _normalize_error_type(error_type)

    run.status = new_status.value
    if normalized_error_type is not None:
        run.error_type = normalized_error_type.value
    if error_message is not None:
        run.error_message = error_message
    run.updated_at = utcnow()

    session.add(run)
    session.commit()
    session.refresh(run)

    log_with_context(
        logger,
        logging.INFO,
        "Export run status changed",
        run_id=run.id,
        old_status=current_status.value,
        new_status=new_status.value,
        error_type=run.error_type,
        stage="STATE_MACHINE",
    )

    return run


def mark_run_running(session: Session, run: ExportRun) -> ExportRun:
    return transition_status(session, run, ExportStatus.RUNNING)


def mark_run_completed(session: Session, run: ExportRun) -> ExportRun:
    return transition_status(session, run, ExportStatus.COMPLETED)


def mark_run_failed(
    session: Session,
    run: ExportRun,
    *,
    error_type: ErrorType | None = None,
    error_message: str | None = None,
) -> ExportRun:
    return transition_status(
        session,
        run,
        ExportStatus.FAILED,
        error_type=error_type,
        error_message=error_message,
    )
