from __future__ import annotations

from typing import Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memorypipe.models.audit_log import AuditLogEntry

logger = structlog.get_logger(__name__)


def _error_text(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error or "Unknown error"
    return str(error) or type(error).__name__


def record_job_failure(
    session_factory: Callable[[], Session],
    *,
    job_kind: str,
    job_id: int | str | None,
    owner_id: str | None,
    duration_ms: int,
    error: BaseException | str,
) -> AuditLogEntry | None:
    """
    Append one failed-job entry in its own session.

    The worker's session may already be rolled back or broken, so the audit write never
    shares it. If the audit write fails it is logged and None is returned; the caller
    still re-raises the original job error.
    """
    entry = AuditLogEntry(
        job_kind=job_kind,
        job_id=str(job_id) if job_id is not None else "unknown",
        owner_id=owner_id or "unknown",
        status="failed",
        duration_ms=max(0, int(duration_ms)),
        error_message=_error_text(error),
    )
    try:
        with session_factory() as db:
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return entry
    except SQLAlchemyError as e:
        logger.error("audit_log_write_failed", job_kind=job_kind, job_id=entry.job_id, error=str(e))
        return None


def list_job_failures(
    db: Session,
    *,
    owner_id: str | None = None,
    job_kind: str | None = None,
    status: str | None = "failed",
    limit: int = 100,
) -> list[AuditLogEntry]:
    query = db.query(AuditLogEntry)
    if owner_id:
        query = query.filter(AuditLogEntry.owner_id == owner_id)
    if job_kind:
        query = query.filter(AuditLogEntry.job_kind == job_kind)
    if status:
        query = query.filter(AuditLogEntry.status == status)
    return query.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()).limit(limit).all()
