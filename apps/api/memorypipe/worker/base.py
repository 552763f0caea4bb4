from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memorypipe.core.errors import PersistenceError, UnsupportedInputError
from memorypipe.models.job import Job
from memorypipe.schemas.jobs import JobKind, JobPayload, parse_payload
from memorypipe.services.audit import record_job_failure
from memorypipe.services.jobs import get_job_payload
from memorypipe.worker.context import PipelineContext

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NextJob:
    """Follow-on work a stage asks the orchestrator to enqueue once its result is committed."""

    kind: JobKind
    owner_id: str
    payload: dict[str, Any]


@dataclass
class StageResult:
    record_id: int
    next_job: NextJob | None = None
    details: dict[str, Any] = field(default_factory=dict)


class PipelineWorker(ABC):
    """
    Single-purpose consumer for one job kind.

    received -> provider call -> (chunking) -> persisted -> next job returned | failed

    Any failure is written to the audit log with its duration and message, then re-raised
    so the queue's retry/backoff/dead-letter policy applies. Nothing is partially persisted.

    Delivery is at-least-once, so a job may arrive again after its result was committed.
    Stages that write a result record look it up by job id first and replay it.
    """

    kind: JobKind

    def __init__(self, context: PipelineContext) -> None:
        self.context = context
        self.settings = context.settings
        self.gateway = context.gateway
        self.session_factory = context.session_factory

    def run(self, job: Job) -> StageResult:
        t0 = time.perf_counter()
        log = logger.bind(job_kind=self.kind.value, job_id=job.id, owner_id=job.owner_id)
        log.info("job_received")
        try:
            payload = self.load_payload(job)
            result = self.process(job, payload)
        except Exception as e:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            log.error("job_failed", duration_ms=duration_ms, error=str(e), error_type=type(e).__name__)
            record_job_failure(
                self.session_factory,
                job_kind=self.kind.value,
                job_id=job.id,
                owner_id=job.owner_id,
                duration_ms=duration_ms,
                error=e,
            )
            raise

        duration_ms = int((time.perf_counter() - t0) * 1000)
        log.info("job_completed", duration_ms=duration_ms, record_id=result.record_id)
        result.details.setdefault("duration_ms", duration_ms)
        return result

    def load_payload(self, job: Job) -> JobPayload:
        try:
            return parse_payload(self.kind, get_job_payload(job))
        except ValidationError as e:
            raise UnsupportedInputError(f"Invalid {self.kind.value} payload: {e}") from e

    @abstractmethod
    def process(self, job: Job, payload: Any) -> StageResult:
        """Do the stage's work and commit its result; return the follow-on job, if any."""

    @contextmanager
    def persisting(self, what: str) -> Iterator[Session]:
        """Session for the stage's writes; database errors surface as PersistenceError."""
        with self.session_factory() as db:
            try:
                yield db
            except SQLAlchemyError as e:
                db.rollback()
                raise PersistenceError(f"Failed to store {what}: {e}") from e
