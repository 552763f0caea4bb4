from __future__ import annotations

import time
from typing import Any, Callable

import structlog

from memorypipe.core.errors import PersistenceError, PipelineError, TargetRecordMissing
from memorypipe.models.job import Job
from memorypipe.schemas.jobs import JobKind
from memorypipe.services.audit import record_job_failure
from memorypipe.services.job_dispatch import enqueue_job, submit_job
from memorypipe.services.jobs import get_child_job, get_job
from memorypipe.worker.base import NextJob, PipelineWorker
from memorypipe.worker.context import PipelineContext, get_context
from memorypipe.worker.embedding import EmbeddingWorker
from memorypipe.worker.summarization import SummarizationWorker
from memorypipe.worker.transcription import TranscriptionWorker

logger = structlog.get_logger(__name__)

WORKERS: dict[JobKind, type[PipelineWorker]] = {
    JobKind.TRANSCRIPTION: TranscriptionWorker,
    JobKind.SUMMARIZATION: SummarizationWorker,
    JobKind.EMBEDDING: EmbeddingWorker,
}

# (db, kind, owner_id, payload, parent_job_id=...) -> Job
Dispatch = Callable[..., Job]


def run_stage(
    kind: JobKind | str,
    job_id: int,
    *,
    context: PipelineContext | None = None,
    dispatch: Dispatch | None = None,
    resubmit: Callable[[Job], Any] | None = None,
) -> dict[str, Any]:
    """
    Run one pipeline stage for a persisted Job and chain the follow-on job.

    The worker commits its result before returning, so the next job is only enqueued
    once the previous stage is durable.
    """
    kind = JobKind(kind)
    ctx = context or get_context()
    dispatch = dispatch or enqueue_job
    resubmit = resubmit or submit_job

    with ctx.session_factory() as db:
        job = get_job(db, job_id)
    if job is None:
        err = TargetRecordMissing(f"Job not found: {job_id}")
        record_job_failure(
            ctx.session_factory,
            job_kind=kind.value,
            job_id=job_id,
            owner_id=None,
            duration_ms=0,
            error=err,
        )
        raise err
    if job.kind != kind.value:
        raise TargetRecordMissing(f"Job {job_id} is a {job.kind} job, not {kind.value}")

    result = WORKERS[kind](ctx).run(job)

    out: dict[str, Any] = {"ok": True, "job_id": job.id, "kind": kind.value, **result.details}
    nxt = result.next_job
    if nxt is not None:
        child = _enqueue_once(ctx, job, nxt, dispatch, resubmit)
        out["next_job_id"] = child.id
        out["next_job_kind"] = nxt.kind.value
    return out


def _enqueue_once(
    ctx: PipelineContext,
    job: Job,
    nxt: NextJob,
    dispatch: Dispatch,
    resubmit: Callable[[Job], Any],
) -> Job:
    """
    Create at most one follow-on Job row per parent job.

    On redelivery the child row may already exist; it is submitted again instead of being
    duplicated (the earlier submit may never have reached the broker, and every stage
    replays its stored result).

    The stage's result is committed at this point, so a failing broker or dispatch is a
    persistence failure of the chain: it is audited and re-raised as retryable. The retry
    replays the stored result and lands here again.
    """
    t0 = time.perf_counter()
    try:
        with ctx.session_factory() as db:
            child = get_child_job(db, job.id, nxt.kind)
            if child is not None:
                logger.info("next_job_resubmitted", job_id=job.id, next_job_id=child.id)
                resubmit(child)
                return child
            child = dispatch(db, nxt.kind, nxt.owner_id, nxt.payload, parent_job_id=job.id)
    except Exception as e:
        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.error("next_job_enqueue_failed", job_id=job.id, next_kind=nxt.kind.value, error=str(e))
        record_job_failure(
            ctx.session_factory,
            job_kind=job.kind,
            job_id=job.id,
            owner_id=job.owner_id,
            duration_ms=duration_ms,
            error=f"Failed to enqueue {nxt.kind.value} job: {e}",
        )
        if isinstance(e, PipelineError):
            raise
        raise PersistenceError(f"Failed to enqueue {nxt.kind.value} job: {e}") from e

    logger.info("next_job_enqueued", job_id=job.id, next_job_id=child.id, next_kind=nxt.kind.value)
    return child
