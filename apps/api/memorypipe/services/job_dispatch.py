from __future__ import annotations

from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from memorypipe.models.job import Job
from memorypipe.schemas.jobs import JobKind
from memorypipe.services.jobs import create_job

logger = structlog.get_logger(__name__)


def _task_for(kind: JobKind):
    # imported here: worker.tasks -> runner -> job_dispatch
    from memorypipe.worker import tasks as worker_tasks

    return {
        JobKind.TRANSCRIPTION: worker_tasks.process_transcription,
        JobKind.SUMMARIZATION: worker_tasks.process_summarization,
        JobKind.EMBEDDING: worker_tasks.process_embedding,
    }[kind]


def submit_job(job: Job):
    """
    Submit the Celery task for an existing Job row.

    Dispatch uses task objects (.apply_async) so ENV=test eager mode works.
    """
    kind = JobKind(job.kind)
    async_result = _task_for(kind).apply_async(kwargs={"job_id": job.id})
    logger.info("job_submitted", job_id=job.id, kind=kind.value, task_id=async_result.id, parent_job_id=job.parent_job_id)
    return async_result


def enqueue_job(
    db: Session,
    kind: JobKind | str,
    owner_id: str,
    payload: Dict[str, Any],
    *,
    parent_job_id: int | None = None,
) -> Job:
    """Persist the Job row, then submit the matching Celery task with its id."""
    job = create_job(db, kind, owner_id, payload, parent_job_id=parent_job_id)
    submit_job(job)
    return job
