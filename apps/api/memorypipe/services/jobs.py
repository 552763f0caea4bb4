import json
from typing import Any

from sqlalchemy.orm import Session

from memorypipe.models.job import Job
from memorypipe.schemas.jobs import JobKind


def create_job(
    db: Session,
    kind: JobKind | str,
    owner_id: str,
    payload: dict[str, Any],
    *,
    parent_job_id: int | None = None,
) -> Job:
    job = Job(
        kind=JobKind(kind).value,
        owner_id=owner_id,
        payload_json=json.dumps(payload or {}, ensure_ascii=False),
        parent_job_id=parent_job_id,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: int) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def get_job_payload(job: Job) -> dict[str, Any]:
    try:
        data = json.loads(job.payload_json or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def get_child_job(db: Session, parent_job_id: int, kind: JobKind | str) -> Job | None:
    return (
        db.query(Job)
        .filter(Job.parent_job_id == parent_job_id, Job.kind == JobKind(kind).value)
        .order_by(Job.id.asc())
        .first()
    )
