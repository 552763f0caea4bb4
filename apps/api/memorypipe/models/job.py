from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from memorypipe.db.base_class import Base


class Job(Base):
    """
    A unit of asynchronous work. Written once at enqueue time, never updated:
    queue retries re-run the same row, completion is visible through the result record.
    """
    __tablename__ = "jobs"
    # a parent job chains at most one child of each kind (NULL parents are not constrained)
    __table_args__ = (UniqueConstraint("parent_job_id", "kind", name="uq_jobs_parent_kind"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)  # transcription|summarization|embedding
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    # job whose completion enqueued this one (transcription -> embedding, summarization -> embedding)
    parent_job_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
