from __future__ import annotations

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from memorypipe.core.config import settings
from memorypipe.db.base_class import Base


MEMORY_TYPES = ("fact", "task", "insight", "irrelevant")


class Memory(Base):
    """
    Terminal, vector-bearing record of the pipeline.

    Created by the caller as a placeholder (no vector), then filled in place by the
    embedding stage. A row with memory_type set always carries a full-length vector;
    a null vector is only legal between creation and a successful embedding.
    """
    __tablename__ = "memories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    embedding_vector = mapped_column(Vector(settings.embedding_dim), nullable=True)
    embedding_model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    embedding_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

    memory_type: Mapped[str | None] = mapped_column(String(16), nullable=True)  # fact|task|insight|irrelevant
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    intent_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    usage_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON list of strings

    source_app: Mapped[str] = mapped_column(String(64), nullable=False)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    originating_provider: Mapped[str | None] = mapped_column(String(64), nullable=True)
    originating_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
