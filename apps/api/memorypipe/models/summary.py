from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from memorypipe.db.base_class import Base


class Summary(Base):
    __tablename__ = "summaries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # what was summarized
    source_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)  # transcript|chat|document|...
    format: Mapped[str] = mapped_column(String(16), nullable=False)  # bullets|narrative|tldr

    content: Mapped[str] = mapped_column(Text, nullable=False)
    model_used: Mapped[str] = mapped_column(String(128), nullable=False)
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)

    # oversized inputs: how many chunks existed vs. how many were summarized
    is_chunked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    chunks_total: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    chunks_summarized: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
