"""create pipeline tables (jobs, transcripts, summaries, memories, job_logs)

Revision ID: a1c3e5f70b12
Revises:
Create Date: 2026-10-12 10:14:03.512904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70b12"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIM = 768


class VectorType(sa.types.UserDefinedType):
    """SQLAlchemy type for pgvector: vector(dim)."""

    cache_ok = True

    def __init__(self, dim: int):
        self.dim = int(dim)

    def get_col_spec(self, **kw) -> str:  # required by SQLAlchemy compiler
        return f"vector({self.dim})"


def upgrade() -> None:
    # pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("parent_job_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("parent_job_id", "kind", name="uq_jobs_parent_kind"),
    )
    op.create_index("ix_jobs_kind", "jobs", ["kind"])
    op.create_index("ix_jobs_owner_id", "jobs", ["owner_id"])
    op.create_index("ix_jobs_parent_job_id", "jobs", ["parent_job_id"])

    op.create_table(
        "transcripts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("file_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("language", sa.String(length=16), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("speaker_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("provider", sa.String(length=32), nullable=True),
        sa.Column("model", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_transcripts_owner_id", "transcripts", ["owner_id"])
    op.create_index("ix_transcripts_file_id", "transcripts", ["file_id"])
    op.create_index("ix_transcripts_job_id", "transcripts", ["job_id"], unique=True)

    op.create_table(
        "summaries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("format", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("model_used", sa.String(length=128), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=True),
        sa.Column("input_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("output_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("is_chunked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("chunks_total", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("chunks_summarized", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_summaries_owner_id", "summaries", ["owner_id"])
    op.create_index("ix_summaries_source_id", "summaries", ["source_id"])
    op.create_index("ix_summaries_job_id", "summaries", ["job_id"], unique=True)

    op.create_table(
        "memories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),

        # ✅ pgvector column (null until the embedding stage fills it)
        sa.Column("embedding_vector", VectorType(EMBEDDING_DIM), nullable=True),
        sa.Column("embedding_model", sa.String(length=128), nullable=True),
        sa.Column("embedding_tokens", sa.Integer(), nullable=True),

        sa.Column("memory_type", sa.String(length=16), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("intent_label", sa.String(length=64), nullable=True),
        sa.Column("usage_type", sa.String(length=64), nullable=True),
        sa.Column("tags_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("source_app", sa.String(length=64), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("originating_provider", sa.String(length=64), nullable=True),
        sa.Column("originating_prompt", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_memories_owner_id", "memories", ["owner_id"])
    op.create_index("ix_memories_source_id", "memories", ["source_id"])

    # Optional ANN index (cosine distance, matches search_similar_memories)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_memories_embedding_vector_hnsw "
        "ON memories USING hnsw (embedding_vector vector_cosine_ops)"
    )

    op.create_table(
        "job_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_kind", sa.String(length=32), nullable=False),
        sa.Column("job_id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="failed"),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_job_logs_job_kind", "job_logs", ["job_kind"])
    op.create_index("ix_job_logs_owner_id", "job_logs", ["owner_id"])
    op.create_index("ix_job_logs_status", "job_logs", ["status"])


def downgrade() -> None:
    op.drop_index("ix_job_logs_status", table_name="job_logs")
    op.drop_index("ix_job_logs_owner_id", table_name="job_logs")
    op.drop_index("ix_job_logs_job_kind", table_name="job_logs")
    op.drop_table("job_logs")

    op.execute("DROP INDEX IF EXISTS ix_memories_embedding_vector_hnsw")
    op.drop_index("ix_memories_source_id", table_name="memories")
    op.drop_index("ix_memories_owner_id", table_name="memories")
    op.drop_table("memories")

    op.drop_index("ix_summaries_job_id", table_name="summaries")
    op.drop_index("ix_summaries_source_id", table_name="summaries")
    op.drop_index("ix_summaries_owner_id", table_name="summaries")
    op.drop_table("summaries")

    op.drop_index("ix_transcripts_job_id", table_name="transcripts")
    op.drop_index("ix_transcripts_file_id", table_name="transcripts")
    op.drop_index("ix_transcripts_owner_id", table_name="transcripts")
    op.drop_table("transcripts")

    op.drop_index("ix_jobs_parent_job_id", table_name="jobs")
    op.drop_index("ix_jobs_owner_id", table_name="jobs")
    op.drop_index("ix_jobs_kind", table_name="jobs")
    op.drop_table("jobs")
