from __future__ import annotations

import structlog

from memorypipe.core.errors import UnsupportedInputError
from memorypipe.models.job import Job
from memorypipe.models.summary import Summary
from memorypipe.schemas.jobs import EmbeddingPayload, JobKind, SummarizationPayload
from memorypipe.services import chunker, confidence
from memorypipe.services.chunker import SummaryChunkPolicy
from memorypipe.services.llm.base import GenerationResult
from memorypipe.services.llm.prompts import SUMMARY_SYSTEM, summary_prompt
from memorypipe.services.memories import create_placeholder_memory, find_source_memory
from memorypipe.worker.base import NextJob, PipelineWorker, StageResult

logger = structlog.get_logger(__name__)


class SummarizationWorker(PipelineWorker):
    kind = JobKind.SUMMARIZATION

    def _chunks(self, content: str) -> tuple[list[str], int]:
        """Return (chunks to summarize, total chunk count) for the configured policy."""
        cfg = self.settings
        estimated = chunker.estimate_tokens(content, cfg.chars_per_token)
        if estimated <= cfg.summary_token_budget:
            return [content], 1

        chunks = chunker.split(content, cfg.summary_token_budget * cfg.chars_per_token)
        policy = SummaryChunkPolicy(cfg.summary_chunk_policy)
        selected = chunks[:1] if policy is SummaryChunkPolicy.FIRST_CHUNK else chunks
        logger.info(
            "content_chunked",
            estimated_tokens=estimated,
            chunks_total=len(chunks),
            chunks_summarized=len(selected),
            policy=policy.value,
        )
        return selected, len(chunks)

    def _score(self, res: GenerationResult) -> float:
        return confidence.score(
            res.latency_ms,
            res.tokens.total,
            latency_ceiling_ms=self.settings.confidence_latency_ceiling_ms,
            token_ceiling=self.settings.confidence_token_ceiling,
        )

    def _stored(self, job: Job) -> StageResult | None:
        with self.session_factory() as db:
            summary = db.query(Summary).filter(Summary.job_id == job.id).first()
            if summary is None:
                return None
            memory = find_source_memory(db, owner_id=summary.owner_id, source_type="summary", source_id=str(summary.id))
        logger.info("summary_replayed", job_id=job.id, summary_id=summary.id)
        return self._result(summary, memory.id, replayed=True)

    def _result(self, summary: Summary, memory_id: int, *, replayed: bool = False) -> StageResult:
        embed = EmbeddingPayload(
            content=summary.content,
            owner_id=summary.owner_id,
            source_type="summary",
            source_app=self.settings.summary_source_app,
            memory_id=memory_id,
            source_id=str(summary.id),
            confidence_score=summary.confidence_score,
            usage_type="summary",
            tags=[summary.format, summary.source_type],
            originating_provider=summary.provider,
        )
        return StageResult(
            record_id=summary.id,
            next_job=NextJob(kind=JobKind.EMBEDDING, owner_id=summary.owner_id, payload=embed.model_dump()),
            details={
                "summary_id": summary.id,
                "memory_id": memory_id,
                "model": summary.model_used,
                "confidence": summary.confidence_score,
                "is_chunked": summary.is_chunked,
                "chunks_total": summary.chunks_total,
                "chunks_summarized": summary.chunks_summarized,
                "replayed": replayed,
            },
        )

    def process(self, job: Job, payload: SummarizationPayload) -> StageResult:
        stored = self._stored(job)
        if stored is not None:
            return stored

        content = payload.content.strip()
        if not content:
            raise UnsupportedInputError("Nothing to summarize: content is empty")

        chunks, chunks_total = self._chunks(content)

        results = [
            self.gateway.generate(
                summary_prompt(payload.format, chunk.strip()),
                system_prompt=SUMMARY_SYSTEM,
                temperature=self.settings.summary_temperature,
                max_tokens=self.settings.summary_max_tokens,
            )
            for chunk in chunks
        ]

        summary_text = "\n\n".join(r.content.strip() for r in results)
        models = sorted({r.model for r in results})
        score = sum(self._score(r) for r in results) / len(results)

        with self.persisting("summary") as db:
            summary = Summary(
                job_id=job.id,
                owner_id=payload.owner_id,
                source_id=payload.source_id,
                source_type=payload.source_type,
                format=payload.format,
                content=summary_text,
                model_used=",".join(models),
                provider=results[0].provider,
                input_tokens=sum(r.tokens.input for r in results),
                output_tokens=sum(r.tokens.output for r in results),
                confidence_score=score,
                is_chunked=chunks_total > 1,
                chunks_total=chunks_total,
                chunks_summarized=len(chunks),
            )
            db.add(summary)
            db.flush()

            memory = create_placeholder_memory(
                db,
                owner_id=payload.owner_id,
                content=summary_text,
                source_app=self.settings.summary_source_app,
                source_type="summary",
                source_id=str(summary.id),
            )
            db.commit()

        logger.info("summary_stored", summary_id=summary.id, model=summary.model_used, confidence=round(score, 3))
        return self._result(summary, memory.id)
