from __future__ import annotations

import structlog

from memorypipe.core.errors import ProviderError, TargetRecordMissing
from memorypipe.models.job import Job
from memorypipe.models.memory import MEMORY_TYPES
from memorypipe.schemas.jobs import EmbeddingPayload, JobKind
from memorypipe.services.llm.prompts import memory_type_prompt
from memorypipe.services.memories import apply_embedding, get_owned_memory
from memorypipe.worker.base import PipelineWorker, StageResult

logger = structlog.get_logger(__name__)

DEFAULT_MEMORY_TYPE = "fact"


class EmbeddingWorker(PipelineWorker):
    kind = JobKind.EMBEDDING

    def classify(self, content: str, source_type: str) -> str:
        """fact | task | insight | irrelevant; anything unrecognised (or a failed call) is a fact."""
        prompt = memory_type_prompt(content, source_type, self.settings.classify_excerpt_chars)
        try:
            res = self.gateway.generate(
                prompt,
                temperature=self.settings.classify_temperature,
                max_tokens=self.settings.classify_max_tokens,
            )
        except ProviderError as e:
            logger.warning("memory_classification_failed", error=str(e))
            return DEFAULT_MEMORY_TYPE

        label = res.content.strip().strip("\"'`.!").lower()
        if label in MEMORY_TYPES:
            return label
        logger.info("memory_classification_unrecognized", label=res.content[:40])
        return DEFAULT_MEMORY_TYPE

    def _require_memory(self, payload: EmbeddingPayload) -> None:
        with self.session_factory() as db:
            if get_owned_memory(db, payload.memory_id, payload.owner_id) is None:
                raise TargetRecordMissing(f"Memory {payload.memory_id} not found for owner {payload.owner_id}")

    def process(self, job: Job, payload: EmbeddingPayload) -> StageResult:
        # fail before spending provider calls on a memory that is not there
        self._require_memory(payload)

        emb = self.gateway.embed(payload.content)
        memory_type = self.classify(payload.content, payload.source_type)

        with self.persisting("memory embedding") as db:
            memory = get_owned_memory(db, payload.memory_id, payload.owner_id)
            if memory is None:
                raise TargetRecordMissing(f"Memory {payload.memory_id} disappeared during embedding")
            apply_embedding(
                memory,
                vector=emb.vector,
                model=emb.model,
                tokens=emb.tokens,
                memory_type=memory_type,
                confidence_score=(
                    payload.confidence_score
                    if payload.confidence_score is not None
                    else self.settings.default_memory_confidence
                ),
                intent_label=payload.intent_label or "general",
                usage_type=payload.usage_type or "general",
                tags=payload.tags,
                originating_provider=payload.originating_provider,
                originating_prompt=payload.originating_prompt,
            )
            db.commit()

        logger.info(
            "memory_embedded",
            memory_id=payload.memory_id,
            model=emb.model,
            provider=emb.provider,
            tokens=emb.tokens,
            memory_type=memory_type,
        )
        return StageResult(
            record_id=payload.memory_id,
            details={
                "memory_id": payload.memory_id,
                "model": emb.model,
                "dim": len(emb.vector),
                "tokens": emb.tokens,
                "memory_type": memory_type,
            },
        )
