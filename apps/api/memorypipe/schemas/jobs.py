from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobKind(str, Enum):
    TRANSCRIPTION = "transcription"
    SUMMARIZATION = "summarization"
    EMBEDDING = "embedding"


SummaryFormat = Literal["bullets", "narrative", "tldr"]


class JobPayload(BaseModel):
    # collaborators may submit the camelCase wire names (ownerId, filePathRef, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    owner_id: str = Field(min_length=1)


class TranscriptionPayload(JobPayload):
    file_id: str
    file_path_ref: str
    language: str | None = None


class SummarizationPayload(JobPayload):
    content: str
    source_id: str
    source_type: str
    format: SummaryFormat


class EmbeddingPayload(JobPayload):
    content: str
    source_type: str
    source_app: str
    memory_id: int
    source_id: str | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    intent_label: str | None = None
    usage_type: str | None = None
    tags: list[str] | None = None
    originating_provider: str | None = None
    originating_prompt: str | None = None


PAYLOAD_MODELS: dict[JobKind, type[JobPayload]] = {
    JobKind.TRANSCRIPTION: TranscriptionPayload,
    JobKind.SUMMARIZATION: SummarizationPayload,
    JobKind.EMBEDDING: EmbeddingPayload,
}


def parse_payload(kind: JobKind | str, data: dict) -> JobPayload:
    return PAYLOAD_MODELS[JobKind(kind)].model_validate(data)
