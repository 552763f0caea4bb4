from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True)
class GenerationResult:
    content: str
    tokens: TokenUsage
    model: str
    latency_ms: float
    provider: str


@dataclass(frozen=True)
class EmbeddingResult:
    vector: list[float]
    model: str
    tokens: int
    provider: str


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    language: str
    duration_seconds: float | None
    speaker_count: int
    model: str
    provider: str
    segments: list[dict[str, Any]] = field(default_factory=list)  # each: {text, start, duration}

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class Provider(ABC):
    """
    Capabilities every generation/embedding provider exposes.

    Implementations raise on any failure (network, non-2xx, unusable payload);
    they never return partial results.
    """

    name: str = "provider"

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult: ...

    @abstractmethod
    def embed(self, text: str) -> EmbeddingResult: ...

    @abstractmethod
    def transcribe(
        self,
        audio_path: str,
        *,
        content_type: str,
        language: str | None = None,
    ) -> TranscriptionResult: ...
