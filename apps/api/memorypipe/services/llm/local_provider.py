from __future__ import annotations

import time

from memorypipe.core.errors import MalformedProviderResponse
from memorypipe.services.llm.base import (
    EmbeddingResult,
    GenerationResult,
    Provider,
    TokenUsage,
    TranscriptionResult,
)
from memorypipe.services.llm.ollama_client import OllamaClient
from memorypipe.services.stt import WhisperTranscriber


class LocalProvider(Provider):
    """Fallback provider: Ollama for generation/embeddings, faster-whisper for speech-to-text."""

    name = "local"

    def __init__(
        self,
        ollama: OllamaClient,
        *,
        model: str = "mistral",
        embed_model: str = "nomic-embed-text",
        transcriber: WhisperTranscriber | None = None,
    ) -> None:
        self.ollama = ollama
        self.model = model
        self.embed_model = embed_model
        self.transcriber = transcriber or WhisperTranscriber()

    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult:
        t0 = time.perf_counter()
        res = self.ollama.generate(
            model=self.model,
            prompt=prompt,
            system=system_prompt,
            temperature=temperature,
            num_predict=max_tokens,
        )
        latency_ms = (time.perf_counter() - t0) * 1000.0
        if not res.text:
            raise MalformedProviderResponse("Empty completion from Ollama")
        return GenerationResult(
            content=res.text,
            tokens=TokenUsage(input=res.prompt_tokens, output=res.completion_tokens),
            model=res.model,
            latency_ms=latency_ms,
            provider=self.name,
        )

    def embed(self, text: str) -> EmbeddingResult:
        res = self.ollama.embeddings(model=self.embed_model, prompt=text)
        if not res.embedding:
            raise MalformedProviderResponse("Ollama returned no embedding")
        # Ollama does not report token usage for embeddings
        return EmbeddingResult(vector=res.embedding, model=res.model, tokens=0, provider=self.name)

    def transcribe(
        self,
        audio_path: str,
        *,
        content_type: str,
        language: str | None = None,
    ) -> TranscriptionResult:
        res = self.transcriber.transcribe(audio_path, language=language)
        text = res.text
        if not text:
            raise MalformedProviderResponse("faster-whisper produced an empty transcript")
        return TranscriptionResult(
            text=text,
            language=res.language,
            duration_seconds=res.duration_seconds,
            speaker_count=1,  # no diarization locally
            model=f"faster-whisper-{self.transcriber.model_size}",
            provider=self.name,
            segments=res.segments,
        )
