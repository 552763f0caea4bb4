"""
Provider gateway: one interface over a primary and a fallback provider.

Every capability is attempted on the primary first; any exception (network error,
non-2xx, malformed payload, wrong embedding dimension) moves the call to the fallback
with the same input. If the fallback fails too, AllProvidersFailed carries both errors.
There is no retry loop here and input is never truncated: callers chunk oversized text
and the queue owns retries.
"""

from __future__ import annotations

import math
from typing import Callable, TypeVar

import structlog

from memorypipe.core.config import Settings
from memorypipe.core.errors import AllProvidersFailed, MalformedProviderResponse
from memorypipe.services.llm.base import (
    EmbeddingResult,
    GenerationResult,
    Provider,
    TranscriptionResult,
)
from memorypipe.services.llm.local_provider import LocalProvider
from memorypipe.services.llm.ollama_client import OllamaClient
from memorypipe.services.llm.openai_provider import OpenAIProvider
from memorypipe.services.stt import WhisperTranscriber

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ProviderGateway:
    def __init__(self, primary: Provider, fallback: Provider | None = None, *, embedding_dim: int | None = None) -> None:
        self.primary = primary
        self.fallback = fallback
        self.embedding_dim = embedding_dim

    @property
    def providers(self) -> list[Provider]:
        return [p for p in (self.primary, self.fallback) if p is not None]

    def _call(self, capability: str, fn: Callable[[Provider], T]) -> T:
        errors: list[tuple[str, Exception]] = []
        for provider in self.providers:
            try:
                result = fn(provider)
            except Exception as e:
                logger.warning(
                    "provider_call_failed",
                    capability=capability,
                    provider=provider.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                errors.append((provider.name, e))
                continue
            if errors:
                logger.info("provider_fallback_succeeded", capability=capability, provider=provider.name)
            return result

        raise AllProvidersFailed(capability, errors)

    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult:
        return self._call(
            "generate",
            lambda p: p.generate(prompt, system_prompt=system_prompt, temperature=temperature, max_tokens=max_tokens),
        )

    def embed(self, text: str) -> EmbeddingResult:
        def run(p: Provider) -> EmbeddingResult:
            res = p.embed(text)
            self._check_vector(res)
            return res

        return self._call("embed", run)

    def transcribe(self, audio_path: str, *, content_type: str, language: str | None = None) -> TranscriptionResult:
        return self._call(
            "transcribe",
            lambda p: p.transcribe(audio_path, content_type=content_type, language=language),
        )

    def _check_vector(self, res: EmbeddingResult) -> None:
        dim = len(res.vector)
        if self.embedding_dim is not None and dim != self.embedding_dim:
            raise MalformedProviderResponse(
                f"Unexpected embedding dim={dim} (expected {self.embedding_dim}) for model={res.model}"
            )
        if not all(math.isfinite(x) for x in res.vector):
            raise MalformedProviderResponse(f"Non-finite values in embedding from model={res.model}")


# native output size of well-known embedding models; text-embedding-3-* can be shortened
KNOWN_EMBEDDING_DIMS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
    "bge-m3": 1024,
}
_SHORTENABLE = ("text-embedding-3-small", "text-embedding-3-large")


def _base_model_name(model: str) -> str:
    # ollama tags: "nomic-embed-text:latest"
    return model.split(":", 1)[0].strip().lower()


def check_embedding_dims(settings: Settings) -> None:
    """
    Fail at start-up when a configured embedding model cannot produce settings.embedding_dim.

    Unknown models pass; they are still checked per call by the gateway.
    """
    dim = settings.embedding_dim
    for env_name, model in (
        ("OPENAI_EMBED_MODEL", settings.openai_embed_model),
        ("OLLAMA_EMBED_MODEL", settings.ollama_embed_model),
    ):
        name = _base_model_name(model)
        native = KNOWN_EMBEDDING_DIMS.get(name)
        if native is None or native == dim:
            continue
        if name in _SHORTENABLE and dim < native:
            continue
        raise ValueError(
            f"{env_name}={model} produces {native}-dim vectors but MEMORYPIPE_EMBEDDING_DIM={dim}"
        )


def _openai_dimensions(settings: Settings) -> int | None:
    if _base_model_name(settings.openai_embed_model) in _SHORTENABLE:
        return settings.embedding_dim
    return None


def build_gateway(settings: Settings) -> ProviderGateway:
    """Fixed priority order: OpenAI first, local Ollama/faster-whisper second."""
    check_embedding_dims(settings)
    primary = OpenAIProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        embed_model=settings.openai_embed_model,
        transcribe_model=settings.openai_transcribe_model,
        embed_dimensions=_openai_dimensions(settings),
        timeout_sec=settings.openai_timeout_sec,
    )
    fallback = LocalProvider(
        OllamaClient(settings.ollama_base_url, timeout_s=settings.ollama_timeout_sec),
        model=settings.ollama_model,
        embed_model=settings.ollama_embed_model,
        transcriber=WhisperTranscriber(
            settings.whisper_model_size,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute,
        ),
    )
    return ProviderGateway(primary, fallback, embedding_dim=settings.embedding_dim)
