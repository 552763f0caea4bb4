from __future__ import annotations

import os
import time
from typing import Any

from memorypipe.core.errors import MalformedProviderResponse
from memorypipe.services.llm.base import (
    EmbeddingResult,
    GenerationResult,
    Provider,
    TokenUsage,
    TranscriptionResult,
)


def _build_openai_client(api_key: str | None, timeout_sec: float):
    if not api_key:
        raise ValueError("OPENAI_API_KEY is missing")

    # OpenAI SDK v1+
    from openai import OpenAI  # type: ignore

    # Retries belong to the queue, not to the SDK: one attempt per provider.
    return OpenAI(api_key=api_key, timeout=timeout_sec, max_retries=0)


def _speaker_count(segments: list[Any] | None) -> int:
    speakers = set()
    for seg in segments or []:
        speaker = seg.get("speaker") if isinstance(seg, dict) else getattr(seg, "speaker", None)
        if speaker:
            speakers.add(speaker)
    return len(speakers) or 1


def _segment_dict(seg: Any) -> dict[str, Any]:
    get = seg.get if isinstance(seg, dict) else (lambda k, d=None: getattr(seg, k, d))
    start = float(get("start", 0.0) or 0.0)
    end = float(get("end", start) or start)
    return {"text": str(get("text", "") or "").strip(), "start": start, "duration": max(0.0, end - start)}


class OpenAIProvider(Provider):
    """Primary provider: chat completions, embeddings and Whisper transcription via the OpenAI SDK."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        embed_model: str = "text-embedding-3-small",
        transcribe_model: str = "whisper-1",
        embed_dimensions: int | None = None,
        timeout_sec: float = 60.0,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.embed_model = embed_model
        self.transcribe_model = transcribe_model
        self.embed_dimensions = embed_dimensions
        self.timeout_sec = timeout_sec
        self._client = client

    @property
    def client(self):
        # built lazily so a missing key only fails the call (and the gateway falls back)
        if self._client is None:
            self._client = _build_openai_client(self.api_key, self.timeout_sec)
        return self._client

    def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> GenerationResult:
        t0 = time.perf_counter()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        chat = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        latency_ms = (time.perf_counter() - t0) * 1000.0

        if not chat.choices:
            raise MalformedProviderResponse("OpenAI returned no choices")
        text = (chat.choices[0].message.content or "").strip()
        if not text:
            raise MalformedProviderResponse("Empty completion from OpenAI")

        usage = getattr(chat, "usage", None)
        return GenerationResult(
            content=text,
            tokens=TokenUsage(
                input=int(getattr(usage, "prompt_tokens", 0) or 0),
                output=int(getattr(usage, "completion_tokens", 0) or 0),
            ),
            model=getattr(chat, "model", None) or self.model,
            latency_ms=latency_ms,
            provider=self.name,
        )

    def embed(self, text: str) -> EmbeddingResult:
        kwargs: dict[str, Any] = {"model": self.embed_model, "input": text, "encoding_format": "float"}
        if self.embed_dimensions:
            # text-embedding-3-* can shorten its output to match the stored vector size
            kwargs["dimensions"] = self.embed_dimensions
        resp = self.client.embeddings.create(**kwargs)
        if not resp.data:
            raise MalformedProviderResponse("OpenAI returned no embedding")
        usage = getattr(resp, "usage", None)
        return EmbeddingResult(
            vector=[float(x) for x in resp.data[0].embedding],
            model=getattr(resp, "model", None) or self.embed_model,
            tokens=int(getattr(usage, "total_tokens", 0) or 0),
            provider=self.name,
        )

    def transcribe(
        self,
        audio_path: str,
        *,
        content_type: str,
        language: str | None = None,
    ) -> TranscriptionResult:
        kwargs: dict[str, Any] = {"model": self.transcribe_model, "response_format": "verbose_json"}
        if language:
            kwargs["language"] = language

        with open(audio_path, "rb") as fh:
            resp = self.client.audio.transcriptions.create(
                file=(os.path.basename(audio_path), fh, content_type),
                **kwargs,
            )

        text = (getattr(resp, "text", None) or "").strip()
        if not text:
            raise MalformedProviderResponse("OpenAI Whisper returned an empty transcript")

        segments = getattr(resp, "segments", None) or []
        duration = getattr(resp, "duration", None)
        return TranscriptionResult(
            text=text,
            language=getattr(resp, "language", None) or language or "unknown",
            duration_seconds=float(duration) if duration is not None else None,
            speaker_count=_speaker_count(segments),
            model=self.transcribe_model,
            provider=self.name,
            segments=[_segment_dict(s) for s in segments],
        )
