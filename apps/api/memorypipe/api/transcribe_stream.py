from __future__ import annotations

import os
import tempfile
import time

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from memorypipe.core.config import settings
from memorypipe.core.errors import ProviderError
from memorypipe.services.audio_files import SUPPORTED_AUDIO_FORMATS
from memorypipe.services.latency_monitor import LatencyMonitorRegistry
from memorypipe.services.llm.base import TranscriptionResult
from memorypipe.services.llm.gateway import ProviderGateway, build_gateway

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/transcribe", tags=["transcribe"])

# content type -> file suffix the providers can sniff
_SUFFIX_FOR_TYPE = {ct: ext for ext, ct in reversed(list(SUPPORTED_AUDIO_FORMATS.items()))}

PRIMARY_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.7


class StreamChunkResponse(BaseModel):
    text: str
    confidence: float
    is_partial: bool
    latency_warning: bool = False
    language: str | None = None
    timestamp: int | None = None
    latency_ms: float | None = None
    average_latency_ms: float | None = None


class ReleaseSessionResponse(BaseModel):
    ok: bool
    session_id: str
    released: bool


def get_monitors(request: Request) -> LatencyMonitorRegistry:
    registry = getattr(request.app.state, "latency_monitors", None)
    if registry is None:
        registry = LatencyMonitorRegistry(
            window_size=settings.latency_window_size,
            threshold_ms=settings.latency_threshold_ms,
            max_sessions=settings.latency_max_sessions,
            idle_ttl_sec=settings.latency_session_ttl_sec,
        )
        request.app.state.latency_monitors = registry
    return registry


def get_gateway(request: Request) -> ProviderGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = build_gateway(settings)
        request.app.state.gateway = gateway
    return gateway


def _transcribe_bytes(gateway: ProviderGateway, audio: bytes, content_type: str, language: str) -> TranscriptionResult:
    fd, path = tempfile.mkstemp(suffix=_SUFFIX_FOR_TYPE[content_type])
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(audio)
        return gateway.transcribe(path, content_type=content_type, language=language)
    finally:
        os.unlink(path)


@router.post("/stream", response_model=StreamChunkResponse)
async def transcribe_stream_chunk(
    request: Request,
    x_session_id: str | None = Header(default=None),
    x_timestamp: int = Header(default=0),
    x_language: str = Header(default="en"),
    monitors: LatencyMonitorRegistry = Depends(get_monitors),
    gateway: ProviderGateway = Depends(get_gateway),
) -> StreamChunkResponse:
    """
    Transcribe one live audio chunk for a streaming session.

    When the session's rolling latency is over the threshold the chunk is skipped
    (no provider call) and the caller is told to back off via latency_warning.
    """
    if not x_session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    content_type = (request.headers.get("content-type") or "audio/wav").split(";")[0].strip().lower()
    if content_type in ("application/octet-stream", ""):
        content_type = "audio/wav"
    if content_type not in _SUFFIX_FOR_TYPE:
        raise HTTPException(status_code=400, detail=f"Unsupported audio format: {content_type}")

    monitor = monitors.get(x_session_id)
    log = logger.bind(session_id=x_session_id, timestamp=x_timestamp)

    if not monitor.is_latency_acceptable():
        log.warning("stream_chunk_skipped", average_latency_ms=round(monitor.get_average_latency(), 1))
        return StreamChunkResponse(text="", confidence=0.0, is_partial=True, latency_warning=True)

    audio = await request.body()
    if not audio:
        raise HTTPException(status_code=400, detail="Audio chunk is empty")

    start = time.perf_counter()
    try:
        result = await run_in_threadpool(_transcribe_bytes, gateway, audio, content_type, x_language)
    except ProviderError as e:
        log.error("stream_transcription_failed", error=str(e))
        raise HTTPException(status_code=502, detail={"error": "Transcription failed", "details": str(e)})
    end = time.perf_counter()
    monitor.record_request(start, end)

    return StreamChunkResponse(
        text=result.text,
        confidence=PRIMARY_CONFIDENCE if result.provider == gateway.primary.name else FALLBACK_CONFIDENCE,
        is_partial=False,
        language=result.language,
        timestamp=x_timestamp,
        latency_ms=(end - start) * 1000.0,
        average_latency_ms=monitor.get_average_latency(),
    )


@router.delete("/stream/{session_id}", response_model=ReleaseSessionResponse)
def release_stream_session(
    session_id: str,
    monitors: LatencyMonitorRegistry = Depends(get_monitors),
) -> ReleaseSessionResponse:
    released = monitors.release(session_id)
    return ReleaseSessionResponse(ok=True, session_id=session_id, released=released)
