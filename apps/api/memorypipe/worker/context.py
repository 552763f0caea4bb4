from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from memorypipe.core.config import Settings, settings as default_settings
from memorypipe.services.audio_files import UploadStore
from memorypipe.services.llm.gateway import ProviderGateway, build_gateway


@dataclass
class PipelineContext:
    """Everything a pipeline worker needs, built once per worker process and passed in."""

    settings: Settings
    session_factory: Callable[[], Session]
    gateway: ProviderGateway
    uploads: UploadStore


def build_context(cfg: Settings = default_settings) -> PipelineContext:
    from memorypipe.db.session import SessionLocal

    return PipelineContext(
        settings=cfg,
        session_factory=SessionLocal,
        gateway=build_gateway(cfg),
        uploads=UploadStore(cfg.upload_dir),
    )


_context: PipelineContext | None = None


def configure(context: PipelineContext | None) -> None:
    """Install the context used by Celery tasks (worker start-up, or a test fixture)."""
    global _context
    _context = context


def get_context() -> PipelineContext:
    if _context is None:
        configure(build_context())
    return _context  # type: ignore[return-value]
