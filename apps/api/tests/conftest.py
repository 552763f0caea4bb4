import os

# must be set before memorypipe is imported: settings, engine and Celery read them at import time
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["MEMORYPIPE_EMBEDDING_DIM"] = "8"
os.environ.setdefault("LOG_FORMAT", "dev")

from dataclasses import replace  # noqa: E402

import pytest  # noqa: E402

from memorypipe.core.config import settings  # noqa: E402
from memorypipe.core.errors import MalformedProviderResponse  # noqa: E402
from memorypipe.db.base import Base  # noqa: E402
from memorypipe.db.session import SessionLocal, engine  # noqa: E402
from memorypipe.services.audio_files import UploadStore  # noqa: E402
from memorypipe.services.llm.base import (  # noqa: E402
    EmbeddingResult,
    GenerationResult,
    Provider,
    TokenUsage,
    TranscriptionResult,
)
from memorypipe.services.llm.gateway import ProviderGateway  # noqa: E402
from memorypipe.worker import context as worker_context  # noqa: E402
from memorypipe.worker.context import PipelineContext  # noqa: E402


class FakeProvider(Provider):
    """In-memory provider; `fail` names the capabilities that raise."""

    def __init__(
        self,
        name: str = "fake",
        *,
        fail: tuple[str, ...] = (),
        summary: str = "A short summary.",
        label: str = "insight",
        transcript: str = "hello from the meeting",
        dim: int = 8,
        latency_ms: float = 1000.0,
        tokens: TokenUsage = TokenUsage(input=100, output=100),
    ) -> None:
        self.name = name
        self.fail = set(fail)
        self.summary = summary
        self.label = label
        self.transcript = transcript
        self.dim = dim
        self.latency_ms = latency_ms
        self.tokens = tokens
        self.calls: list[tuple[str, dict]] = []

    def _maybe_fail(self, capability: str) -> None:
        if capability in self.fail:
            raise MalformedProviderResponse(f"{self.name} {capability} down")

    def generate(self, prompt, *, system_prompt=None, temperature=0.7, max_tokens=1000):
        self.calls.append(("generate", {"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens}))
        self._maybe_fail("generate")
        text = self.label if prompt.startswith("Classify") else self.summary
        return GenerationResult(
            content=text,
            tokens=self.tokens,
            model=f"{self.name}-chat",
            latency_ms=self.latency_ms,
            provider=self.name,
        )

    def embed(self, text):
        self.calls.append(("embed", {"text": text}))
        self._maybe_fail("embed")
        return EmbeddingResult(
            vector=[0.1 * (i + 1) for i in range(self.dim)],
            model=f"{self.name}-embed",
            tokens=len(text.split()),
            provider=self.name,
        )

    def transcribe(self, audio_path, *, content_type, language=None):
        self.calls.append(("transcribe", {"audio_path": audio_path, "content_type": content_type}))
        self._maybe_fail("transcribe")
        return TranscriptionResult(
            text=self.transcript,
            language=language or "en",
            duration_seconds=12.5,
            speaker_count=2,
            model=f"{self.name}-whisper",
            provider=self.name,
        )

    def count(self, capability: str) -> int:
        return sum(1 for c, _ in self.calls if c == capability)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def primary():
    return FakeProvider("openai")


@pytest.fixture
def fallback():
    return FakeProvider("local")


@pytest.fixture
def gateway(primary, fallback):
    return ProviderGateway(primary, fallback, embedding_dim=settings.embedding_dim)


@pytest.fixture
def make_context(tmp_path, gateway):
    def _make(gw=None, **overrides) -> PipelineContext:
        return PipelineContext(
            settings=replace(settings, **overrides) if overrides else settings,
            session_factory=SessionLocal,
            gateway=gw or gateway,
            uploads=UploadStore(tmp_path),
        )

    return _make


@pytest.fixture
def context(make_context):
    ctx = make_context()
    worker_context.configure(ctx)
    yield ctx
    worker_context.configure(None)
