import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider
from memorypipe.api.transcribe_stream import get_gateway, get_monitors
from memorypipe.main import app
from memorypipe.services.latency_monitor import LatencyMonitorRegistry
from memorypipe.services.llm.gateway import ProviderGateway

AUDIO = b"RIFF" + b"\x00" * 128


@pytest.fixture
def stream_client():
    state = {
        "gateway": ProviderGateway(FakeProvider("openai"), FakeProvider("local")),
        "monitors": LatencyMonitorRegistry(window_size=3, threshold_ms=2000),
    }
    app.dependency_overrides[get_gateway] = lambda: state["gateway"]
    app.dependency_overrides[get_monitors] = lambda: state["monitors"]
    yield TestClient(app), state
    app.dependency_overrides.clear()


def _post(client, session_id="s-1", **headers):
    h = {"content-type": "audio/wav", "x-timestamp": "1700"}
    if session_id:
        h["x-session-id"] = session_id
    h.update(headers)
    return client.post("/transcribe/stream", content=AUDIO, headers=h)


def test_session_header_is_required(stream_client):
    client, _ = stream_client
    r = _post(client, session_id=None)
    assert r.status_code == 400


def test_chunk_is_transcribed_by_primary(stream_client):
    client, state = stream_client

    r = _post(client)

    assert r.status_code == 200
    body = r.json()
    assert body["text"] == "hello from the meeting"
    assert body["confidence"] == pytest.approx(0.8)
    assert body["is_partial"] is False
    assert body["latency_warning"] is False
    assert body["timestamp"] == 1700
    assert body["language"] == "en"
    assert body["latency_ms"] >= 0
    assert state["monitors"].get("s-1").sample_count == 1


def test_fallback_transcript_has_lower_confidence(stream_client):
    client, state = stream_client
    state["gateway"] = ProviderGateway(FakeProvider("openai", fail=("transcribe",)), FakeProvider("local"))

    body = _post(client).json()

    assert body["confidence"] == pytest.approx(0.7)


def test_slow_session_skips_chunk_without_provider_call(stream_client):
    client, state = stream_client
    primary = state["gateway"].primary
    monitor = state["monitors"].get("slow")
    for i in range(3):
        monitor.record_request(float(i), float(i) + 3.0)

    r = _post(client, session_id="slow")

    assert r.status_code == 200
    assert r.json() == {
        "text": "",
        "confidence": 0.0,
        "is_partial": True,
        "latency_warning": True,
        "language": None,
        "timestamp": None,
        "latency_ms": None,
        "average_latency_ms": None,
    }
    assert primary.calls == []
    # other sessions are unaffected
    assert _post(client, session_id="fast").json()["latency_warning"] is False


def test_all_providers_down_is_bad_gateway(stream_client):
    client, state = stream_client
    state["gateway"] = ProviderGateway(
        FakeProvider("openai", fail=("transcribe",)), FakeProvider("local", fail=("transcribe",))
    )

    r = _post(client)

    assert r.status_code == 502
    assert r.json()["detail"]["error"] == "Transcription failed"


def test_unsupported_content_type_is_rejected(stream_client):
    client, _ = stream_client
    assert _post(client, **{"content-type": "audio/ogg"}).status_code == 400


def test_release_session(stream_client):
    client, state = stream_client
    _post(client, session_id="s-9")

    r = client.delete("/transcribe/stream/s-9")

    assert r.status_code == 200
    assert r.json() == {"ok": True, "session_id": "s-9", "released": True}
    assert client.delete("/transcribe/stream/s-9").json()["released"] is False
