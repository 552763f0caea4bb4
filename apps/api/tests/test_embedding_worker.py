import json

import pytest

from conftest import FakeProvider
from memorypipe.core.errors import AllProvidersFailed, TargetRecordMissing
from memorypipe.models.audit_log import AuditLogEntry
from memorypipe.models.memory import Memory
from memorypipe.schemas.jobs import JobKind
from memorypipe.services.jobs import create_job
from memorypipe.services.llm.gateway import ProviderGateway
from memorypipe.services.memories import create_placeholder_memory
from memorypipe.worker.embedding import EmbeddingWorker


def _memory(db, owner="user-1", content="Remember to renew the passport.") -> Memory:
    memory = create_placeholder_memory(db, owner_id=owner, content=content, source_app="notes", source_type="note")
    db.commit()
    return memory


def _job(db, memory_id, owner="user-1", **extra):
    payload = {
        "ownerId": owner,
        "content": "Remember to renew the passport.",
        "sourceType": "note",
        "sourceApp": "notes",
        "memoryId": memory_id,
    }
    payload.update(extra)
    return create_job(db, JobKind.EMBEDDING, owner, payload)


def _reload(db, memory_id) -> Memory:
    db.expire_all()
    return db.get(Memory, memory_id)


def test_embeds_and_classifies_with_defaults(db, make_context, primary):
    memory = _memory(db)

    result = EmbeddingWorker(make_context()).run(_job(db, memory.id))

    m = _reload(db, memory.id)
    assert m.embedding_vector is not None
    assert len(m.embedding_vector) == 8
    assert m.embedding_model == "openai-embed"
    assert m.memory_type == "insight"
    assert m.confidence_score == pytest.approx(0.8)
    assert m.intent_label == "general"
    assert m.usage_type == "general"
    assert result.next_job is None
    assert result.details["dim"] == 8

    classify = [c for c in primary.calls if c[0] == "generate"][0][1]
    assert classify["temperature"] == pytest.approx(0.1)
    assert classify["max_tokens"] == 10


def test_supplied_metadata_overrides_defaults(db, make_context):
    memory = _memory(db)
    job = _job(
        db,
        memory.id,
        confidenceScore=0.42,
        intentLabel="reminder",
        usageType="summary",
        tags=["tldr", "chat"],
        originatingProvider="openai",
    )

    EmbeddingWorker(make_context()).run(job)

    m = _reload(db, memory.id)
    assert m.confidence_score == pytest.approx(0.42)
    assert m.intent_label == "reminder"
    assert m.usage_type == "summary"
    assert json.loads(m.tags_json) == ["tldr", "chat"]
    assert m.originating_provider == "openai"


@pytest.mark.parametrize("label,expected", [("Task.", "task"), ("  FACT ", "fact"), ("maybe a todo?", "fact"), ('"irrelevant"', "irrelevant")])
def test_classification_labels_are_normalized(db, make_context, label, expected):
    gw = ProviderGateway(FakeProvider("openai", label=label))
    memory = _memory(db)

    EmbeddingWorker(make_context(gw)).run(_job(db, memory.id))

    assert _reload(db, memory.id).memory_type == expected


def test_classification_failure_defaults_to_fact(db, make_context):
    gw = ProviderGateway(FakeProvider("openai", fail=("generate",)), FakeProvider("local", fail=("generate",)))
    memory = _memory(db)

    EmbeddingWorker(make_context(gw)).run(_job(db, memory.id))

    m = _reload(db, memory.id)
    assert m.memory_type == "fact"
    assert m.embedding_vector is not None
    assert db.query(AuditLogEntry).count() == 0


def test_applying_same_job_twice_is_idempotent(db, make_context):
    memory = _memory(db)
    job = _job(db, memory.id)
    worker = EmbeddingWorker(make_context())

    worker.run(job)
    first = _reload(db, memory.id)
    snapshot = (list(first.embedding_vector), first.memory_type, first.confidence_score, first.tags_json)

    worker.run(job)
    second = _reload(db, memory.id)

    assert (list(second.embedding_vector), second.memory_type, second.confidence_score, second.tags_json) == snapshot
    assert db.query(Memory).count() == 1


def test_missing_memory_fails_before_provider_calls(db, make_context, primary):
    with pytest.raises(TargetRecordMissing):
        EmbeddingWorker(make_context()).run(_job(db, 999))

    assert primary.calls == []
    assert db.query(AuditLogEntry).one().job_kind == "embedding"


def test_memory_owned_by_someone_else_is_missing(db, make_context):
    memory = _memory(db, owner="user-2")

    with pytest.raises(TargetRecordMissing):
        EmbeddingWorker(make_context()).run(_job(db, memory.id, owner="user-1"))

    assert _reload(db, memory.id).embedding_vector is None


def test_embed_failure_leaves_placeholder_untouched(db, make_context):
    gw = ProviderGateway(FakeProvider("openai", fail=("embed",)), FakeProvider("local", fail=("embed",)))
    memory = _memory(db)

    with pytest.raises(AllProvidersFailed):
        EmbeddingWorker(make_context(gw)).run(_job(db, memory.id))

    m = _reload(db, memory.id)
    assert m.embedding_vector is None
    assert m.memory_type is None
    assert db.query(AuditLogEntry).count() == 1
