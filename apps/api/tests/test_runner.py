import pytest

from memorypipe.core.errors import PersistenceError, TargetRecordMissing, UnsupportedAudioFormat
from memorypipe.models.audit_log import AuditLogEntry
from memorypipe.models.job import Job
from memorypipe.models.memory import Memory
from memorypipe.models.summary import Summary
from memorypipe.models.transcript import Transcript
from memorypipe.schemas.jobs import JobKind
from memorypipe.services.job_dispatch import enqueue_job
from memorypipe.services.jobs import create_job, get_job_payload
from memorypipe.worker.base import PipelineWorker
from memorypipe.worker.runner import run_stage


class RecordingDispatch:
    def __init__(self):
        self.calls = []

    def __call__(self, db, kind, owner_id, payload, parent_job_id=None):
        self.calls.append((kind, payload))
        # the stage's result must already be visible when the follow-on job is created
        assert db.query(Summary).count() == 1
        return create_job(db, kind, owner_id, payload, parent_job_id=parent_job_id)


def test_summarization_chains_exactly_one_embedding_job(db, context):
    job = create_job(
        db,
        JobKind.SUMMARIZATION,
        "user-1",
        {"owner_id": "user-1", "content": "We met. " * 60, "source_id": "m-1", "source_type": "meeting", "format": "tldr"},
    )
    dispatch = RecordingDispatch()

    out = run_stage(JobKind.SUMMARIZATION, job.id, context=context, dispatch=dispatch)

    assert out["ok"] is True
    assert out["next_job_kind"] == "embedding"
    assert len(dispatch.calls) == 1

    child = db.get(Job, out["next_job_id"])
    assert child.kind == "embedding"
    assert child.parent_job_id == job.id
    assert get_job_payload(child)["source_id"] == str(out["summary_id"])


def test_embedding_stage_has_no_follow_on(db, context):
    memory = Memory(owner_id="user-1", content="x", source_app="notes", source_type="note", tags_json="[]")
    db.add(memory)
    db.commit()
    job = create_job(
        db,
        JobKind.EMBEDDING,
        "user-1",
        {"owner_id": "user-1", "content": "x", "source_type": "note", "source_app": "notes", "memory_id": memory.id},
    )
    dispatch = RecordingDispatch()

    out = run_stage("embedding", job.id, context=context, dispatch=dispatch)

    assert "next_job_id" not in out
    assert dispatch.calls == []


def test_failed_stage_enqueues_nothing(db, context):
    job = create_job(db, JobKind.TRANSCRIPTION, "user-1", {"owner_id": "user-1", "file_id": "f", "file_path_ref": "x.flac"})
    dispatch = RecordingDispatch()

    with pytest.raises(UnsupportedAudioFormat):
        run_stage(JobKind.TRANSCRIPTION, job.id, context=context, dispatch=dispatch)

    assert dispatch.calls == []


def test_unknown_job_is_audited(db, context):
    with pytest.raises(TargetRecordMissing):
        run_stage(JobKind.EMBEDDING, 12345, context=context)

    entry = db.query(AuditLogEntry).one()
    assert entry.job_id == "12345"
    assert entry.owner_id == "unknown"


def test_enqueue_runs_whole_chain_eagerly_in_test_env(db, tmp_path, context):
    (tmp_path / "standup.wav").write_bytes(b"RIFF")

    job = enqueue_job(
        db,
        JobKind.TRANSCRIPTION,
        "user-1",
        {"ownerId": "user-1", "fileId": "file-1", "filePathRef": "standup.wav"},
    )

    db.expire_all()
    children = db.query(Job).filter(Job.parent_job_id == job.id).all()
    assert [c.kind for c in children] == ["embedding"]

    memory = db.query(Memory).filter(Memory.source_type == "transcript").one()
    assert memory.embedding_vector is not None
    assert memory.memory_type == "insight"
    assert memory.source_app == "yonder"


class RecordingResubmit:
    def __init__(self):
        self.jobs = []

    def __call__(self, job):
        self.jobs.append(job.id)


class BrokerDown:
    """Creates the child row, then fails to hand it to the broker."""

    def __call__(self, db, kind, owner_id, payload, parent_job_id=None):
        create_job(db, kind, owner_id, payload, parent_job_id=parent_job_id)
        raise ConnectionError("broker down")


def _summarization_job(db):
    return create_job(
        db,
        JobKind.SUMMARIZATION,
        "user-1",
        {"owner_id": "user-1", "content": "We met. " * 20, "source_id": "m-1", "source_type": "meeting", "format": "bullets"},
    )


def test_redelivered_summarization_replays_stored_summary(db, context, primary):
    job = _summarization_job(db)
    dispatch, resubmit = RecordingDispatch(), RecordingResubmit()

    first = run_stage(JobKind.SUMMARIZATION, job.id, context=context, dispatch=dispatch, resubmit=resubmit)
    second = run_stage(JobKind.SUMMARIZATION, job.id, context=context, dispatch=dispatch, resubmit=resubmit)

    assert second["replayed"] is True
    assert second["summary_id"] == first["summary_id"]
    assert second["next_job_id"] == first["next_job_id"]
    assert primary.count("generate") == 1
    assert db.query(Summary).count() == 1
    assert db.query(Memory).count() == 1
    assert db.query(Job).filter(Job.parent_job_id == job.id).count() == 1
    assert len(dispatch.calls) == 1
    assert resubmit.jobs == [first["next_job_id"]]


def test_redelivered_transcription_replays_stored_transcript(db, tmp_path, context, primary):
    (tmp_path / "standup.wav").write_bytes(b"RIFF")
    job = create_job(
        db,
        JobKind.TRANSCRIPTION,
        "user-1",
        {"ownerId": "user-1", "fileId": "file-1", "filePathRef": "standup.wav"},
    )
    resubmit = RecordingResubmit()

    def dispatch(db, kind, owner_id, payload, parent_job_id=None):
        return create_job(db, kind, owner_id, payload, parent_job_id=parent_job_id)

    first = run_stage(JobKind.TRANSCRIPTION, job.id, context=context, dispatch=dispatch, resubmit=resubmit)
    second = run_stage(JobKind.TRANSCRIPTION, job.id, context=context, dispatch=dispatch, resubmit=resubmit)

    assert second["transcript_id"] == first["transcript_id"]
    assert second["memory_id"] == first["memory_id"]
    assert primary.count("transcribe") == 1
    assert db.query(Transcript).count() == 1
    assert db.query(Memory).count() == 1
    assert db.query(Job).filter(Job.parent_job_id == job.id).count() == 1
    assert resubmit.jobs == [first["next_job_id"]]


def test_enqueue_failure_is_audited_and_retryable(db, context):
    job = _summarization_job(db)

    with pytest.raises(PersistenceError, match="broker down"):
        run_stage(JobKind.SUMMARIZATION, job.id, context=context, dispatch=BrokerDown())

    entry = db.query(AuditLogEntry).one()
    assert entry.job_id == str(job.id)
    assert entry.job_kind == "summarization"
    assert "Failed to enqueue embedding job" in entry.error_message
    assert db.query(Summary).count() == 1

    # the queue retries: the stored summary is replayed and the orphaned child is submitted
    resubmit = RecordingResubmit()
    out = run_stage(JobKind.SUMMARIZATION, job.id, context=context, dispatch=RecordingDispatch(), resubmit=resubmit)

    children = db.query(Job).filter(Job.parent_job_id == job.id).all()
    assert len(children) == 1
    assert resubmit.jobs == [children[0].id]
    assert out["next_job_id"] == children[0].id
    assert db.query(Summary).count() == 1


def test_pipeline_worker_is_abstract(context):
    with pytest.raises(TypeError):
        PipelineWorker(context)
