from __future__ import annotations

import structlog

from memorypipe.models.job import Job
from memorypipe.models.transcript import Transcript
from memorypipe.schemas.jobs import EmbeddingPayload, JobKind, TranscriptionPayload
from memorypipe.services.audio_files import detect_audio_format
from memorypipe.services.memories import create_placeholder_memory, find_source_memory
from memorypipe.worker.base import NextJob, PipelineWorker, StageResult

logger = structlog.get_logger(__name__)

# ~16 kB per second of 16 kHz / 8-bit mono; only used when the provider reports no duration
_BYTES_PER_SECOND_ESTIMATE = 16000


class TranscriptionWorker(PipelineWorker):
    kind = JobKind.TRANSCRIPTION

    def _stored(self, job: Job) -> StageResult | None:
        with self.session_factory() as db:
            transcript = db.query(Transcript).filter(Transcript.job_id == job.id).first()
            if transcript is None:
                return None
            memory = find_source_memory(
                db, owner_id=transcript.owner_id, source_type="transcript", source_id=str(transcript.id)
            )
        logger.info("transcript_replayed", job_id=job.id, transcript_id=transcript.id)
        return self._result(transcript, memory.id, replayed=True)

    def _result(self, transcript: Transcript, memory_id: int, *, replayed: bool = False) -> StageResult:
        embed = EmbeddingPayload(
            content=transcript.content,
            owner_id=transcript.owner_id,
            source_type="transcript",
            source_app=self.settings.transcript_source_app,
            memory_id=memory_id,
            source_id=str(transcript.id),
            originating_provider=transcript.provider,
        )
        return StageResult(
            record_id=transcript.id,
            next_job=NextJob(kind=JobKind.EMBEDDING, owner_id=transcript.owner_id, payload=embed.model_dump()),
            details={
                "transcript_id": transcript.id,
                "memory_id": memory_id,
                "language": transcript.language,
                "word_count": transcript.word_count,
                "speaker_count": transcript.speaker_count,
                "duration_seconds": transcript.duration_seconds,
                "provider": transcript.provider,
                "replayed": replayed,
            },
        )

    def process(self, job: Job, payload: TranscriptionPayload) -> StageResult:
        stored = self._stored(job)
        if stored is not None:
            return stored

        # format allow-list first: unsupported input fails fast and is never retried
        content_type = detect_audio_format(payload.file_path_ref)
        audio_path = self.context.uploads.resolve(payload.file_path_ref)

        result = self.gateway.transcribe(
            str(audio_path),
            content_type=content_type,
            language=payload.language,
        )

        duration = result.duration_seconds
        if duration is None:
            duration = float(-(-audio_path.stat().st_size // _BYTES_PER_SECOND_ESTIMATE))

        with self.persisting("transcript") as db:
            transcript = Transcript(
                job_id=job.id,
                owner_id=payload.owner_id,
                file_id=payload.file_id,
                content=result.text,
                language=result.language,
                duration_seconds=duration,
                speaker_count=result.speaker_count,
                word_count=result.word_count,
                provider=result.provider,
                model=result.model,
            )
            db.add(transcript)
            db.flush()

            memory = create_placeholder_memory(
                db,
                owner_id=payload.owner_id,
                content=result.text,
                source_app=self.settings.transcript_source_app,
                source_type="transcript",
                source_id=str(transcript.id),
            )
            db.commit()

        logger.info(
            "transcript_stored",
            transcript_id=transcript.id,
            file_id=payload.file_id,
            provider=result.provider,
            word_count=result.word_count,
        )
        return self._result(transcript, memory.id)
