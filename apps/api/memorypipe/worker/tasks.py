from memorypipe.core.errors import PersistenceError, ProviderError
from memorypipe.schemas.jobs import JobKind
from memorypipe.worker.celery_app import celery_app
from memorypipe.worker.runner import run_stage

# Queue-level retry: provider and persistence failures back off exponentially.
# UnsupportedInputError is not listed, so bad input goes straight to failed.
RETRYABLE = (ProviderError, PersistenceError)


@celery_app.task(
    name="pipeline.transcription",
    autoretry_for=RETRYABLE,
    retry_backoff=2,
    retry_backoff_max=300,
    max_retries=2,
)
def process_transcription(job_id: int) -> dict:
    return run_stage(JobKind.TRANSCRIPTION, job_id)


@celery_app.task(
    name="pipeline.summarization",
    autoretry_for=RETRYABLE,
    retry_backoff=2,
    retry_backoff_max=300,
    max_retries=1,
)
def process_summarization(job_id: int) -> dict:
    return run_stage(JobKind.SUMMARIZATION, job_id)


@celery_app.task(
    name="pipeline.embedding",
    autoretry_for=RETRYABLE,
    retry_backoff=2,
    retry_backoff_max=300,
    max_retries=1,
)
def process_embedding(job_id: int) -> dict:
    return run_stage(JobKind.EMBEDDING, job_id)
