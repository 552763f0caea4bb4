from celery import Celery
from celery.signals import worker_process_init

from memorypipe.core.celery_settings import broker_url, is_test_env, result_backend
from memorypipe.core.config import settings
from memorypipe.core.logging import setup_logging

PIPELINE_QUEUES = ("transcription", "summarization", "embedding")

# IMPORTANT: the variable name MUST be `celery_app`
celery_app = Celery(
    "memorypipe",
    broker=broker_url(),
    backend=result_backend(),
)

# Ensure tasks are discovered
celery_app.autodiscover_tasks(["memorypipe.worker"])

celery_app.conf.update(
    task_track_started=True,
    result_extended=True,
    enable_utc=True,
    timezone="UTC",
    # at-least-once: a job is only acked after its stage finished (or failed for good)
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # one queue per job kind
    task_routes={f"pipeline.{name}": {"queue": name} for name in PIPELINE_QUEUES},
    task_always_eager=is_test_env(),
)


@worker_process_init.connect
def _init_worker_process(**_kwargs) -> None:
    from memorypipe.worker.context import build_context, configure

    setup_logging("memorypipe-worker", settings.log_level, settings.log_format)
    configure(build_context(settings))


__all__ = ["celery_app"]
