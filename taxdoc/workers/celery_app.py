"""
Celery Application Factory

Runs the ingestion pipeline off the request path. One task = one document.

Queue topology:
  taxnotices.ingest   blob-created events, one message per object
  taxnotices.health   internal health-check tasks

Each message carries only the container and key; the worker reads the
blob itself. Redelivery on worker loss is the only retry mechanism: the
pipeline does not retry a document on its own.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from taxdoc.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

INGEST_EXCHANGE = Exchange("taxnotices", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "taxnotices.ingest",
        exchange=INGEST_EXCHANGE,
        routing_key="taxnotices.ingest",
        durable=True,
    ),
    Queue(
        "taxnotices.health",
        INGEST_EXCHANGE,
        routing_key="taxnotices.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "taxdoc.workers.tasks.process_blob": {"queue": "taxnotices.ingest"},
    "taxdoc.workers.tasks.health_check": {"queue": "taxnotices.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("taxdoc")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="taxnotices.ingest",
        task_default_exchange="taxnotices",
        task_default_routing_key="taxnotices.ingest",

        # --- Reliability ---
        task_acks_late=True,         # ack only after the pipeline returns
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Timeouts ---
        # job poll (30 s) + copy wait (30 s) + HTTP/S3 round trips
        task_soft_time_limit=120,
        task_time_limit=150,

        result_expires=3600,

        timezone="UTC",
        enable_utc=True,

        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["taxdoc.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: structured task lifecycle logging
# ---------------------------------------------------------------------------

@after_setup_logger.connect
def on_after_setup_logger(logger, **_):
    logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, (kwargs or {}).get("name", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    outcome = retval.get("status", "?") if isinstance(retval, dict) else "?"
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s status=%s",
        task_id, task.name, state, (kwargs or {}).get("name", "?"), outcome,
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, (kwargs or {}).get("name", "?"), exception,
        exc_info=True,
    )
