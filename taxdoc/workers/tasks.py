"""
Celery Tasks — Tax Notice Ingestion

Task: process_blob
  Runs IngestionPipeline.process() for one object in the source container
  and returns DocumentContext.summary(). The pipeline never raises, so the
  task always finishes SUCCESS at the Celery level; the document outcome is
  in the returned "status".

Task: health_check
  Round-trip probe for the taxnotices.health queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from celery import Task

from taxdoc.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="taxdoc.workers.tasks.process_blob",
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_blob(self: Task, *, name: str, container: str | None = None) -> dict[str, Any]:
    """Process one newly created blob. `container` defaults to the source container."""
    return run_async(_process_blob_async(name=name, container=container))


async def _process_blob_async(name: str, container: str | None) -> dict[str, Any]:
    from taxdoc.analysis.client import ContentUnderstandingClient
    from taxdoc.core.config import settings
    from taxdoc.services.ingestion import IngestionPipeline
    from taxdoc.storage.s3 import S3BlobStore

    if container and container != settings.source_container:
        logger.warning(
            "Ignoring blob outside source container | container=%s doc=%s",
            container, name,
        )
        return {"name": name, "container": container, "status": "skipped"}

    pipeline = IngestionPipeline.from_settings(
        store=S3BlobStore(settings),
        analysis=ContentUnderstandingClient.from_settings(settings),
        cfg=settings,
    )
    ctx = await pipeline.process(name)
    return ctx.summary()


@celery_app.task(name="taxdoc.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "service": "taxdoc-worker"}
