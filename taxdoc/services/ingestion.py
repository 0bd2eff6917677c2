"""
Tax Notice Ingestion Pipeline

Drives one document from "just arrived" to "processed or failed":

  1. Read existing blob metadata (MessageId / EmailId / Status)
  2. Submit the document URL to Content Understanding
  3. Poll the analysis job until terminal or the budget runs out
  4. Re-fetch the final job status and extract the schema fields
  5. Write fields + MessageId / EmailId / Status=Processed in one metadata call
  6. Move the blob to the processed container (verified copy, then delete)

Status outcomes (recorded on DocumentContext.status):
  Relocated                     success
  BlobMetadataError             step 1 could not read the blob
  ContentUnderstandingApiError  submission rejected, no job handle, or HTTP error
  ContentUnderstandingTimeout   job Failed, Canceled or never finished
  ProcessingFailed              job succeeded but the result had no fields object
  UnexpectedError               anything else, including steps 5 and 6

Invariants enforced here:
  - A failure status is terminal: every stage returns as soon as one is set.
  - Nothing is written to the blob unless extraction succeeded.
  - process() never raises. Failure statuses are NOT written back to the blob;
    a failed document stays in the source container with its old metadata.
"""

from __future__ import annotations

import logging
from typing import Mapping

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from taxdoc.analysis.client import ContentUnderstandingClient
from taxdoc.analysis.poller import JobPoller
from taxdoc.core.config import Settings, settings as default_settings
from taxdoc.extraction.extractor import FieldExtractor
from taxdoc.schemas.documents import ProcessingStatus
from taxdoc.services.context import DocumentContext
from taxdoc.services.relocation import RelocationManager
from taxdoc.storage.base import BlobNotFoundError, BlobStore

logger = logging.getLogger(__name__)

# Storage failures that mean "the source blob could not be read"
_METADATA_READ_ERRORS = (ClientError, BotoCoreError, BlobNotFoundError)


def _lookup(metadata: Mapping[str, str], key: str) -> str | None:
    """Case-insensitive metadata lookup (S3 lower-cases user metadata keys)."""
    wanted = key.lower()
    for k, v in metadata.items():
        if k.lower() == wanted:
            return v
    return None


class IngestionPipeline:
    """
    One instance per invocation. All collaborators are injected
    (testable, no hidden globals).

    Constructor args:
        store                 : BlobStore holding both containers
        analysis              : Content Understanding client (submit + get_job_status)
        source_container      : where new documents arrive
        destination_container : where processed documents are moved
        poller / extractor / relocator : override the defaults built from the above
    """

    def __init__(
        self,
        store:                 BlobStore,
        analysis:              ContentUnderstandingClient,
        source_container:      str = "incoming",
        destination_container: str = "processed",
        poll_timeout:          float = 30.0,
        poll_interval:         float = 2.0,
        poller:                JobPoller | None = None,
        extractor:             FieldExtractor | None = None,
        relocator:             RelocationManager | None = None,
    ) -> None:
        self._store       = store
        self._analysis    = analysis
        self._source      = source_container
        self._destination = destination_container
        self._poll_timeout  = poll_timeout
        self._poll_interval = poll_interval
        self._poller      = poller or JobPoller(analysis)
        self._extractor   = extractor or FieldExtractor()
        self._relocator   = relocator or RelocationManager(store)

    @classmethod
    def from_settings(
        cls,
        store:    BlobStore,
        analysis: ContentUnderstandingClient,
        cfg:      Settings | None = None,
    ) -> "IngestionPipeline":
        cfg = cfg or default_settings
        return cls(
            store=store,
            analysis=analysis,
            source_container=cfg.source_container,
            destination_container=cfg.destination_container,
            poll_timeout=cfg.job_poll_timeout_seconds,
            poll_interval=cfg.job_poll_interval_seconds,
            relocator=RelocationManager(
                store,
                timeout=cfg.copy_timeout_seconds,
                interval=cfg.copy_poll_interval_seconds,
            ),
        )

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def process(self, name: str) -> DocumentContext:
        ctx = DocumentContext(name=name, container=self._source)
        logger.info("Ingest start | container=%s doc=%s", self._source, name)

        try:
            await self._run(ctx)
        except Exception as exc:
            logger.exception("Unexpected error processing blob | doc=%s", name)
            ctx.status = ProcessingStatus.UNEXPECTED_ERROR
            ctx.error = f"{type(exc).__name__}: {exc}"

        log = logger.info if ctx.status is ProcessingStatus.RELOCATED else logger.warning
        log("Ingest end | doc=%s status=%s error=%s", name, ctx.status.value, ctx.error or "-")
        return ctx

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, ctx: DocumentContext) -> None:
        name = ctx.name

        # ---- Step 1: Read existing metadata --------------------------
        try:
            metadata = await self._store.get_metadata(self._source, name)
        except _METADATA_READ_ERRORS as exc:
            logger.error("Failed to get properties for blob | doc=%s error=%s", name, exc)
            ctx.fail(ProcessingStatus.BLOB_METADATA_ERROR, str(exc))
            return

        ctx.message_id    = _lookup(metadata, "MessageId")
        ctx.email_id      = _lookup(metadata, "EmailId")
        ctx.stored_status = _lookup(metadata, "Status")
        ctx.advance(ProcessingStatus.METADATA_READ)
        logger.info(
            "Blob metadata | doc=%s message_id=%s email_id=%s status=%s",
            name, ctx.message_id, ctx.email_id, ctx.stored_status,
        )

        ctx.url = await self._store.document_url(self._source, name)

        # ---- Step 2: Submit to Content Understanding -----------------
        try:
            job = await self._analysis.submit(ctx.url)
        except httpx.HTTPError as exc:
            logger.error("HTTP error calling Content Understanding | doc=%s error=%s", name, exc)
            ctx.fail(ProcessingStatus.API_ERROR, str(exc))
            return

        if not job.operation_location:
            logger.error("Operation-Location is empty | doc=%s body=%s", name, job.response_body)
            ctx.fail(ProcessingStatus.API_ERROR, "analysis response carried no Operation-Location")
            return

        ctx.operation_location = job.operation_location
        ctx.advance(ProcessingStatus.SUBMITTED)

        # ---- Step 3: Poll until terminal -----------------------------
        ctx.advance(ProcessingStatus.POLLING)
        outcome = await self._poller.poll_until_terminal(
            job.operation_location,
            max_wait=self._poll_timeout,
            interval=self._poll_interval,
            label=name,
        )
        if not outcome.succeeded:
            # Failed, Canceled and timeout share one status
            logger.warning(
                "Content Understanding job timed out or failed | doc=%s state=%s job_status=%s",
                name, outcome.state.value, outcome.job_status or "-",
            )
            ctx.fail(
                ProcessingStatus.TIMEOUT,
                f"job {outcome.state.value} (last status: {outcome.job_status or 'none'})",
            )
            return

        # ---- Step 4: Final status + field extraction -----------------
        try:
            final_status = await self._analysis.get_job_status(job.operation_location)
        except httpx.HTTPError as exc:
            logger.error("HTTP error fetching final job status | doc=%s error=%s", name, exc)
            ctx.fail(ProcessingStatus.API_ERROR, str(exc))
            return

        extraction = self._extractor.extract(final_status)
        if not extraction.ok:
            logger.warning("Failed to extract fields | doc=%s", name)
            ctx.fail(ProcessingStatus.PROCESSING_FAILED, "analysis result has no contents[0].fields")
            return

        ctx.set_fields(extraction.fields)
        ctx.advance(ProcessingStatus.EXTRACTED)

        # ---- Step 5: Persist fields as blob metadata -----------------
        # Errors propagate to process() and surface as UnexpectedError
        await self._store.set_metadata(self._source, name, ctx.metadata_payload())
        logger.info("Metadata updated | doc=%s fields=%d", name, len(ctx.fields))

        # ---- Step 6: Relocate ----------------------------------------
        await self._relocator.relocate(self._source, name, self._destination)
        ctx.advance(ProcessingStatus.RELOCATED)


# ---------------------------------------------------------------------------
# Task publisher: thin abstraction over Celery .apply_async()
# Injected into the events router so it can be mocked in tests.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends one process_blob task per created object.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_blob_task(self, container: str, name: str) -> str:
        """Dispatch process_blob in a thread executor; returns the Celery task id."""
        import asyncio
        from taxdoc.workers.tasks import process_blob

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            lambda: process_blob.apply_async(kwargs={"name": name, "container": container}),
        )
        logger.info("Processing task published | container=%s doc=%s task_id=%s", container, name, result.id)
        return result.id
