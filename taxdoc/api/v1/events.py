"""
Blob Event Intake Router
POST /api/v1/events/blob-created

Receives S3 event notifications (directly, or relayed by SNS/EventBridge
with the S3 payload as body) and queues one ingestion task per created
object in the source container. Processing is asynchronous; the response
only lists what was queued.

Records are skipped, not rejected, when they are not ObjectCreated events
or target another bucket, so one stray record never blocks a batch.

If the broker fails partway through a batch the request answers 503. Tasks
published before the failure stay queued and cannot be recalled, so the
503 details list the failing record first (code QUEUE_ERROR), then one
QUEUED entry per record already sent, with its task id. A sender that
retries the whole batch re-queues those. A duplicate that runs after the
first one moved the blob ends as BlobMetadataError without side effects.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from taxdoc.core.config import settings
from taxdoc.schemas.documents import (
    BlobCreatedEvent,
    BlobCreatedResponse,
    EnqueuedDocument,
    ErrorDetail,
    ErrorResponse,
)
from taxdoc.services.ingestion import TaskPublisher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/events",
    tags=["Blob Events"],
)


def get_task_publisher() -> TaskPublisher:
    return TaskPublisher()


@router.post(
    "/blob-created",
    response_model=BlobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue newly created blobs for ingestion",
    responses={
        202: {"model": BlobCreatedResponse, "description": "Matching records queued"},
        422: {"model": ErrorResponse, "description": "Payload is not an S3 event notification"},
        503: {"model": ErrorResponse, "description": "Message broker unavailable"},
    },
)
async def blob_created(
    event:     BlobCreatedEvent,
    publisher: TaskPublisher = Depends(get_task_publisher),
) -> BlobCreatedResponse:
    response = BlobCreatedResponse()

    for record in event.Records:
        if not record.eventName.startswith("ObjectCreated") or record.container != settings.source_container:
            response.skipped.append(f"{record.container}/{record.key}")
            continue

        try:
            task_id = await publisher.publish_blob_task(record.container, record.key)
        except Exception as exc:
            logger.error(
                "Failed to publish processing task | doc=%s queued=%d error=%s",
                record.key, len(response.accepted), exc,
            )
            queued = [
                ErrorDetail(
                    field=f"{doc.container}/{doc.name}",
                    message=f"queued as task {doc.task_id}",
                    code="QUEUED",
                )
                for doc in response.accepted
            ]
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ErrorResponse(
                    error_code="QUEUE_ERROR",
                    message="Event could not be queued for processing.",
                    details=[
                        ErrorDetail(
                            field=f"{record.container}/{record.key}",
                            message=str(exc),
                            code="QUEUE_ERROR",
                        ),
                        *queued,
                    ],
                ).model_dump(),
            ) from exc

        response.accepted.append(
            EnqueuedDocument(container=record.container, name=record.key, task_id=task_id)
        )

    logger.info(
        "Blob events | accepted=%d skipped=%d",
        len(response.accepted), len(response.skipped),
    )
    return response
