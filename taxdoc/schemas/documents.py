"""
Ingestion Pipeline — Status Enums and Pydantic Schemas

Covers:
  - The per-document pipeline state machine (ProcessingStatus)
  - Job states reported by Content Understanding (JobStatus)
  - Server-side copy states reported by the blob store (CopyStatus)
  - Request/response bodies of POST /api/v1/events/blob-created
  - The uniform structured error envelope

Design decisions:
  - Enum values are the exact strings that appear in logs and task results,
    so an operator can grep either side with the same token.
  - Failure statuses are terminal. The pipeline never advances past one.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import unquote_plus

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Processing pipeline state machine
# ---------------------------------------------------------------------------

class ProcessingStatus(str, Enum):
    """
    Transitions:
      Received → MetadataRead → Submitted → Polling → Extracted → Relocated
    Any stage may instead end in one of the failure statuses.
    """
    RECEIVED      = "Received"
    METADATA_READ = "MetadataRead"
    SUBMITTED     = "Submitted"
    POLLING       = "Polling"
    EXTRACTED     = "Extracted"
    RELOCATED     = "Relocated"

    BLOB_METADATA_ERROR = "BlobMetadataError"
    API_ERROR           = "ContentUnderstandingApiError"
    TIMEOUT             = "ContentUnderstandingTimeout"
    PROCESSING_FAILED   = "ProcessingFailed"
    UNEXPECTED_ERROR    = "UnexpectedError"

    @property
    def is_failure(self) -> bool:
        return self in FAILURE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is ProcessingStatus.RELOCATED or self.is_failure


FAILURE_STATUSES: frozenset[ProcessingStatus] = frozenset(
    {
        ProcessingStatus.BLOB_METADATA_ERROR,
        ProcessingStatus.API_ERROR,
        ProcessingStatus.TIMEOUT,
        ProcessingStatus.PROCESSING_FAILED,
        ProcessingStatus.UNEXPECTED_ERROR,
    }
)

# Value written to the blob's Status metadata key after a successful pass
PROCESSED_MARKER = "Processed"


class JobStatus(str, Enum):
    """Analysis job states. Anything not listed is treated as still running."""
    NOT_STARTED = "NotStarted"
    RUNNING     = "Running"
    SUCCEEDED   = "Succeeded"
    FAILED      = "Failed"
    CANCELED    = "Canceled"


class CopyStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED  = "failed"
    ABORTED = "aborted"


# ---------------------------------------------------------------------------
# Event intake: S3 event notification shape
# ---------------------------------------------------------------------------

class S3BucketRef(BaseModel):
    name: str


class S3ObjectRef(BaseModel):
    key:  str
    size: int | None = None


class S3EntityRef(BaseModel):
    bucket: S3BucketRef
    object: S3ObjectRef


class BlobCreatedRecord(BaseModel):
    """One record of an S3 event notification (ObjectCreated:*)."""
    eventName: str = Field("ObjectCreated:Put", description="S3 event type")
    s3:        S3EntityRef

    @property
    def container(self) -> str:
        return self.s3.bucket.name

    @property
    def key(self) -> str:
        # S3 URL-encodes keys in notifications ("+" for spaces)
        return unquote_plus(self.s3.object.key)


class BlobCreatedEvent(BaseModel):
    Records: list[BlobCreatedRecord] = Field(default_factory=list)


class EnqueuedDocument(BaseModel):
    container: str
    name:      str
    task_id:   str | None = None


class BlobCreatedResponse(BaseModel):
    """HTTP 202 — documents are queued, processing is asynchronous."""
    accepted: list[EnqueuedDocument] = Field(default_factory=list)
    skipped:  list[str]              = Field(
        default_factory=list,
        description="Keys ignored because they were not ObjectCreated events "
                    "or did not target the source container",
    )


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")
