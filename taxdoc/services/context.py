"""Per-document state carried through one pipeline invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from taxdoc.schemas.documents import PROCESSED_MARKER, ProcessingStatus


class TerminalStatusError(RuntimeError):
    """Attempt to move a document out of a terminal failure status."""


@dataclass
class DocumentContext:
    """
    Created when the event arrives and discarded when the invocation returns.
    Nothing here is persisted except, on success, `metadata_payload()`.
    """
    name:      str
    url:       str = ""
    container: str = ""

    message_id:     str | None = None
    email_id:       str | None = None
    stored_status:  str | None = None   # Status metadata found on the blob

    status:             ProcessingStatus = ProcessingStatus.RECEIVED
    fields:             dict[str, str] = field(default_factory=dict)
    operation_location: str = ""
    error:              str | None = None

    def advance(self, status: ProcessingStatus) -> None:
        if self.status.is_failure:
            raise TerminalStatusError(
                f"{self.name}: already {self.status.value}, cannot move to {status.value}"
            )
        self.status = status

    def fail(self, status: ProcessingStatus, reason: str) -> None:
        if not status.is_failure:
            raise ValueError(f"{status.value} is not a failure status")
        self.advance(status)
        self.error = reason

    def set_fields(self, fields: Mapping[str, str]) -> None:
        """Replace the field map wholesale."""
        self.fields = dict(fields)

    def metadata_payload(self) -> dict[str, str]:
        """The single metadata map written onto the blob after extraction."""
        return {
            "MessageId": self.message_id or "",
            "EmailId":   self.email_id or "",
            "Status":    PROCESSED_MARKER,
            **self.fields,
        }

    def summary(self) -> dict[str, Any]:
        """JSON-serialisable outcome, returned from the Celery task."""
        return {
            "name":       self.name,
            "container":  self.container,
            "status":     self.status.value,
            "message_id": self.message_id,
            "email_id":   self.email_id,
            "error":      self.error,
            "fields":     dict(self.fields),
        }
