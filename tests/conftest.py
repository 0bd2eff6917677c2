"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy (all function-scoped):
  fake_clock        : manual monotonic clock whose sleep() advances time
  memory_store      : InMemoryBlobStore holding only the "incoming" container
  mock_analysis     : MagicMock(spec=ContentUnderstandingClient) with AsyncMock calls
  analyzer_fields   : a realistic result.contents[0].fields object
  job_result        : factory → full job status payload (dict)
  job_body          : factory → the same payload as JSON text
  mock_publisher    : TaskPublisher mock (no broker)
  async_client      : httpx.AsyncClient over ASGITransport(app)

Environment strategy:
  - No test talks to S3, Content Understanding or a Celery broker.
  - Settings are read from the environment defaults below, set BEFORE any
    taxdoc import so the cached Settings instance sees them.

How to run:
  pytest                          # all tests
  pytest -m pipeline              # orchestrator tests only
  pytest tests/unit/test_poller.py
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import AsyncGenerator, Iterable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any package imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("SOURCE_CONTAINER",      "incoming")
os.environ.setdefault("DESTINATION_CONTAINER", "processed")
os.environ.setdefault(
    "CONTENT_UNDERSTANDING_ENDPOINT",
    "https://cu.example.com/contentunderstanding/analyzers/tax-notice:analyze",
)
os.environ.setdefault("CONTENT_UNDERSTANDING_API_KEY", "test-api-key")
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("APP_ENV",               "development")


OPERATION_LOCATION = (
    "https://cu.example.com/contentunderstanding/analyzerResults/"
    "3b31320d-8bab-4f88-b19c-2322a7f11034?api-version=2025-05-01-preview"
)


# ─────────────────────────────────────────────────────────────────────────────
# Fake clock: drives poll loops without real time passing
# ─────────────────────────────────────────────────────────────────────────────

class FakeClock:
    """clock() returns virtual seconds; await sleep(n) advances by n."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ─────────────────────────────────────────────────────────────────────────────
# In-memory blob store
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class StoredBlob:
    content:  bytes
    metadata: dict[str, str] = field(default_factory=dict)


def _build_memory_store_class():
    from taxdoc.schemas.documents import CopyStatus
    from taxdoc.storage.base import BlobNotFoundError, BlobStore, CopyHandle

    class InMemoryBlobStore(BlobStore):
        """
        Dict-backed BlobStore.

        copy_statuses: optional scripted sequence returned by get_copy_status
        (the last entry repeats). When unset, a started copy reports SUCCESS.
        A scripted copy only lands in the destination once SUCCESS is reported.
        """

        def __init__(self, containers: Iterable[str] = ()) -> None:
            self.containers: dict[str, dict[str, StoredBlob]] = {c: {} for c in containers}
            self.copy_statuses: list[CopyStatus] = []
            self.calls: list[str] = []
            self._copy_checks = 0

        def put(self, container: str, key: str, content: bytes, metadata: dict | None = None) -> None:
            self.containers.setdefault(container, {})[key] = StoredBlob(content, dict(metadata or {}))

        def get(self, container: str, key: str) -> StoredBlob | None:
            return self.containers.get(container, {}).get(key)

        def _blob(self, container: str, key: str) -> StoredBlob:
            blob = self.get(container, key)
            if blob is None:
                raise BlobNotFoundError(f"{container}/{key}")
            return blob

        async def get_metadata(self, container, key):
            self.calls.append("get_metadata")
            return dict(self._blob(container, key).metadata)

        async def set_metadata(self, container, key, metadata):
            self.calls.append("set_metadata")
            self._blob(container, key).metadata = dict(metadata)

        async def start_copy(self, source_container, key, destination_container):
            self.calls.append("start_copy")
            blob = self._blob(source_container, key)
            if destination_container not in self.containers:
                raise BlobNotFoundError(destination_container)
            if not self.copy_statuses:
                self.put(destination_container, key, blob.content, blob.metadata)
            return CopyHandle(
                source_container=source_container,
                destination_container=destination_container,
                key=key,
                expected_size=len(blob.content),
            )

        async def get_copy_status(self, handle):
            self.calls.append("get_copy_status")
            if not self.copy_statuses:
                return CopyStatus.SUCCESS
            idx = min(self._copy_checks, len(self.copy_statuses) - 1)
            self._copy_checks += 1
            status = self.copy_statuses[idx]
            if status is CopyStatus.SUCCESS:
                src = self._blob(handle.source_container, handle.key)
                self.put(handle.destination_container, handle.key, src.content, src.metadata)
            return status

        async def delete(self, container, key):
            self.calls.append("delete")
            self._blob(container, key)
            del self.containers[container][key]

        async def create_container_if_absent(self, container):
            self.calls.append("create_container_if_absent")
            if container in self.containers:
                return False
            self.containers[container] = {}
            return True

        async def document_url(self, container, key):
            return f"https://storage.example.com/{container}/{key}?X-Amz-Signature=test"

    return InMemoryBlobStore


@pytest.fixture
def memory_store():
    store_cls = _build_memory_store_class()
    return store_cls(containers=["incoming"])


# ─────────────────────────────────────────────────────────────────────────────
# Analyzer payloads
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def analyzer_fields() -> dict:
    """result.contents[0].fields as Content Understanding returns it (subset filled)."""
    return {
        "taxpayer_name":        {"type": "string",  "valueString": "ACME Holdings LLC"},
        "tax_jurisdiction":     {"type": "string",  "valueString": "State of Ohio"},
        "notice_type":          {"type": "string",  "valueString": "Balance Due"},
        "ein_tax_id":           {"type": "string",  "valueString": "12-3456789"},
        "total_amount_due":     {"type": "number",  "valueNumber": 1234.5},
        "filing_deadline":      {"type": "date",    "valueDate": "2025-04-15"},
        "notice_number":        {"type": "string",  "valueString": "CP14"},
        "notice_date":          {"type": "date",    "valueDate": "2025-03-01"},
        "tax_period":           {"type": "string",  "valueString": "2024"},
        "dispute_or_appeal_deadline":     {"type": "date",    "valueDate": "2025-05-01"},
        "payment_coupon_remittance_slip": {"type": "boolean", "valueBoolean": True},
        "employee_id_number":   {"type": "number",  "valueNumber": 4471},
        "contact_phone_number": {"type": "string",  "valueString": "800-555-0100"},
        # present but carrying no typed value, as the analyzer emits for blanks
        "contact_fax_number":   {"type": "string"},
    }


@pytest.fixture
def job_result(analyzer_fields):
    """Factory: full job status payload as a dict."""
    def _build(status: str = "Succeeded", fields: dict | None = None, contents: list | None = None) -> dict:
        if contents is None:
            contents = [{
                "markdown": "# Notice",
                "fields":   analyzer_fields if fields is None else fields,
                "kind":     "document",
            }]
        return {
            "id":     "3b31320d-8bab-4f88-b19c-2322a7f11034",
            "status": status,
            "result": {
                "analyzerId": "tax-notice",
                "apiVersion": "2025-05-01-preview",
                "contents":   contents,
            },
        }
    return _build


@pytest.fixture
def job_body(job_result):
    """Factory: job status payload as JSON text."""
    def _build(status: str = "Succeeded", **kwargs) -> str:
        if status in ("Running", "NotStarted") and not kwargs:
            return json.dumps({"id": "3b31320d", "status": status})
        return json.dumps(job_result(status=status, **kwargs))
    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Mock Content Understanding client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_analysis():
    """
    Fully mocked ContentUnderstandingClient.
    submit() returns a job with OPERATION_LOCATION; get_job_status must be
    configured per test (side_effect list of bodies).
    """
    from taxdoc.analysis.client import AnalysisJob, ContentUnderstandingClient

    client = MagicMock(spec=ContentUnderstandingClient)
    client.submit = AsyncMock(return_value=AnalysisJob(
        operation_location=OPERATION_LOCATION,
        response_body='{"id": "3b31320d", "status": "Running"}',
    ))
    client.get_job_status = AsyncMock()
    return client


@pytest.fixture
def operation_location() -> str:
    return OPERATION_LOCATION


# ─────────────────────────────────────────────────────────────────────────────
# API fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_publisher():
    """TaskPublisher mock; every publish returns a fresh-looking task id."""
    from taxdoc.services.ingestion import TaskPublisher

    publisher = MagicMock(spec=TaskPublisher)
    publisher.publish_blob_task = AsyncMock(
        side_effect=lambda container, name: f"task-{name}"
    )
    return publisher


@pytest.fixture
def app_with_overrides(mock_publisher):
    """FastAPI app with the Celery publisher replaced by mock_publisher."""
    from taxdoc.api.v1.events import get_task_publisher
    from taxdoc.main import app

    app.dependency_overrides[get_task_publisher] = lambda: mock_publisher

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
