"""
Unit Tests — Relocation Manager
═══════════════════════════════
Tests for taxdoc/services/relocation.py against the in-memory blob store.

Coverage:
  ✅ Success: destination created, content + metadata copied, source deleted
  ✅ Pending → Success polls at the configured interval
  ✅ Failed / Aborted copy raises CopyFailedError and keeps the source
  ✅ Copy still pending at the deadline raises and keeps the source
  ✅ Existing destination container is reused
  ✅ The move is logged as plain key=value pairs
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest

from taxdoc.schemas.documents import CopyStatus
from taxdoc.services.relocation import CopyFailedError, RelocationManager


def _manager(store, clock, timeout: float = 30, interval: float = 1) -> RelocationManager:
    return RelocationManager(store, timeout=timeout, interval=interval, clock=clock, sleep=clock.sleep)


@pytest.mark.unit
@pytest.mark.storage
class TestRelocationManager:

    async def test_success_moves_blob(self, memory_store, fake_clock):
        memory_store.put("incoming", "notice.pdf", b"%PDF-1.7 body", {"Status": "Processed"})

        result = await _manager(memory_store, fake_clock).relocate("incoming", "notice.pdf", "processed")

        assert result.copy_status is CopyStatus.SUCCESS
        assert result.status_checks == 1
        assert memory_store.get("incoming", "notice.pdf") is None
        moved = memory_store.get("processed", "notice.pdf")
        assert moved.content == b"%PDF-1.7 body"
        assert moved.metadata == {"Status": "Processed"}
        assert memory_store.calls == [
            "create_container_if_absent", "start_copy", "get_copy_status", "delete",
        ]

    async def test_move_logged_with_source_and_destination(self, memory_store, fake_clock, caplog):
        memory_store.put("incoming", "notice.pdf", b"data")

        with caplog.at_level(logging.INFO, logger="taxdoc.services.relocation"):
            await _manager(memory_store, fake_clock).relocate("incoming", "notice.pdf", "processed")

        assert "Moved blob | key=notice.pdf src=incoming dst=processed" in caplog.text
        assert "→" not in caplog.text

    async def test_pending_then_success(self, memory_store, fake_clock):
        memory_store.put("incoming", "notice.pdf", b"data")
        memory_store.copy_statuses = [CopyStatus.PENDING, CopyStatus.PENDING, CopyStatus.SUCCESS]

        result = await _manager(memory_store, fake_clock, interval=1).relocate(
            "incoming", "notice.pdf", "processed",
        )

        assert result.status_checks == 3
        assert fake_clock.sleeps == [1, 1]
        assert memory_store.get("processed", "notice.pdf").content == b"data"
        assert memory_store.get("incoming", "notice.pdf") is None

    @pytest.mark.parametrize("status", [CopyStatus.FAILED, CopyStatus.ABORTED])
    async def test_failed_copy_keeps_source(self, memory_store, fake_clock, status):
        memory_store.put("incoming", "notice.pdf", b"data")
        memory_store.copy_statuses = [CopyStatus.PENDING, status]

        with pytest.raises(CopyFailedError) as exc_info:
            await _manager(memory_store, fake_clock).relocate("incoming", "notice.pdf", "processed")

        assert exc_info.value.status is status
        assert exc_info.value.key == "notice.pdf"
        assert str(exc_info.value) == (
            f"Copy operation for blob 'notice.pdf' failed with status: {status.value}"
        )
        assert memory_store.get("incoming", "notice.pdf").content == b"data"
        assert "delete" not in memory_store.calls

    async def test_pending_at_deadline_keeps_source(self, memory_store, fake_clock):
        memory_store.put("incoming", "notice.pdf", b"data")
        memory_store.copy_statuses = [CopyStatus.PENDING]

        with pytest.raises(CopyFailedError) as exc_info:
            await _manager(memory_store, fake_clock, timeout=5, interval=1).relocate(
                "incoming", "notice.pdf", "processed",
            )

        assert exc_info.value.status is CopyStatus.PENDING
        # first check at t=0, then one per second until t=5
        assert memory_store.calls.count("get_copy_status") == 6
        assert memory_store.get("incoming", "notice.pdf") is not None
        assert memory_store.get("processed", "notice.pdf") is None

    async def test_existing_destination_reused(self, memory_store, fake_clock):
        memory_store.put("processed", "older.pdf", b"old")
        memory_store.put("incoming", "notice.pdf", b"new")

        await _manager(memory_store, fake_clock).relocate("incoming", "notice.pdf", "processed")

        assert set(memory_store.containers["processed"]) == {"older.pdf", "notice.pdf"}

    async def test_start_copy_error_propagates_without_delete(self, fake_clock):
        store = AsyncMock()
        store.start_copy = AsyncMock(side_effect=RuntimeError("copy refused"))

        with pytest.raises(RuntimeError, match="copy refused"):
            await _manager(store, fake_clock).relocate("incoming", "notice.pdf", "processed")

        store.delete.assert_not_awaited()
