"""
Relocation Manager — verified move between containers

  1. create destination container (idempotent)
  2. start server-side copy to the same key, metadata preserved
  3. poll copy status every `interval` until it leaves PENDING or the
     deadline (computed once) passes
  4. SUCCESS → delete source
     anything else → CopyFailedError, source untouched

The source is never deleted without an observed SUCCESS on the destination.
There is no retry here; the caller decides what to do with the document.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from taxdoc.schemas.documents import CopyStatus
from taxdoc.storage.base import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_COPY_TIMEOUT_SECONDS  = 30.0
DEFAULT_COPY_INTERVAL_SECONDS = 1.0


class CopyFailedError(RuntimeError):
    """Copy ended in a non-success state or never left PENDING."""

    def __init__(self, key: str, status: CopyStatus) -> None:
        super().__init__(f"Copy operation for blob '{key}' failed with status: {status.value}")
        self.key = key
        self.status = status


@dataclass(frozen=True)
class RelocationResult:
    key:                   str
    source_container:      str
    destination_container: str
    copy_status:           CopyStatus
    status_checks:         int


class RelocationManager:

    def __init__(
        self,
        store:    BlobStore,
        timeout:  float = DEFAULT_COPY_TIMEOUT_SECONDS,
        interval: float = DEFAULT_COPY_INTERVAL_SECONDS,
        clock:    Callable[[], float] = time.monotonic,
        sleep:    Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store    = store
        self._timeout  = timeout
        self._interval = interval
        self._clock    = clock
        self._sleep    = sleep

    async def relocate(
        self,
        source_container:      str,
        key:                   str,
        destination_container: str,
    ) -> RelocationResult:
        logger.info("Moving blob | key=%s dst=%s", key, destination_container)

        await self._store.create_container_if_absent(destination_container)
        handle = await self._store.start_copy(source_container, key, destination_container)

        deadline = self._clock() + self._timeout
        status = await self._store.get_copy_status(handle)
        checks = 1
        while status is CopyStatus.PENDING and self._clock() < deadline:
            await self._sleep(self._interval)
            status = await self._store.get_copy_status(handle)
            checks += 1

        if status is not CopyStatus.SUCCESS:
            logger.error(
                "Copy did not complete, source kept | key=%s status=%s checks=%d",
                key, status.value, checks,
            )
            raise CopyFailedError(key, status)

        logger.info("Copy completed | key=%s checks=%d", key, checks)

        await self._store.delete(source_container, key)

        logger.info("Moved blob | key=%s src=%s dst=%s", key, source_container, destination_container)
        return RelocationResult(
            key=key,
            source_container=source_container,
            destination_container=destination_container,
            copy_status=status,
            status_checks=checks,
        )
