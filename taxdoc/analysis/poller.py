"""
Job Poller — bounded wait on an asynchronous analysis job

  ┌──────────────────────────────────────────────────────────────┐
  │ deadline = clock() + max_wait         (computed once)        │
  │ while clock() < deadline:                                    │
  │     body = GET operation_location                            │
  │     Succeeded          → SUCCEEDED (return body)             │
  │     Failed | Canceled  → FAILED    (stop immediately)        │
  │     anything else      → sleep(interval), loop               │
  │ → TIMED_OUT                                                  │
  └──────────────────────────────────────────────────────────────┘

Transport or parse errors end the poll as FAILED straight away; a broken
status call is never retried.

Worst case wall time is max_wait + interval (+ one status call).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

from taxdoc.schemas.documents import JobStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT_SECONDS = 30.0
DEFAULT_INTERVAL_SECONDS = 2.0

_TERMINAL_FAILURES = frozenset({JobStatus.FAILED.value, JobStatus.CANCELED.value})


class JobStatusSource(Protocol):
    async def get_job_status(self, operation_location: str) -> str: ...


class PollState(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED    = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollOutcome:
    """
    state       : how polling ended
    job_status  : last status string observed ("" if none was parsed)
    body        : last raw response body ("" if none was received)
    attempts    : number of status queries issued
    """
    state:      PollState
    job_status: str = ""
    body:       str = ""
    attempts:   int = 0

    @property
    def succeeded(self) -> bool:
        return self.state is PollState.SUCCEEDED


class JobPoller:
    """
    Constructor args:
        source : anything with `async get_job_status(handle) -> str`
        clock  : monotonic time source (seconds)
        sleep  : async sleep primitive

    clock/sleep are injectable so tests can drive the loop without real time.
    """

    def __init__(
        self,
        source: JobStatusSource,
        clock:  Callable[[], float] = time.monotonic,
        sleep:  Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._clock  = clock
        self._sleep  = sleep

    async def poll_until_terminal(
        self,
        job_handle: str,
        max_wait:   float = DEFAULT_MAX_WAIT_SECONDS,
        interval:   float = DEFAULT_INTERVAL_SECONDS,
        label:      str = "",
    ) -> PollOutcome:
        logger.info("Polling started | doc=%s max_wait=%.1fs interval=%.1fs", label, max_wait, interval)

        deadline = self._clock() + max_wait
        attempts = 0
        last_status = ""
        last_body = ""

        while self._clock() < deadline:
            attempts += 1
            try:
                last_body = await self._source.get_job_status(job_handle)
                last_status = _parse_status(last_body)
            except Exception:
                logger.exception("Polling error | doc=%s attempt=%d", label, attempts)
                return PollOutcome(PollState.FAILED, last_status, last_body, attempts)

            logger.info("Job status | doc=%s status=%s attempt=%d", label, last_status, attempts)

            if last_status == JobStatus.SUCCEEDED.value:
                return PollOutcome(PollState.SUCCEEDED, last_status, last_body, attempts)
            if last_status in _TERMINAL_FAILURES:
                logger.warning("Job %s | doc=%s", last_status, label)
                return PollOutcome(PollState.FAILED, last_status, last_body, attempts)

            await self._sleep(interval)

        logger.warning(
            "Polling timed out | doc=%s after=%.1fs attempts=%d last_status=%s",
            label, max_wait, attempts, last_status or "-",
        )
        return PollOutcome(PollState.TIMED_OUT, last_status, last_body, attempts)


def _parse_status(body: str) -> str:
    """Extract the top-level "status" string. Raises ValueError on a malformed body."""
    doc = json.loads(body)
    if not isinstance(doc, dict) or "status" not in doc:
        raise ValueError("job status response has no 'status' field")
    status = doc["status"]
    # Unknown values are kept as-is and treated as non-terminal by the caller
    return status if isinstance(status, str) else str(status)
