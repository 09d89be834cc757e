"""Remote job polling.

Providers that run as asynchronous remote jobs are polled at a fixed interval
until records appear, the job reaches a terminal state, or the wait budget is
spent:

    PENDING -> RUNNING -> {SUCCEEDED, FAILED, TIMED_OUT}
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})


@dataclass
class JobSnapshot:
    """One observation of a remote job."""

    state: JobState
    items: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PollOutcome:
    state: JobState
    items: List[Dict[str, Any]]
    polls: int
    elapsed_seconds: float


class JobPoller:
    """Poll a job via ``check()`` until it yields records or stops."""

    def __init__(
        self,
        interval_seconds: float = 2.0,
        max_wait_seconds: float = 120.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.max_wait_seconds = max_wait_seconds
        self._sleep = sleep
        self._clock = clock

    @property
    def max_polls(self) -> int:
        # One poll at t=0 plus one per interval inside the budget.
        return max(1, math.floor(self.max_wait_seconds / self.interval_seconds) + 1)

    async def run(self, check: Callable[[], Awaitable[JobSnapshot]]) -> PollOutcome:
        start = self._clock()
        state = JobState.PENDING
        items: List[Dict[str, Any]] = []
        polls = 0

        while True:
            snapshot = await check()
            polls += 1
            if snapshot.state != state:
                logger.debug("Job state %s -> %s (poll %d)", state.value, snapshot.state.value, polls)
            state = snapshot.state
            items = snapshot.items

            if items or state.is_terminal:
                break

            elapsed = self._clock() - start
            if polls >= self.max_polls or elapsed >= self.max_wait_seconds:
                logger.warning(
                    "Job still %s after %d polls (%.1fs); giving up",
                    state.value,
                    polls,
                    elapsed,
                )
                state = JobState.TIMED_OUT
                break

            await self._sleep(self.interval_seconds)

        return PollOutcome(
            state=state,
            items=items,
            polls=polls,
            elapsed_seconds=self._clock() - start,
        )
