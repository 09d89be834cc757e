"""Progress Events Module

Structured milestones a search reports while it runs:

  parsed -> progress(searching) -> result* -> progress(deduplicating)
         -> progress(filtering) -> complete

An ``error`` event may replace any suffix of that sequence. Exactly one of
``complete`` / ``error`` is delivered per search; anything emitted after it
is dropped.
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import Field

from .models import (
    FrozenCamelModel,
    ManufacturerResult,
    Observability,
    ParsedQuery,
    ProviderRole,
)

logger = logging.getLogger(__name__)


class ParsedEvent(FrozenCamelModel):
    type: Literal["parsed"] = "parsed"
    parsed_query: ParsedQuery


class ProgressEvent(FrozenCamelModel):
    type: Literal["progress"] = "progress"
    step: Literal["searching", "deduplicating", "filtering"]
    provider_used: Optional[ProviderRole] = None
    before_count: Optional[int] = None
    after_count: Optional[int] = None
    filters_applied: Optional[Dict[str, Any]] = None


class ResultEvent(FrozenCamelModel):
    """
    One scored row, sent as soon as it is processed.

    Rows are provisional: they precede dedupe and filtering, so a streamed
    row may later be merged into another or dropped from the final response.
    """

    type: Literal["result"] = "result"
    result: ManufacturerResult


class CompleteEvent(FrozenCamelModel):
    type: Literal["complete"] = "complete"
    search_id: str
    total_results: int
    observability: Observability = Field(default_factory=Observability)


class ErrorEvent(FrozenCamelModel):
    type: Literal["error"] = "error"
    message: str


SearchEvent = Union[ParsedEvent, ProgressEvent, ResultEvent, CompleteEvent, ErrorEvent]
TERMINAL_EVENT_TYPES = ("complete", "error")

ProgressSink = Callable[[SearchEvent], Union[None, Awaitable[None]]]


def event_to_dict(event: SearchEvent) -> Dict[str, Any]:
    """Wire form (camelCase keys, unset optionals omitted)."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def is_terminal(event: SearchEvent) -> bool:
    return event.type in TERMINAL_EVENT_TYPES


class ProgressEmitter:
    """
    Delivers events to an optional sink, in order.

    Sink failures are logged and otherwise ignored: a broken consumer must not
    fail the search it is observing.
    """

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink
        self.closed = False
        self.history: List[SearchEvent] = []

    async def emit(self, event: SearchEvent) -> None:
        if self.closed:
            logger.warning("Dropping %s event emitted after the search finished", event.type)
            return
        if is_terminal(event):
            self.closed = True
        self.history.append(event)

        if self.sink is None:
            return
        try:
            outcome = self.sink(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning("Progress sink failed on %s event", event.type, exc_info=True)


class QueueProgressSink:
    """
    Progress sink backed by an ``asyncio.Queue``; iterate it to consume the
    events of one search until its terminal event.

        sink = QueueProgressSink()
        task = asyncio.create_task(pipeline.search(request, on_progress=sink))
        async for event in sink:
            ...
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[SearchEvent]" = asyncio.Queue(maxsize=maxsize)

    async def __call__(self, event: SearchEvent) -> None:
        await self.queue.put(event)

    async def __aiter__(self) -> AsyncIterator[SearchEvent]:
        while True:
            event = await self.queue.get()
            yield event
            if is_terminal(event):
                return
