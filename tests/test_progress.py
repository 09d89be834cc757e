import asyncio

import pytest

from sourcing_pipeline.models import ManufacturerResult, ManufacturerType, ParsedQuery, ProviderRole
from sourcing_pipeline.progress import (
    CompleteEvent,
    ErrorEvent,
    ParsedEvent,
    ProgressEmitter,
    ProgressEvent,
    QueueProgressSink,
    ResultEvent,
    event_to_dict,
    is_terminal,
)


def _result_event(id="r1"):
    return ResultEvent(
        result=ManufacturerResult(id=id, name="Acme", type=ManufacturerType.FACTORY, confidence=80)
    )


@pytest.mark.asyncio
async def test_events_reach_sync_sink_in_order():
    received = []
    emitter = ProgressEmitter(received.append)

    await emitter.emit(ParsedEvent(parsed_query=ParsedQuery(product="led")))
    await emitter.emit(ProgressEvent(step="searching", provider_used=ProviderRole.PRIMARY))
    await emitter.emit(_result_event())
    await emitter.emit(CompleteEvent(search_id="abc", total_results=1))

    assert [e.type for e in received] == ["parsed", "progress", "result", "complete"]
    assert emitter.closed


@pytest.mark.asyncio
async def test_events_after_terminal_are_dropped():
    received = []
    emitter = ProgressEmitter(received.append)

    await emitter.emit(ErrorEvent(message="provider chain exhausted"))
    await emitter.emit(CompleteEvent(search_id="abc", total_results=0))
    await emitter.emit(_result_event())

    assert [e.type for e in received] == ["error"]
    assert len(emitter.history) == 1


@pytest.mark.asyncio
async def test_failing_sink_does_not_break_emitter():
    calls = []

    def sink(event):
        calls.append(event.type)
        raise RuntimeError("consumer went away")

    emitter = ProgressEmitter(sink)
    await emitter.emit(ParsedEvent(parsed_query=ParsedQuery(product="led")))
    await emitter.emit(CompleteEvent(search_id="abc", total_results=0))

    assert calls == ["parsed", "complete"]
    assert [e.type for e in emitter.history] == ["parsed", "complete"]


@pytest.mark.asyncio
async def test_async_sink_is_awaited():
    received = []

    async def sink(event):
        await asyncio.sleep(0)
        received.append(event.type)

    emitter = ProgressEmitter(sink)
    await emitter.emit(ParsedEvent(parsed_query=ParsedQuery(product="led")))
    assert received == ["parsed"]


@pytest.mark.asyncio
async def test_no_sink_still_records_history():
    emitter = ProgressEmitter()
    await emitter.emit(ProgressEvent(step="filtering", before_count=3, after_count=1))
    assert emitter.history[0].after_count == 1


@pytest.mark.asyncio
async def test_queue_sink_iterates_until_terminal_event():
    sink = QueueProgressSink()

    async def producer():
        emitter = ProgressEmitter(sink)
        await emitter.emit(ParsedEvent(parsed_query=ParsedQuery(product="led")))
        await emitter.emit(_result_event("r1"))
        await emitter.emit(_result_event("r2"))
        await emitter.emit(CompleteEvent(search_id="abc", total_results=2))

    task = asyncio.create_task(producer())
    seen = [event.type async for event in sink]
    await task

    assert seen == ["parsed", "result", "result", "complete"]


def test_event_to_dict_uses_camel_case_and_omits_unset():
    payload = event_to_dict(
        ProgressEvent(step="deduplicating", before_count=5, after_count=3)
    )
    assert payload == {
        "type": "progress",
        "step": "deduplicating",
        "beforeCount": 5,
        "afterCount": 3,
    }

    complete = event_to_dict(CompleteEvent(search_id="abc", total_results=2))
    assert complete["searchId"] == "abc"
    assert complete["totalResults"] == 2
    assert complete["observability"]["processingSteps"]["finalCount"] == 0


def test_is_terminal():
    assert is_terminal(ErrorEvent(message="x"))
    assert is_terminal(CompleteEvent(search_id="a", total_results=0))
    assert not is_terminal(_result_event())
