from types import SimpleNamespace

import httpx
import openai
import pytest

from sourcing_pipeline import llm_client
from sourcing_pipeline.errors import ConfigurationError, LLMResponseError
from sourcing_pipeline.llm_client import ChatClient, ChatResponse, parse_json_object, strip_code_fences
from sourcing_pipeline.models import ParsedQuery, QueryType
from sourcing_pipeline.query_parser import QueryParser


class RecordingChatClient:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def chat(self, messages, *, temperature=0.7, max_tokens=2000):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatResponse(content=reply)


# ========== JSON helpers ==========

def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'
    assert strip_code_fences("") == ""


def test_parse_json_object_recovers_embedded_object():
    assert parse_json_object('Sure! Here it is: {"product": "LED"} Hope that helps.') == {"product": "LED"}


@pytest.mark.parametrize("reply", ["no json here", "[1, 2, 3]", "{broken: json}"])
def test_parse_json_object_rejects_non_objects(reply):
    with pytest.raises(LLMResponseError):
        parse_json_object(reply)


# ========== QueryParser ==========

@pytest.mark.asyncio
async def test_parses_fenced_reply():
    client = RecordingChatClient(
        [
            '```json\n{"product": "LED strip", "location": ["Ningbo", "Shenzhen"], '
            '"type": "manufacturer", "specifications": {"voltage": "12V", "ip": null}}\n```'
        ]
    )
    parser = QueryParser(client)

    parsed, degraded = await parser.parse_with_status("LED strip factories in Ningbo or Shenzhen, 12V")

    assert not degraded
    assert parsed == ParsedQuery(
        product="LED strip",
        locations=["Ningbo", "Shenzhen"],
        query_type=QueryType.MANUFACTURER,
        specifications={"voltage": "12V"},
    )
    call = client.calls[0]
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 500
    assert call["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_single_location_string_becomes_list():
    client = RecordingChatClient(['{"product": "PCB", "location": "Shenzhen", "type": "product"}'])

    parsed = await QueryParser(client).parse("PCB in Shenzhen")

    assert parsed.locations == ["Shenzhen"]
    assert parsed.query_type == QueryType.PRODUCT


@pytest.mark.asyncio
async def test_missing_product_falls_back_to_query_text():
    client = RecordingChatClient(['{"location": []}'])
    parsed = await QueryParser(client).parse("ceramic mugs")
    assert parsed.product == "ceramic mugs"
    assert parsed.query_type == QueryType.MANUFACTURER


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [RuntimeError("upstream 503"), "not json at all"])
async def test_failure_degrades_to_raw_query(reply):
    parser = QueryParser(RecordingChatClient([reply]))

    parsed, degraded = await parser.parse_with_status("solar inverters")

    assert degraded
    assert parsed == ParsedQuery.degraded("solar inverters")
    assert parsed.product == "solar inverters"
    assert parsed.locations == []


@pytest.mark.asyncio
async def test_image_url_is_mentioned_in_prompt():
    client = RecordingChatClient(['{"product": "chair"}'])
    await QueryParser(client).parse("this chair", image_url="https://img.example/chair.jpg")
    assert "https://img.example/chair.jpg" in client.calls[0]["messages"][1]["content"]


# ========== ChatClient ==========

def _completion(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


def _rate_limit_error(code=None):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    body = {"code": code, "message": "slow down"} if code else None
    return openai.RateLimitError("rate limited", response=response, body=body)


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _chat_client(outcomes, max_retries=3):
    completions = FakeCompletions(outcomes)
    fake_openai = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return ChatClient(api_key="sk-test", model="test-model", max_retries=max_retries, client=fake_openai), completions


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(llm_client.asyncio, "sleep", fake_sleep)
    return recorded


@pytest.mark.asyncio
async def test_chat_returns_content_and_usage(sleeps):
    client, completions = _chat_client([_completion("hello")])

    response = await client.chat([{"role": "user", "content": "hi"}], temperature=0.1, max_tokens=10)

    assert response.content == "hello"
    assert response.usage["total_tokens"] == 5
    assert completions.calls[0]["model"] == "test-model"
    assert completions.calls[0]["max_tokens"] == 10


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff(sleeps):
    client, completions = _chat_client([_rate_limit_error(), _rate_limit_error(), _completion("ok")])

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response.content == "ok"
    assert sleeps == [2, 4]
    assert len(completions.calls) == 3


@pytest.mark.asyncio
async def test_rate_limit_gives_up_after_max_retries(sleeps):
    client, completions = _chat_client([_rate_limit_error()], max_retries=2)

    with pytest.raises(openai.RateLimitError):
        await client.chat([{"role": "user", "content": "hi"}])

    assert sleeps == [2, 4]
    assert len(completions.calls) == 3


@pytest.mark.asyncio
async def test_insufficient_quota_fails_fast(sleeps):
    client, completions = _chat_client([_rate_limit_error("insufficient_quota")])

    with pytest.raises(openai.RateLimitError):
        await client.chat([{"role": "user", "content": "hi"}])

    assert sleeps == []
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_missing_api_key_fails_on_first_call():
    client = ChatClient(api_key=None)
    with pytest.raises(ConfigurationError):
        await client.chat([{"role": "user", "content": "hi"}])
