"""Chat Completion Client Module

Thin async wrapper over OpenAI-compatible chat completions, used by the
query parser and the manufacturer classifier.

Key features:
  - Lazy client creation so a missing API key only fails the call, not import
  - Exponential backoff retry on rate limiting
  - Fail fast on exhausted quota (retries won't help)
  - Helpers to pull a JSON object out of a model reply wrapped in code fences
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from .config import LLM_MODEL, OPENAI_API_KEY, OPENAI_BASE_URL
from .errors import ConfigurationError, LLMResponseError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


@dataclass
class ChatResponse:
    content: str
    usage: Dict[str, int] = field(default_factory=dict)


class ChatBackend(Protocol):
    async def chat(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ChatResponse: ...


class ChatClient:
    """OpenAI-compatible chat completions with rate-limit retries."""

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        model: str = LLM_MODEL,
        base_url: Optional[str] = OPENAI_BASE_URL,
        max_retries: int = 3,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_retries = max_retries
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "No LLM API key configured. Please set OPENAI_API_KEY"
                )
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> ChatResponse:
        logger.debug(
            "Calling chat completions: model=%s, messages=%d, max_tokens=%d",
            self.model,
            len(messages),
            max_tokens,
        )
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        usage: Dict[str, int] = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return ChatResponse(content=content, usage=usage)

    async def chat(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ChatResponse:
        """
        Send one chat completion request.

        Retries up to `max_retries` times with exponential backoff on rate
        limiting. Any other error is logged and re-raised for the caller's
        fallback logic.
        """
        retries = 0
        while True:
            try:
                return await self._complete(messages, temperature, max_tokens)
            except openai.RateLimitError as e:
                retries += 1
                if getattr(e, "code", None) == "insufficient_quota" or "insufficient_quota" in str(e):
                    logger.error("Insufficient quota – cannot retry. Error: %s", e)
                    raise

                if retries > self.max_retries:
                    logger.error(
                        "Max retries exceeded (%d). Last error: %s",
                        self.max_retries,
                        e,
                    )
                    raise

                wait_time = 2 ** retries
                logger.warning(
                    "Rate limit error from chat API (attempt %d/%d). "
                    "Sleeping for %d seconds before retry. Error: %s",
                    retries,
                    self.max_retries,
                    wait_time,
                    e,
                )
                await asyncio.sleep(wait_time)


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and its closing fence."""
    if not text:
        return ""
    text = text.strip()
    if text.startswith("```"):
        text = CODE_FENCE_RE.sub("", text)
    return text.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Strips markdown code fences first; if the remainder still isn't valid
    JSON, falls back to the outermost ``{...}`` span.

    Raises:
        LLMResponseError: If no JSON object can be recovered
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise LLMResponseError(f"No JSON object in model reply: {cleaned[:200]!r}")
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"Malformed JSON in model reply: {e}") from e

    if not isinstance(data, dict):
        raise LLMResponseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data
