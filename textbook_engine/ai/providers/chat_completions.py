"""OpenAI-compatible chat-completions client built on the retrying HTTP caller."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TypedDict

import httpx

from textbook_engine.ai.errors import EmptyCompletionError
from textbook_engine.ai.http_client import HttpRequest, Sleep, fetch_json_with_retry
from textbook_engine.config import Settings

logger = logging.getLogger(__name__)


class ChatMessage(TypedDict):
  role: str
  content: str


def extract_message_content(payload: Any) -> str:
  """Return `choices[0].message.content` or raise when the reply carries none."""
  choices = payload.get("choices") if isinstance(payload, dict) else None
  if not isinstance(choices, list) or not choices:
    # Provider error envelopes ({"error": {...}}) land here as well.
    logger.error("Model API returned no choices: %s", str(payload)[:500])
    raise EmptyCompletionError("Model API returned no choices.")

  message = choices[0].get("message") if isinstance(choices[0], dict) else None
  content = message.get("content") if isinstance(message, dict) else None
  if not isinstance(content, str):
    raise EmptyCompletionError("Model API returned a choice without message content.")
  return content


class ChatCompletionsClient:
  """Send chat messages to `{base_url}/chat/completions` and return the reply text."""

  def __init__(self, *, api_key: str, model: str, base_url: str = "https://api.openai.com/v1", max_attempts: int = 3, timeout_seconds: float = 120.0, http_client: httpx.AsyncClient | None = None, sleep: Sleep = asyncio.sleep) -> None:
    self.model = model
    self._api_key = api_key
    self._url = f"{base_url.rstrip('/')}/chat/completions"
    self._max_attempts = max_attempts
    self._sleep = sleep
    self._owns_client = http_client is None
    # Never trust environment proxy variables for model calls.
    self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds, trust_env=False)

  def _build_request(self, messages: list[ChatMessage]) -> HttpRequest:
    headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
    return HttpRequest(url=self._url, method="POST", headers=headers, json_body={"model": self.model, "messages": list(messages)})

  async def complete(self, messages: list[ChatMessage]) -> str:
    """Run one chat completion, retrying transient failures, and return the reply text."""
    payload = await fetch_json_with_retry(self._client, self._build_request(messages), max_attempts=self._max_attempts, sleep=self._sleep)
    return extract_message_content(payload)

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()


def build_chat_client(settings: Settings) -> ChatCompletionsClient:
  """Build the configured chat client; the API key is required."""
  if not settings.llm_api_key:
    raise RuntimeError("Model API key is not configured (OPENAI_API_KEY is missing).")
  return ChatCompletionsClient(api_key=settings.llm_api_key, model=settings.llm_model, base_url=settings.llm_base_url, max_attempts=settings.llm_max_attempts, timeout_seconds=settings.llm_timeout_seconds)
