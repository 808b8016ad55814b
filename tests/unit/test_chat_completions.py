from __future__ import annotations

import json

import httpx
import pytest

from textbook_engine.ai.errors import EmptyCompletionError
from textbook_engine.ai.providers.chat_completions import ChatCompletionsClient, extract_message_content


async def _no_sleep(_seconds: float) -> None:
  return None


def test_extract_message_content_reads_first_choice() -> None:
  payload = {"choices": [{"message": {"role": "assistant", "content": "Hello"}}, {"message": {"content": "ignored"}}]}
  assert extract_message_content(payload) == "Hello"


@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"error": {"message": "invalid key"}}, {"choices": [{"message": {}}]}, []])
def test_extract_message_content_rejects_empty_replies(payload: object) -> None:
  with pytest.raises(EmptyCompletionError):
    extract_message_content(payload)


@pytest.mark.anyio
async def test_client_posts_model_and_messages() -> None:
  captured: dict[str, object] = {}

  def handler(request: httpx.Request) -> httpx.Response:
    captured["url"] = str(request.url)
    captured["auth"] = request.headers.get("authorization")
    captured["body"] = json.loads(request.content)
    return httpx.Response(200, json={"choices": [{"message": {"content": "Section text"}}]})

  http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  client = ChatCompletionsClient(api_key="sk-test", model="gpt-4o", base_url="https://llm.test/v1/", http_client=http_client, sleep=_no_sleep)

  content = await client.complete([{"role": "user", "content": "Write"}])

  assert content == "Section text"
  assert captured["url"] == "https://llm.test/v1/chat/completions"
  assert captured["auth"] == "Bearer sk-test"
  assert captured["body"] == {"model": "gpt-4o", "messages": [{"role": "user", "content": "Write"}]}
  await client.aclose()
  assert not http_client.is_closed
