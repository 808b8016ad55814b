from __future__ import annotations

import httpx
import pytest

from textbook_engine.ai.errors import MalformedResponseError, TransientCallError
from textbook_engine.ai.http_client import HttpRequest, fetch_json_with_retry

_REQUEST = HttpRequest(url="https://llm.test/v1/chat/completions", headers={"Authorization": "Bearer test"}, json_body={"model": "gpt-4o", "messages": []})


class SleepRecorder:
  def __init__(self) -> None:
    self.calls: list[float] = []

  async def __call__(self, seconds: float) -> None:
    self.calls.append(seconds)


def _client(responses: list[httpx.Response | Exception]) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
  seen: list[httpx.Request] = []
  queue = list(responses)

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    item = queue.pop(0)
    if isinstance(item, Exception):
      raise item
    return item

  return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


@pytest.mark.anyio
async def test_rate_limit_waits_for_retry_after_header() -> None:
  client, seen = _client([httpx.Response(429, headers={"retry-after": "5"}), httpx.Response(200, json={"ok": True})])
  sleep = SleepRecorder()

  payload = await fetch_json_with_retry(client, _REQUEST, sleep=sleep)

  assert payload == {"ok": True}
  assert sleep.calls == [5.0]
  assert len(seen) == 2


@pytest.mark.anyio
async def test_rate_limit_without_header_doubles_delay() -> None:
  client, _ = _client([httpx.Response(429), httpx.Response(200, json={"ok": True})])
  sleep = SleepRecorder()

  await fetch_json_with_retry(client, _REQUEST, sleep=sleep)

  assert sleep.calls == [2.0]


@pytest.mark.anyio
async def test_transport_errors_back_off_exponentially() -> None:
  client, _ = _client([httpx.ConnectError("boom"), httpx.ConnectError("boom"), httpx.Response(200, json={"choices": []})])
  sleep = SleepRecorder()

  payload = await fetch_json_with_retry(client, _REQUEST, sleep=sleep)

  assert payload == {"choices": []}
  assert sleep.calls == [1.0, 2.0]


@pytest.mark.anyio
async def test_exhausted_attempts_raise_last_error_without_final_sleep() -> None:
  client, seen = _client([httpx.ConnectError("boom")] * 3)
  sleep = SleepRecorder()

  with pytest.raises(TransientCallError, match="Transport error"):
    await fetch_json_with_retry(client, _REQUEST, sleep=sleep)

  assert len(seen) == 3
  assert sleep.calls == [1.0, 2.0]


@pytest.mark.anyio
async def test_server_errors_are_retried() -> None:
  client, _ = _client([httpx.Response(503, text="unavailable"), httpx.Response(200, json={"ok": 1})])
  sleep = SleepRecorder()

  assert await fetch_json_with_retry(client, _REQUEST, sleep=sleep) == {"ok": 1}
  assert sleep.calls == [1.0]


@pytest.mark.anyio
async def test_unparseable_body_fails_with_malformed_response() -> None:
  client, seen = _client([httpx.Response(200, text="<html>oops</html>")] * 2)
  sleep = SleepRecorder()

  with pytest.raises(MalformedResponseError):
    await fetch_json_with_retry(client, _REQUEST, max_attempts=2, sleep=sleep)

  assert len(seen) == 2
  assert sleep.calls == [1.0]


@pytest.mark.anyio
async def test_client_error_body_is_returned_to_caller() -> None:
  client, seen = _client([httpx.Response(400, json={"error": {"message": "bad request"}})])

  payload = await fetch_json_with_retry(client, _REQUEST, sleep=SleepRecorder())

  assert payload == {"error": {"message": "bad request"}}
  assert seen[0].headers["authorization"] == "Bearer test"
  assert seen[0].method == "POST"


@pytest.mark.anyio
async def test_rate_limit_on_every_attempt_surfaces_transient_error() -> None:
  client, _ = _client([httpx.Response(429, headers={"retry-after": "1"})] * 3)
  sleep = SleepRecorder()

  with pytest.raises(TransientCallError) as excinfo:
    await fetch_json_with_retry(client, _REQUEST, sleep=sleep)

  assert excinfo.value.status_code == 429
  assert sleep.calls == [1.0, 1.0]


@pytest.mark.anyio
@pytest.mark.parametrize(("headers", "expected_sleeps"), [({}, [2.0, 2.0, 4.0]), ({"retry-after": "5"}, [5.0, 5.0, 10.0])])
async def test_rate_limit_delay_carries_into_transport_backoff(headers, expected_sleeps) -> None:
  client, seen = _client([httpx.Response(429, headers=headers), httpx.ConnectError("boom"), httpx.ConnectError("boom"), httpx.Response(200, json={"ok": True})])
  sleep = SleepRecorder()

  payload = await fetch_json_with_retry(client, _REQUEST, max_attempts=4, sleep=sleep)

  assert payload == {"ok": True}
  assert len(seen) == 4
  assert sleep.calls == expected_sleeps
