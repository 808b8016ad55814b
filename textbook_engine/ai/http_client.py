"""Resilient JSON-over-HTTP calls with exponential backoff and rate-limit handling."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from textbook_engine.ai.errors import MalformedResponseError, ModelCallError, TransientCallError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
INITIAL_DELAY_SECONDS = 1.0
_BODY_LOG_CHARS = 500


@dataclass(frozen=True)
class HttpRequest:
  """Description of one outbound call; reused verbatim across retry attempts."""

  url: str
  method: str = "POST"
  headers: Mapping[str, str] = field(default_factory=dict)
  json_body: Any = None


def _parse_retry_after(raw: str | None) -> float | None:
  """Return the server-suggested wait in seconds, or None when absent or not numeric."""
  if raw is None:
    return None
  try:
    seconds = float(raw.strip())
  except ValueError:
    # HTTP-date values are rare for model APIs; fall back to doubling.
    return None
  if seconds < 0:
    return None
  return seconds


async def fetch_json_with_retry(client: httpx.AsyncClient, request: HttpRequest, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS, initial_delay: float = INITIAL_DELAY_SECONDS, sleep: Sleep = asyncio.sleep) -> Any:
  """
  Issue `request` and return the parsed JSON body.

  Transport errors, 5xx responses and unparseable bodies are retried with a delay that doubles after
  every failed attempt. A 429 response waits for `retry-after` seconds when the header is present and
  otherwise doubles the current delay. No sleep follows the final attempt.

  Raises the last recorded error once attempts are exhausted.
  """
  if max_attempts < 1:
    raise ValueError("max_attempts must be at least 1.")

  delay = initial_delay
  last_error: ModelCallError | None = None

  for attempt in range(max_attempts):
    has_next_attempt = attempt < max_attempts - 1
    try:
      response = await client.request(request.method, request.url, headers=dict(request.headers), json=request.json_body)
    except httpx.TransportError as exc:
      logger.warning("Attempt %d/%d transport error: %s", attempt + 1, max_attempts, exc)
      last_error = TransientCallError(f"Transport error: {exc}")
      if has_next_attempt:
        await sleep(delay)
        delay *= 2
      continue

    # Rate limiting resets the delay strategy instead of doubling on top of it.
    if response.status_code == 429:
      retry_after = _parse_retry_after(response.headers.get("retry-after"))
      delay = retry_after if retry_after is not None else delay * 2
      last_error = TransientCallError("Rate limited by upstream model API.", status_code=429)
      logger.warning("Attempt %d/%d rate limited. Waiting %.1f seconds before retry.", attempt + 1, max_attempts, delay)
      if has_next_attempt:
        await sleep(delay)
      continue

    if response.status_code >= 500:
      logger.warning("Attempt %d/%d failed with status: %d", attempt + 1, max_attempts, response.status_code)
      last_error = TransientCallError(f"Upstream returned HTTP {response.status_code}.", status_code=response.status_code)
      if has_next_attempt:
        await sleep(delay)
        delay *= 2
      continue

    if response.is_error:
      # Client errors still carry a JSON error envelope; callers inspect it.
      logger.warning("Attempt %d/%d returned status: %d", attempt + 1, max_attempts, response.status_code)

    body = response.text
    try:
      return json.loads(body)
    except json.JSONDecodeError as exc:
      logger.error("Response wasn't valid JSON (attempt %d/%d): %s", attempt + 1, max_attempts, body[:_BODY_LOG_CHARS])
      last_error = MalformedResponseError(f"Invalid JSON response: {exc.msg}")
      if has_next_attempt:
        await sleep(delay)
        delay *= 2

  raise last_error or TransientCallError("Maximum retry attempts reached")
