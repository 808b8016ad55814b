"""In-process change feed that makes every repository write observable."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Literal

import msgspec

logger = logging.getLogger(__name__)

ChangeTable = Literal["textbooks", "chapters", "sections"]
ChangeOp = Literal["insert", "update"]


class ChangeEvent(msgspec.Struct, frozen=True):
  """One committed row change, keyed by the textbook it belongs to."""

  table: ChangeTable
  op: ChangeOp
  textbook_id: str
  row: dict[str, Any]
  sequence: int


class ChangeFeed:
  """Fan committed row changes out to per-textbook subscriber queues.

  Each subscriber owns an unbounded queue so a slow reader never blocks the writer.
  Events are delivered in publish order, which keeps every row's changes ordered.
  """

  def __init__(self) -> None:
    self._subscribers: dict[str, set[asyncio.Queue[ChangeEvent]]] = {}
    self._sequence = itertools.count(1)

  def publish(self, *, table: ChangeTable, op: ChangeOp, textbook_id: str, row: dict[str, Any]) -> ChangeEvent:
    event = ChangeEvent(table=table, op=op, textbook_id=textbook_id, row=row, sequence=next(self._sequence))
    for queue in tuple(self._subscribers.get(textbook_id, ())):
      queue.put_nowait(event)
    return event

  @asynccontextmanager
  async def subscribe(self, textbook_id: str) -> AsyncIterator[asyncio.Queue[ChangeEvent]]:
    """Register a queue for the textbook's events until the context exits."""
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
    self._subscribers.setdefault(textbook_id, set()).add(queue)
    logger.debug("Subscriber attached to textbook %s", textbook_id)
    try:
      yield queue
    finally:
      subscribers = self._subscribers.get(textbook_id)
      if subscribers is not None:
        subscribers.discard(queue)
        if not subscribers:
          del self._subscribers[textbook_id]

  def subscriber_count(self, textbook_id: str) -> int:
    return len(self._subscribers.get(textbook_id, ()))


@lru_cache
def get_change_feed() -> ChangeFeed:
  """Process-wide change feed shared by the repository wrapper and stream consumers."""
  return ChangeFeed()


def encode_event(event: ChangeEvent) -> bytes:
  return msgspec.json.encode(event)
