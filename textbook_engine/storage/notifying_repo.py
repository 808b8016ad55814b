"""Repository wrapper that publishes a change event after every committed write."""

from __future__ import annotations

from textbook_engine.jobs.models import TERMINAL_STATUSES, ChapterRecord, SectionRecord, TextbookRecord, TextbookStatus, record_to_row
from textbook_engine.progress.events import ChangeFeed
from textbook_engine.storage.textbooks_repo import TextbooksRepository


class NotifyingTextbooksRepository(TextbooksRepository):
  """Delegate to a concrete repository and publish inserts/updates on the change feed."""

  def __init__(self, inner: TextbooksRepository, feed: ChangeFeed) -> None:
    self._inner = inner
    self._feed = feed
    # Section rows only carry their chapter id; owners of chapters whose job is still running.
    self._chapter_owners: dict[str, str] = {}

  @property
  def inner(self) -> TextbooksRepository:
    return self._inner

  def _forget_chapters(self, textbook_id: str) -> None:
    for chapter_id in [chapter_id for chapter_id, owner in self._chapter_owners.items() if owner == textbook_id]:
      del self._chapter_owners[chapter_id]

  @property
  def feed(self) -> ChangeFeed:
    return self._feed

  async def create_textbook(self, record: TextbookRecord) -> None:
    await self._inner.create_textbook(record)
    self._feed.publish(table="textbooks", op="insert", textbook_id=record.textbook_id, row=record_to_row(record))

  async def get_textbook(self, textbook_id: str) -> TextbookRecord | None:
    return await self._inner.get_textbook(textbook_id)

  async def update_textbook(self, textbook_id: str, *, status: TextbookStatus | None = None, completion_percentage: int | None = None) -> TextbookRecord | None:
    record = await self._inner.update_textbook(textbook_id, status=status, completion_percentage=completion_percentage)
    if record is not None:
      self._feed.publish(table="textbooks", op="update", textbook_id=textbook_id, row=record_to_row(record))
      if record.status in TERMINAL_STATUSES:
        self._forget_chapters(textbook_id)
    return record

  async def list_textbooks(self, *, limit: int = 20, offset: int = 0) -> tuple[list[TextbookRecord], int]:
    return await self._inner.list_textbooks(limit=limit, offset=offset)

  async def create_chapter(self, *, textbook_id: str, title: str, position: int) -> ChapterRecord:
    record = await self._inner.create_chapter(textbook_id=textbook_id, title=title, position=position)
    self._chapter_owners[record.chapter_id] = textbook_id
    self._feed.publish(table="chapters", op="insert", textbook_id=textbook_id, row=record_to_row(record))
    return record

  async def create_section(self, *, chapter_id: str, title: str, content: str, position: int) -> SectionRecord:
    record = await self._inner.create_section(chapter_id=chapter_id, title=title, content=content, position=position)
    textbook_id = self._chapter_owners.get(chapter_id)
    if textbook_id is not None:
      self._feed.publish(table="sections", op="insert", textbook_id=textbook_id, row=record_to_row(record))
    return record

  async def list_chapters(self, textbook_id: str) -> list[ChapterRecord]:
    return await self._inner.list_chapters(textbook_id)

  async def list_sections(self, textbook_id: str) -> list[SectionRecord]:
    return await self._inner.list_sections(textbook_id)

  async def count_sections(self, textbook_id: str) -> int:
    return await self._inner.count_sections(textbook_id)
