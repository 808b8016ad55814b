"""In-process textbook store used for local runs and tests."""

from __future__ import annotations

import asyncio
from dataclasses import replace

from textbook_engine.jobs.models import ChapterRecord, SectionRecord, TextbookRecord, TextbookStatus
from textbook_engine.storage.textbooks_repo import ChapterPersistError, SectionPersistError, TextbooksRepository
from textbook_engine.utils.ids import generate_row_id
from textbook_engine.utils.time import now_iso


class InMemoryTextbooksRepository(TextbooksRepository):
  """Keep textbooks, chapters and sections in dictionaries guarded by one lock."""

  def __init__(self) -> None:
    self._textbooks: dict[str, TextbookRecord] = {}
    self._chapters: dict[str, ChapterRecord] = {}
    self._sections: dict[str, SectionRecord] = {}
    self._lock = asyncio.Lock()

  async def create_textbook(self, record: TextbookRecord) -> None:
    async with self._lock:
      self._textbooks[record.textbook_id] = record

  async def get_textbook(self, textbook_id: str) -> TextbookRecord | None:
    return self._textbooks.get(textbook_id)

  async def update_textbook(self, textbook_id: str, *, status: TextbookStatus | None = None, completion_percentage: int | None = None) -> TextbookRecord | None:
    async with self._lock:
      record = self._textbooks.get(textbook_id)
      if record is None:
        return None

      # Merge only provided fields, mirroring a partial UPDATE.
      changes: dict[str, object] = {"updated_at": now_iso()}
      if status is not None:
        changes["status"] = status
      if completion_percentage is not None:
        changes["completion_percentage"] = completion_percentage
      updated = replace(record, **changes)
      self._textbooks[textbook_id] = updated
      return updated

  async def list_textbooks(self, *, limit: int = 20, offset: int = 0) -> tuple[list[TextbookRecord], int]:
    records = sorted(self._textbooks.values(), key=lambda record: record.created_at, reverse=True)
    return records[offset : offset + limit], len(records)

  async def create_chapter(self, *, textbook_id: str, title: str, position: int) -> ChapterRecord:
    async with self._lock:
      if textbook_id not in self._textbooks:
        raise ChapterPersistError(f"Textbook {textbook_id} does not exist.")
      if any(chapter.textbook_id == textbook_id and chapter.position == position for chapter in self._chapters.values()):
        raise ChapterPersistError(f"Chapter position {position} already exists for textbook {textbook_id}.")

      record = ChapterRecord(chapter_id=generate_row_id(), textbook_id=textbook_id, title=title, position=position, created_at=now_iso())
      self._chapters[record.chapter_id] = record
      return record

  async def create_section(self, *, chapter_id: str, title: str, content: str, position: int) -> SectionRecord:
    async with self._lock:
      if chapter_id not in self._chapters:
        raise SectionPersistError(f"Chapter {chapter_id} does not exist.")
      if any(section.chapter_id == chapter_id and section.position == position for section in self._sections.values()):
        raise SectionPersistError(f"Section position {position} already exists for chapter {chapter_id}.")

      record = SectionRecord(section_id=generate_row_id(), chapter_id=chapter_id, title=title, content=content, position=position, created_at=now_iso())
      self._sections[record.section_id] = record
      return record

  async def list_chapters(self, textbook_id: str) -> list[ChapterRecord]:
    chapters = [chapter for chapter in self._chapters.values() if chapter.textbook_id == textbook_id]
    return sorted(chapters, key=lambda chapter: chapter.position)

  async def list_sections(self, textbook_id: str) -> list[SectionRecord]:
    chapter_positions = {chapter.chapter_id: chapter.position for chapter in self._chapters.values() if chapter.textbook_id == textbook_id}
    sections = [section for section in self._sections.values() if section.chapter_id in chapter_positions]
    return sorted(sections, key=lambda section: (chapter_positions[section.chapter_id], section.position))

  async def count_sections(self, textbook_id: str) -> int:
    return len(await self.list_sections(textbook_id))
