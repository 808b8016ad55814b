"""Storage interfaces for textbooks, chapters and sections."""

from __future__ import annotations

from typing import Protocol

from textbook_engine.jobs.models import ChapterRecord, SectionRecord, TextbookRecord, TextbookStatus


class PersistenceError(RuntimeError):
  """A write to the textbook store failed."""


class ChapterPersistError(PersistenceError):
  """Inserting a chapter row failed."""


class SectionPersistError(PersistenceError):
  """Inserting a section row failed."""


class TextbooksRepository(Protocol):
  """Repository contract for textbook persistence."""

  async def create_textbook(self, record: TextbookRecord) -> None:
    """Persist an initial textbook record."""

  async def get_textbook(self, textbook_id: str) -> TextbookRecord | None:
    """Fetch a textbook by identifier."""

  async def update_textbook(self, textbook_id: str, *, status: TextbookStatus | None = None, completion_percentage: int | None = None) -> TextbookRecord | None:
    """Apply a partial status/progress update; returns None for unknown ids."""

  async def list_textbooks(self, *, limit: int = 20, offset: int = 0) -> tuple[list[TextbookRecord], int]:
    """Return textbooks newest first, plus the total count."""

  async def create_chapter(self, *, textbook_id: str, title: str, position: int) -> ChapterRecord:
    """Insert a chapter row; raises `ChapterPersistError` on failure."""

  async def create_section(self, *, chapter_id: str, title: str, content: str, position: int) -> SectionRecord:
    """Insert a section row; raises `SectionPersistError` on failure."""

  async def list_chapters(self, textbook_id: str) -> list[ChapterRecord]:
    """Return the textbook's chapters ordered by position."""

  async def list_sections(self, textbook_id: str) -> list[SectionRecord]:
    """Return every section of the textbook ordered by chapter position, then section position."""

  async def count_sections(self, textbook_id: str) -> int:
    """Count persisted section rows for the textbook."""
