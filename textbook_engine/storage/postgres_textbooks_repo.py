"""Postgres-backed repository for textbooks using SQLAlchemy."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from textbook_engine.core.database import get_session_factory
from textbook_engine.jobs.models import ChapterRecord, SectionRecord, TextbookRecord, TextbookStatus
from textbook_engine.schema.textbooks import Chapter, Section, Textbook
from textbook_engine.storage.textbooks_repo import ChapterPersistError, PersistenceError, SectionPersistError, TextbooksRepository
from textbook_engine.utils.ids import generate_row_id
from textbook_engine.utils.time import now_iso

logger = logging.getLogger(__name__)


class PostgresTextbooksRepository(TextbooksRepository):
  """Persist textbooks, chapters and sections to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_textbook(self, record: TextbookRecord) -> None:
    async with self._session_factory() as session:
      row = Textbook(
        id=record.textbook_id,
        title=record.title,
        description=record.description,
        prompt=record.prompt,
        status=record.status,
        completion_percentage=record.completion_percentage,
        total_sections=record.total_sections,
        outline=record.outline,
        created_at=record.created_at,
        updated_at=record.updated_at,
      )
      session.add(row)
      try:
        await session.commit()
      except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError(f"Failed to create textbook: {exc}") from exc

  async def get_textbook(self, textbook_id: str) -> TextbookRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Textbook, textbook_id)
      if row is None:
        return None
      return self._textbook_to_record(row)

  async def update_textbook(self, textbook_id: str, *, status: TextbookStatus | None = None, completion_percentage: int | None = None) -> TextbookRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Textbook, textbook_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if completion_percentage is not None:
        row.completion_percentage = completion_percentage
      row.updated_at = now_iso()
      session.add(row)
      try:
        await session.commit()
      except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError(f"Failed to update textbook {textbook_id}: {exc}") from exc
      await session.refresh(row)
      return self._textbook_to_record(row)

  async def list_textbooks(self, *, limit: int = 20, offset: int = 0) -> tuple[list[TextbookRecord], int]:
    async with self._session_factory() as session:
      total = (await session.execute(select(func.count()).select_from(Textbook))).scalar_one()
      stmt = select(Textbook).order_by(Textbook.created_at.desc()).limit(limit).offset(offset)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._textbook_to_record(row) for row in rows], int(total)

  async def create_chapter(self, *, textbook_id: str, title: str, position: int) -> ChapterRecord:
    async with self._session_factory() as session:
      row = Chapter(id=generate_row_id(), textbook_id=textbook_id, title=title, position=position, created_at=now_iso())
      session.add(row)
      try:
        await session.commit()
      except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Error creating chapter %r for textbook %s: %s", title, textbook_id, exc)
        raise ChapterPersistError(f"Failed to create chapter: {exc}") from exc
      return ChapterRecord(chapter_id=row.id, textbook_id=row.textbook_id, title=row.title, position=row.position, created_at=row.created_at)

  async def create_section(self, *, chapter_id: str, title: str, content: str, position: int) -> SectionRecord:
    async with self._session_factory() as session:
      row = Section(id=generate_row_id(), chapter_id=chapter_id, title=title, content=content, position=position, created_at=now_iso())
      session.add(row)
      try:
        await session.commit()
      except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Error creating section %r in chapter %s: %s", title, chapter_id, exc)
        raise SectionPersistError(f"Failed to create section: {exc}") from exc
      return self._section_to_record(row)

  async def list_chapters(self, textbook_id: str) -> list[ChapterRecord]:
    async with self._session_factory() as session:
      stmt = select(Chapter).where(Chapter.textbook_id == textbook_id).order_by(Chapter.position.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [ChapterRecord(chapter_id=row.id, textbook_id=row.textbook_id, title=row.title, position=row.position, created_at=row.created_at) for row in rows]

  async def list_sections(self, textbook_id: str) -> list[SectionRecord]:
    async with self._session_factory() as session:
      stmt = select(Section).join(Chapter, Section.chapter_id == Chapter.id).where(Chapter.textbook_id == textbook_id).order_by(Chapter.position.asc(), Section.position.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._section_to_record(row) for row in rows]

  async def count_sections(self, textbook_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count(Section.id)).join(Chapter, Section.chapter_id == Chapter.id).where(Chapter.textbook_id == textbook_id)
      return int((await session.execute(stmt)).scalar_one())

  def _textbook_to_record(self, row: Textbook) -> TextbookRecord:
    return TextbookRecord(
      textbook_id=row.id,
      title=row.title,
      description=row.description,
      prompt=row.prompt,
      status=row.status,  # type: ignore[arg-type]
      completion_percentage=row.completion_percentage,
      total_sections=row.total_sections,
      outline=row.outline,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )

  def _section_to_record(self, row: Section) -> SectionRecord:
    return SectionRecord(section_id=row.id, chapter_id=row.chapter_id, title=row.title, content=row.content, position=row.position, created_at=row.created_at)
