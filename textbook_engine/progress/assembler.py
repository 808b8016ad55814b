"""Fold change events into a live textbook document."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from textbook_engine.jobs.models import TERMINAL_STATUSES, ChapterRecord, SectionRecord, TextbookRecord, chapter_from_row, section_from_row, textbook_from_row
from textbook_engine.progress.events import ChangeEvent
from textbook_engine.progress.projection import ProgressSnapshot, planned_sections, project_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentSection:
  title: str
  position: int
  content: str | None
  is_generating: bool
  section_id: str | None = None


@dataclass(frozen=True)
class DocumentChapter:
  chapter_id: str
  title: str
  position: int
  sections: tuple[DocumentSection, ...]


@dataclass(frozen=True)
class TextbookDocument:
  textbook_id: str
  title: str
  description: str | None
  status: str
  completion_percentage: int
  total_sections: int
  chapters: tuple[DocumentChapter, ...]
  created_at: str


class TextbookAssembler:
  """Client-side view of one textbook built from an initial read plus change events.

  Applying the same event twice, or an event already reflected in the initial read, is a no-op.
  Sections whose chapter has not been seen yet are held until the chapter arrives.
  """

  def __init__(self, textbook: TextbookRecord) -> None:
    self._textbook = textbook
    self._chapters: dict[str, ChapterRecord] = {}
    self._sections: dict[str, SectionRecord] = {}

  @classmethod
  def from_state(cls, textbook: TextbookRecord, chapters: Iterable[ChapterRecord], sections: Iterable[SectionRecord]) -> TextbookAssembler:
    assembler = cls(textbook)
    for chapter in chapters:
      assembler._chapters[chapter.chapter_id] = chapter
    for section in sections:
      assembler._sections[section.section_id] = section
    return assembler

  @property
  def textbook(self) -> TextbookRecord:
    return self._textbook

  @property
  def is_terminal(self) -> bool:
    return self._textbook.status in TERMINAL_STATUSES

  def apply(self, event: ChangeEvent) -> bool:
    """Fold one event into the view; returns whether anything changed."""
    if event.textbook_id != self._textbook.textbook_id:
      return False

    if event.table == "textbooks":
      return self._apply_textbook(textbook_from_row(event.row))
    if event.table == "chapters":
      chapter = chapter_from_row(event.row)
      if self._chapters.get(chapter.chapter_id) == chapter:
        return False
      self._chapters[chapter.chapter_id] = chapter
      return True

    section = section_from_row(event.row)
    if self._sections.get(section.section_id) == section:
      return False
    self._sections[section.section_id] = section
    return True

  def _apply_textbook(self, incoming: TextbookRecord) -> bool:
    current = self._textbook
    # A redelivered older update must not move a terminal job back or lower its percentage.
    if current.status in TERMINAL_STATUSES and incoming.status not in TERMINAL_STATUSES:
      logger.debug("Ignoring stale textbook update for %s", current.textbook_id)
      return False

    percentage = incoming.completion_percentage if incoming.status in TERMINAL_STATUSES else max(current.completion_percentage, incoming.completion_percentage)
    merged = replace(incoming, completion_percentage=percentage, outline=incoming.outline if incoming.outline is not None else current.outline)
    if merged == current:
      return False
    self._textbook = merged
    return True

  def _visible_sections(self) -> list[SectionRecord]:
    return [section for section in self._sections.values() if section.chapter_id in self._chapters]

  def progress(self, *, now: datetime | None = None) -> ProgressSnapshot:
    chapters = sorted(self._chapters.values(), key=lambda chapter: chapter.position)
    return project_progress(self._textbook, chapters, self._visible_sections(), now=now)

  def document(self) -> TextbookDocument:
    """Chapters in position order; while generating, planned sections without a row appear as generating."""
    generating = self._textbook.status == "generating"
    planned: dict[int, list[str]] = {}
    for entry in planned_sections(self._textbook.outline):
      planned.setdefault(entry.chapter_position, []).append(entry.section_title)

    chapters: list[DocumentChapter] = []
    for chapter in sorted(self._chapters.values(), key=lambda item: item.position):
      persisted = {section.position: section for section in self._sections.values() if section.chapter_id == chapter.chapter_id}
      sections = [DocumentSection(title=section.title, position=section.position, content=section.content, is_generating=False, section_id=section.section_id) for section in persisted.values()]
      if generating:
        for position, title in enumerate(planned.get(chapter.position, [])):
          if position not in persisted:
            sections.append(DocumentSection(title=title, position=position, content=None, is_generating=True))
      sections.sort(key=lambda section: section.position)
      chapters.append(DocumentChapter(chapter_id=chapter.chapter_id, title=chapter.title, position=chapter.position, sections=tuple(sections)))

    textbook = self._textbook
    return TextbookDocument(
      textbook_id=textbook.textbook_id,
      title=textbook.title,
      description=textbook.description,
      status=textbook.status,
      completion_percentage=textbook.completion_percentage,
      total_sections=textbook.total_sections,
      chapters=tuple(chapters),
      created_at=textbook.created_at,
    )
