"""Derive an advisory progress view from persisted textbook state."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from textbook_engine.jobs.models import TERMINAL_STATUSES, ChapterRecord, SectionRecord, TextbookRecord, TextbookStatus
from textbook_engine.utils.time import parse_iso


@dataclass(frozen=True)
class CurrentlyGenerating:
  """The chapter/section pair the runner is expected to be working on."""

  chapter_position: int
  chapter_title: str
  section_position: int
  section_title: str


@dataclass(frozen=True)
class ProgressSnapshot:
  textbook_id: str
  status: TextbookStatus
  completion_percentage: int
  completed_sections: int
  total_sections: int
  currently_generating: CurrentlyGenerating | None
  estimated_seconds_remaining: int | None


def estimate_time_remaining(elapsed_seconds: float, percentage: int) -> int | None:
  """Return `elapsed / (pct / 100) - elapsed` in whole seconds, clamped at 0; None while pct is 0."""
  if percentage <= 0:
    return None
  remaining = elapsed_seconds / (percentage / 100) - elapsed_seconds
  return max(0, math.floor(remaining + 0.5))


def planned_sections(outline: dict[str, Any] | None) -> list[CurrentlyGenerating]:
  """Flatten a stored outline into chapter/section pairs in generation order."""
  if not isinstance(outline, dict):
    return []

  planned: list[CurrentlyGenerating] = []
  for chapter_position, chapter in enumerate(outline.get("chapters") or []):
    if not isinstance(chapter, dict):
      continue
    for section_position, section in enumerate(chapter.get("sections") or []):
      section_title = section.get("title") if isinstance(section, dict) else section
      planned.append(CurrentlyGenerating(chapter_position=chapter_position, chapter_title=str(chapter.get("title", "")), section_position=section_position, section_title=str(section_title)))
  return planned


def _currently_generating(textbook: TextbookRecord, chapters: Sequence[ChapterRecord], sections: Sequence[SectionRecord]) -> CurrentlyGenerating | None:
  planned = planned_sections(textbook.outline)
  if not planned:
    return None

  chapter_positions = {chapter.chapter_id: chapter.position for chapter in chapters}
  done = {(chapter_positions[section.chapter_id], section.position) for section in sections if section.chapter_id in chapter_positions}

  last_done = -1
  for index, entry in enumerate(planned):
    if (entry.chapter_position, entry.section_position) in done:
      last_done = index

  # Chapters behind the newest chapter row that never got a row were skipped.
  newest_chapter = max(chapter_positions.values(), default=-1)
  for entry in planned[last_done + 1 :]:
    if entry.chapter_position > newest_chapter or entry.chapter_position in chapter_positions.values():
      if (entry.chapter_position, entry.section_position) not in done:
        return entry
  return None


def project_progress(textbook: TextbookRecord, chapters: Sequence[ChapterRecord], sections: Sequence[SectionRecord], *, now: datetime | None = None) -> ProgressSnapshot:
  """Project status, percentage, current section and ETA. Never mutates anything."""
  now = now or datetime.now(UTC)
  terminal = textbook.status in TERMINAL_STATUSES

  if textbook.status == "generating":
    elapsed = max(0.0, (now - parse_iso(textbook.created_at)).total_seconds())
    eta = estimate_time_remaining(elapsed, textbook.completion_percentage)
  elif textbook.status == "completed":
    eta = 0
  else:
    eta = None

  return ProgressSnapshot(
    textbook_id=textbook.textbook_id,
    status=textbook.status,
    completion_percentage=textbook.completion_percentage,
    completed_sections=len(sections),
    total_sections=textbook.total_sections,
    currently_generating=None if terminal else _currently_generating(textbook, chapters, sections),
    estimated_seconds_remaining=eta,
  )
