from __future__ import annotations

from datetime import UTC, datetime

import pytest

from textbook_engine.jobs.models import ChapterRecord, SectionRecord, TextbookRecord
from textbook_engine.jobs.progress import completion_percentage
from textbook_engine.progress.projection import CurrentlyGenerating, estimate_time_remaining, project_progress

_OUTLINE = {
  "title": "Graphs",
  "description": None,
  "chapters": [
    {"title": "Basics", "sections": [{"title": "Vertices"}, {"title": "Edges"}]},
    {"title": "Paths", "sections": [{"title": "Walks"}, {"title": "Cycles"}]},
    {"title": "Trees", "sections": [{"title": "Spanning trees"}]},
  ],
}


def _textbook(*, status: str = "generating", percentage: int = 0) -> TextbookRecord:
  return TextbookRecord(
    textbook_id="tb-1",
    title="Graphs",
    prompt="Intro to graph theory",
    status=status,
    completion_percentage=percentage,
    total_sections=5,
    created_at="2026-01-01T00:00:00Z",
    updated_at="2026-01-01T00:00:00Z",
    outline=_OUTLINE,
  )


def _chapter(position: int) -> ChapterRecord:
  return ChapterRecord(chapter_id=f"ch-{position}", textbook_id="tb-1", title=_OUTLINE["chapters"][position]["title"], position=position, created_at="2026-01-01T00:00:01Z")


def _section(chapter: int, position: int) -> SectionRecord:
  title = _OUTLINE["chapters"][chapter]["sections"][position]["title"]
  return SectionRecord(section_id=f"s-{chapter}-{position}", chapter_id=f"ch-{chapter}", title=title, content="...", position=position, created_at="2026-01-01T00:00:02Z")


@pytest.mark.parametrize(("completed", "total", "expected"), [(0, 5, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100), (4, 3, 100), (2, 0, 0)])
def test_completion_percentage_rounds_half_up(completed: int, total: int, expected: int) -> None:
  assert completion_percentage(completed, total) == expected


def test_estimate_time_remaining() -> None:
  assert estimate_time_remaining(60, 0) is None
  assert estimate_time_remaining(60, 50) == 60
  assert estimate_time_remaining(10, 25) == 30
  assert estimate_time_remaining(30, 100) == 0


def test_first_section_is_current_before_anything_is_written() -> None:
  snapshot = project_progress(_textbook(), [], [], now=datetime(2026, 1, 1, 0, 0, 30, tzinfo=UTC))

  assert snapshot.currently_generating == CurrentlyGenerating(chapter_position=0, chapter_title="Basics", section_position=0, section_title="Vertices")
  assert snapshot.estimated_seconds_remaining is None
  assert snapshot.completed_sections == 0


def test_current_section_is_successor_of_last_written() -> None:
  chapters = [_chapter(0)]
  sections = [_section(0, 0), _section(0, 1)]

  snapshot = project_progress(_textbook(percentage=40), chapters, sections, now=datetime(2026, 1, 1, 0, 1, 0, tzinfo=UTC))

  assert snapshot.currently_generating is not None
  assert (snapshot.currently_generating.chapter_title, snapshot.currently_generating.section_title) == ("Paths", "Walks")
  assert snapshot.completed_sections == 2
  assert snapshot.estimated_seconds_remaining == 90


def test_skipped_chapter_is_not_reported_as_current() -> None:
  chapters = [_chapter(0), _chapter(2)]
  sections = [_section(0, 0), _section(0, 1)]

  snapshot = project_progress(_textbook(percentage=40), chapters, sections, now=datetime(2026, 1, 1, 0, 1, 0, tzinfo=UTC))

  assert snapshot.currently_generating is not None
  assert snapshot.currently_generating.chapter_position == 2


def test_terminal_states_have_no_current_section() -> None:
  completed = project_progress(_textbook(status="completed", percentage=100), [_chapter(0)], [_section(0, 0)])
  errored = project_progress(_textbook(status="error", percentage=20), [_chapter(0)], [_section(0, 0)])

  assert completed.currently_generating is None
  assert completed.estimated_seconds_remaining == 0
  assert errored.currently_generating is None
  assert errored.estimated_seconds_remaining is None
  assert errored.completion_percentage == 20
