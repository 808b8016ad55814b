"""Sequential chapter and section generation for one accepted outline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from textbook_engine.ai.contracts import Outline
from textbook_engine.ai.errors import SectionGenerationError
from textbook_engine.ai.section_writer import SectionWriter, failure_content
from textbook_engine.jobs.models import TextbookStatus
from textbook_engine.jobs.progress import CompletionTracker
from textbook_engine.storage.textbooks_repo import ChapterPersistError, SectionPersistError, TextbooksRepository

logger = logging.getLogger(__name__)

SECTION_PACING_SECONDS = 2.0

_ACTIVE_JOBS: set[str] = set()


class FatalRunnerError(RuntimeError):
  """An unanticipated fault stopped the job; the textbook is left in `error`."""


class JobAlreadyRunningError(RuntimeError):
  """A runner for this textbook is already active in this process."""


@dataclass(frozen=True)
class RunResult:
  textbook_id: str
  status: TextbookStatus
  completed_sections: int
  total_sections: int
  failed_sections: int = 0
  skipped_chapters: tuple[int, ...] = field(default_factory=tuple)
  error: FatalRunnerError | None = None


def is_job_active(textbook_id: str) -> bool:
  return textbook_id in _ACTIVE_JOBS


class TextbookJobRunner:
  """Write chapters and sections for one textbook, one model call at a time.

  Chapter insert failures skip that chapter, section generation failures store failure text as the
  content, and section insert failures leave the section absent. Anything else ends the job in `error`.
  """

  def __init__(self, repo: TextbooksRepository, section_writer: SectionWriter, *, pacing_seconds: float = SECTION_PACING_SECONDS, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
    self._repo = repo
    self._section_writer = section_writer
    self._pacing_seconds = pacing_seconds
    self._sleep = sleep

  async def run(self, textbook_id: str, outline: Outline) -> RunResult:
    """Generate every outline section for the textbook and return how the job ended."""
    if is_job_active(textbook_id):
      raise JobAlreadyRunningError(f"Textbook {textbook_id} is already being generated.")

    _ACTIVE_JOBS.add(textbook_id)
    try:
      return await self._run(textbook_id, outline)
    finally:
      _ACTIVE_JOBS.discard(textbook_id)

  async def _run(self, textbook_id: str, outline: Outline) -> RunResult:
    total_sections = outline.total_sections
    tracker = CompletionTracker(textbook_id=textbook_id, repo=self._repo, total_sections=total_sections)
    failed_sections = 0
    skipped_chapters: list[int] = []
    first_section = True
    logger.info("Starting content generation for textbook %s: %d chapters, %d sections", textbook_id, len(outline.chapters), total_sections)

    try:
      for chapter_index, chapter in enumerate(outline.chapters):
        try:
          chapter_row = await self._repo.create_chapter(textbook_id=textbook_id, title=chapter.title, position=chapter_index)
        except ChapterPersistError as exc:
          logger.error("Skipping chapter %d (%r) of textbook %s: %s", chapter_index, chapter.title, textbook_id, exc)
          skipped_chapters.append(chapter_index)
          continue

        logger.info("Generating chapter %d/%d: %r", chapter_index + 1, len(outline.chapters), chapter.title)
        for section_index, section in enumerate(chapter.sections):
          if not first_section:
            await self._sleep(self._pacing_seconds)
          first_section = False

          await tracker.mark_generating()
          try:
            content = await self._section_writer.write(textbook_title=outline.title, chapter_title=chapter.title, section_title=section.title)
          except SectionGenerationError as exc:
            failed_sections += 1
            content = failure_content(exc)

          try:
            await self._repo.create_section(chapter_id=chapter_row.chapter_id, title=section.title, content=content, position=section_index)
          except SectionPersistError as exc:
            logger.error("Section %d (%r) of chapter %d was not persisted: %s", section_index, section.title, chapter_index, exc)
            continue

          await tracker.record_section_completed()
          logger.info("Section %r persisted (%d%%)", section.title, tracker.percentage)

      await tracker.complete()
    except Exception as exc:  # noqa: BLE001
      fatal = FatalRunnerError(f"Textbook generation failed: {exc}")
      fatal.__cause__ = exc
      logger.error("Fatal error generating textbook %s", textbook_id, exc_info=True)
      await self._record_failure(tracker, textbook_id)
      return RunResult(
        textbook_id=textbook_id,
        status="error",
        completed_sections=tracker.completed_sections,
        total_sections=total_sections,
        failed_sections=failed_sections,
        skipped_chapters=tuple(skipped_chapters),
        error=fatal,
      )

    logger.info("Textbook %s completed with %d failed sections and %d skipped chapters", textbook_id, failed_sections, len(skipped_chapters))
    return RunResult(
      textbook_id=textbook_id,
      status="completed",
      completed_sections=tracker.completed_sections,
      total_sections=total_sections,
      failed_sections=failed_sections,
      skipped_chapters=tuple(skipped_chapters),
    )

  async def _record_failure(self, tracker: CompletionTracker, textbook_id: str) -> None:
    try:
      await tracker.fail()
    except Exception:  # noqa: BLE001
      logger.error("Could not record error status for textbook %s", textbook_id, exc_info=True)
