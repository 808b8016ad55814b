"""Completion accounting for a running textbook job."""

from __future__ import annotations

import logging

from textbook_engine.jobs.models import TextbookRecord
from textbook_engine.storage.textbooks_repo import TextbooksRepository

logger = logging.getLogger(__name__)


def completion_percentage(completed: int, total: int) -> int:
  """Return `completed / total * 100` rounded half up and clamped to 0..100; 0 when total is 0."""
  if total <= 0:
    return 0
  completed = max(0, min(completed, total))
  return (completed * 200 + total) // (2 * total)


class CompletionTracker:
  """Persist a job's status and percentage, never letting the percentage go backwards."""

  def __init__(self, *, textbook_id: str, repo: TextbooksRepository, total_sections: int, initial_percentage: int = 0) -> None:
    self._textbook_id = textbook_id
    self._repo = repo
    self._total_sections = max(total_sections, 0)
    self._percentage = initial_percentage
    self._completed_sections = 0

  @property
  def percentage(self) -> int:
    return self._percentage

  @property
  def completed_sections(self) -> int:
    return self._completed_sections

  def _advance(self, completed: int) -> int:
    self._completed_sections = max(self._completed_sections, completed)
    self._percentage = max(self._percentage, completion_percentage(self._completed_sections, self._total_sections))
    return self._percentage

  async def mark_generating(self) -> TextbookRecord | None:
    """Re-assert `generating` with the current percentage before a section is produced."""

    return await self._repo.update_textbook(self._textbook_id, status="generating", completion_percentage=self._percentage)

  async def record_section_completed(self) -> TextbookRecord | None:
    """Recount persisted sections and persist the refreshed percentage."""

    completed = await self._repo.count_sections(self._textbook_id)
    percentage = self._advance(completed)
    if self._total_sections and self._completed_sections >= self._total_sections:
      logger.info("All %d sections persisted for textbook %s", self._total_sections, self._textbook_id)
      return await self._repo.update_textbook(self._textbook_id, status="completed", completion_percentage=100)
    return await self._repo.update_textbook(self._textbook_id, completion_percentage=percentage)

  async def complete(self) -> TextbookRecord | None:
    """Pin the job at 100 percent and `completed`."""

    self._percentage = 100
    return await self._repo.update_textbook(self._textbook_id, status="completed", completion_percentage=100)

  async def fail(self) -> TextbookRecord | None:
    """Set the job to `error`, leaving the percentage where it was."""

    return await self._repo.update_textbook(self._textbook_id, status="error")
