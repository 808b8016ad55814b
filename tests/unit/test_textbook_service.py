from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
from fastapi import BackgroundTasks, HTTPException

from textbook_engine.ai.contracts import Outline
from textbook_engine.ai.errors import OutlineParseError
from textbook_engine.ai.section_writer import SectionWriter
from textbook_engine.api.deps import _task_dispatcher, drain_job_dispatcher, get_job_dispatcher
from textbook_engine.api.models import TextbookCreateRequest
from textbook_engine.config import get_settings
from textbook_engine.jobs.dispatch import AsyncioJobDispatcher, BackgroundTasksDispatcher
from textbook_engine.jobs.runner import TextbookJobRunner
from textbook_engine.services.textbooks import clamp_chapter_count, submit_textbook
from textbook_engine.storage.memory_textbooks_repo import InMemoryTextbooksRepository


def _settings():
  return replace(get_settings(), min_chapters=1, max_chapters=10, default_chapters=3, min_prompt_chars=10, max_prompt_chars=4000)


class StubOutlineGenerator:
  def __init__(self, *, error: Exception | None = None) -> None:
    self.calls: list[tuple[str, int]] = []
    self._error = error

  async def generate(self, prompt: str, chapter_count: int) -> Outline:
    self.calls.append((prompt, chapter_count))
    if self._error is not None:
      raise self._error
    return Outline.model_validate({"title": "Graphs", "description": "Intro", "chapters": [{"title": f"C{c}", "sections": ["A", "B"]} for c in range(chapter_count)]})


class EchoChatClient:
  async def complete(self, messages):
    return "Body"


async def _no_sleep(seconds: float) -> None:
  return None


@pytest.mark.parametrize(("raw", "expected"), [(None, 3), (0, 1), (-4, 1), (4, 4), (25, 10)])
def test_clamp_chapter_count(raw, expected) -> None:
  assert clamp_chapter_count(raw, _settings()) == expected


@pytest.mark.anyio
async def test_submit_persists_outline_and_runs_job_detached() -> None:
  repo = InMemoryTextbooksRepository()
  generator = StubOutlineGenerator()
  dispatcher = AsyncioJobDispatcher()
  runner = TextbookJobRunner(repo, SectionWriter(EchoChatClient()), pacing_seconds=0, sleep=_no_sleep)

  response = await submit_textbook(TextbookCreateRequest(prompt="  Intro to graph theory  ", chapter_count=2), _settings(), dispatcher, repo=repo, outline_generator=generator, runner=runner)

  assert generator.calls == [("Intro to graph theory", 2)]
  assert response.title == "Graphs"
  assert response.total_sections == 4
  assert dispatcher.pending == 1

  record = await repo.get_textbook(response.textbook_id)
  assert record is not None
  assert record.outline["title"] == "Graphs"

  await dispatcher.wait_idle()

  assert dispatcher.pending == 0
  record = await repo.get_textbook(response.textbook_id)
  assert record.status == "completed"
  assert record.completion_percentage == 100
  assert await repo.count_sections(response.textbook_id) == 4


@pytest.mark.anyio
async def test_submit_rejects_short_prompt_before_calling_model() -> None:
  repo = InMemoryTextbooksRepository()
  generator = StubOutlineGenerator()
  runner = TextbookJobRunner(repo, SectionWriter(EchoChatClient()), pacing_seconds=0, sleep=_no_sleep)

  with pytest.raises(HTTPException) as excinfo:
    await submit_textbook(TextbookCreateRequest(prompt="   short  "), _settings(), AsyncioJobDispatcher(), repo=repo, outline_generator=generator, runner=runner)

  assert excinfo.value.status_code == 422
  assert generator.calls == []


@pytest.mark.anyio
async def test_outline_failure_writes_nothing() -> None:
  repo = InMemoryTextbooksRepository()
  dispatcher = AsyncioJobDispatcher()
  runner = TextbookJobRunner(repo, SectionWriter(EchoChatClient()), pacing_seconds=0, sleep=_no_sleep)

  with pytest.raises(OutlineParseError):
    await submit_textbook(TextbookCreateRequest(prompt="Intro to graph theory"), _settings(), dispatcher, repo=repo, outline_generator=StubOutlineGenerator(error=OutlineParseError("Invalid outline structure")), runner=runner)

  records, total = await repo.list_textbooks()
  assert (records, total) == ([], 0)
  assert dispatcher.pending == 0


def test_dispatch_mode_selects_dispatcher() -> None:
  _task_dispatcher.cache_clear()
  try:
    assert isinstance(get_job_dispatcher(BackgroundTasks(), settings=replace(_settings(), job_dispatch="background")), BackgroundTasksDispatcher)
    task_settings = replace(_settings(), job_dispatch="task")
    first = get_job_dispatcher(BackgroundTasks(), settings=task_settings)
    assert isinstance(first, AsyncioJobDispatcher)
    assert get_job_dispatcher(BackgroundTasks(), settings=task_settings) is first
  finally:
    _task_dispatcher.cache_clear()


@pytest.mark.anyio
async def test_drain_waits_for_jobs_without_cancelling_them() -> None:
  _task_dispatcher.cache_clear()
  release = asyncio.Event()
  finished: list[str] = []

  async def _job() -> None:
    await release.wait()
    finished.append("tb-1")

  try:
    dispatcher = get_job_dispatcher(BackgroundTasks(), settings=replace(_settings(), job_dispatch="task"))
    dispatcher.dispatch("tb-1", _job)

    await drain_job_dispatcher(0.01)
    assert dispatcher.pending == 1
    assert finished == []

    release.set()
    await drain_job_dispatcher(1.0)
    assert dispatcher.pending == 0
    assert finished == ["tb-1"]
  finally:
    _task_dispatcher.cache_clear()


@pytest.mark.anyio
async def test_wait_idle_reports_timeout() -> None:
  dispatcher = AsyncioJobDispatcher()
  release = asyncio.Event()
  dispatcher.dispatch("tb-1", release.wait)

  assert await dispatcher.wait_idle(timeout=0.01) is False
  release.set()
  assert await dispatcher.wait_idle(timeout=1.0) is True
