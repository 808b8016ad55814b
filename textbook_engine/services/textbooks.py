"""Service layer for textbook submission, history, progress and live updates."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict
from datetime import datetime
from typing import Any

import msgspec
from fastapi import HTTPException, status

from textbook_engine.ai.outline import OutlineGenerator
from textbook_engine.api.models import ProgressResponse, TextbookCreateRequest, TextbookCreateResponse, TextbookDocumentResponse, TextbookListResponse, TextbookSummary
from textbook_engine.config import Settings
from textbook_engine.jobs.dispatch import JobDispatcher
from textbook_engine.jobs.models import TextbookRecord
from textbook_engine.jobs.runner import TextbookJobRunner
from textbook_engine.progress.assembler import TextbookAssembler
from textbook_engine.progress.events import ChangeEvent, ChangeFeed, encode_event
from textbook_engine.storage.textbooks_repo import TextbooksRepository
from textbook_engine.utils.ids import generate_textbook_id
from textbook_engine.utils.time import now_iso

logger = logging.getLogger(__name__)

_TEXTBOOK_NOT_FOUND_MSG = "Textbook not found."


def clamp_chapter_count(raw: int | None, settings: Settings) -> int:
  """Clamp a requested chapter count into the configured range; missing means the default."""
  if raw is None:
    return settings.default_chapters
  return max(settings.min_chapters, min(raw, settings.max_chapters))


def _validate_prompt(prompt: str, settings: Settings) -> str:
  cleaned = prompt.strip()
  if len(cleaned) < settings.min_prompt_chars:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Prompt must be at least {settings.min_prompt_chars} characters.")
  if len(cleaned) > settings.max_prompt_chars:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Prompt must be at most {settings.max_prompt_chars} characters.")
  return cleaned


async def submit_textbook(request: TextbookCreateRequest, settings: Settings, dispatcher: JobDispatcher, *, repo: TextbooksRepository, outline_generator: OutlineGenerator, runner: TextbookJobRunner) -> TextbookCreateResponse:
  """Generate and persist the outline, then hand content generation to the dispatcher.

  Outline failures propagate before any row is written, so a failed submission leaves nothing behind.
  """
  prompt = _validate_prompt(request.prompt, settings)
  chapter_count = clamp_chapter_count(request.chapter_count, settings)

  outline = await outline_generator.generate(prompt, chapter_count)

  timestamp = now_iso()
  record = TextbookRecord(
    textbook_id=generate_textbook_id(),
    title=outline.title,
    description=outline.description,
    prompt=prompt,
    status="generating",
    completion_percentage=0,
    total_sections=outline.total_sections,
    outline=outline.model_dump(mode="json"),
    created_at=timestamp,
    updated_at=timestamp,
  )
  await repo.create_textbook(record)
  logger.info("Created textbook %s (%r) with %d sections", record.textbook_id, record.title, record.total_sections)

  async def _generate() -> None:
    await runner.run(record.textbook_id, outline)

  dispatcher.dispatch(record.textbook_id, _generate)
  return TextbookCreateResponse(textbook_id=record.textbook_id, title=record.title, total_sections=record.total_sections)


async def get_textbook_record(textbook_id: str, repo: TextbooksRepository) -> TextbookRecord:
  record = await repo.get_textbook(textbook_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_TEXTBOOK_NOT_FOUND_MSG)
  return record


async def _load_assembler(textbook_id: str, repo: TextbooksRepository) -> TextbookAssembler:
  record = await get_textbook_record(textbook_id, repo)
  chapters = await repo.list_chapters(textbook_id)
  sections = await repo.list_sections(textbook_id)
  return TextbookAssembler.from_state(record, chapters, sections)


async def list_textbooks(repo: TextbooksRepository, *, limit: int, offset: int) -> TextbookListResponse:
  records, total = await repo.list_textbooks(limit=limit, offset=offset)
  items = [
    TextbookSummary(
      textbook_id=record.textbook_id,
      title=record.title,
      description=record.description,
      status=record.status,
      completion_percentage=record.completion_percentage,
      total_sections=record.total_sections,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )
    for record in records
  ]
  return TextbookListResponse(items=items, total=total, limit=limit, offset=offset)


async def get_textbook_document(textbook_id: str, repo: TextbooksRepository) -> TextbookDocumentResponse:
  assembler = await _load_assembler(textbook_id, repo)
  return TextbookDocumentResponse.model_validate(assembler.document())


async def get_textbook_progress(textbook_id: str, repo: TextbooksRepository, *, now: datetime | None = None) -> ProgressResponse:
  assembler = await _load_assembler(textbook_id, repo)
  return ProgressResponse.model_validate(assembler.progress(now=now))


def format_sse(event: str, data: Any) -> str:
  """Render one Server-Sent Events frame; change events keep their wire encoding."""
  payload = (encode_event(data) if isinstance(data, ChangeEvent) else msgspec.json.encode(data)).decode("utf-8")
  return f"event: {event}\ndata: {payload}\n\n"


async def stream_textbook_events(textbook_id: str, repo: TextbooksRepository, feed: ChangeFeed, *, timeout_seconds: float) -> AsyncIterator[str]:
  """Yield a snapshot frame, then change and progress frames until the job ends or the wait times out.

  The subscription is opened before the initial read so no committed row falls between the two.
  Timing out only ends this stream; the runner keeps going.
  """
  async with feed.subscribe(textbook_id) as queue:
    logger.info("Stream opened for textbook %s (%d listener(s))", textbook_id, feed.subscriber_count(textbook_id))
    assembler = await _load_assembler(textbook_id, repo)
    yield format_sse("snapshot", {"document": asdict(assembler.document()), "progress": asdict(assembler.progress())})
    if assembler.is_terminal:
      return

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    while True:
      remaining = deadline - loop.time()
      try:
        if remaining <= 0:
          raise TimeoutError
        event = await asyncio.wait_for(queue.get(), timeout=remaining)
      except TimeoutError:
        logger.info("Stream for textbook %s timed out after %.0fs; generation continues", textbook_id, timeout_seconds)
        yield format_sse("timeout", {"document": asdict(assembler.document()), "progress": asdict(assembler.progress())})
        return

      if not assembler.apply(event):
        continue
      yield format_sse("change", event)
      yield format_sse("progress", asdict(assembler.progress()))
      if assembler.is_terminal:
        return
