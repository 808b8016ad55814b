"""Shared FastAPI dependencies for repositories, model clients and job dispatch."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import BackgroundTasks, Depends

from textbook_engine.ai.outline import OutlineGenerator
from textbook_engine.ai.providers.chat_completions import ChatCompletionsClient, build_chat_client
from textbook_engine.ai.section_writer import SectionWriter
from textbook_engine.config import Settings, get_settings
from textbook_engine.jobs.dispatch import AsyncioJobDispatcher, BackgroundTasksDispatcher, JobDispatcher
from textbook_engine.progress.events import ChangeFeed
from textbook_engine.progress.events import get_change_feed as _get_change_feed
from textbook_engine.storage.factory import _get_textbooks_repo
from textbook_engine.storage.textbooks_repo import TextbooksRepository

logger = logging.getLogger(__name__)


@lru_cache
def _chat_client(settings: Settings) -> ChatCompletionsClient:
  logger.info("Creating chat client for model %s", settings.llm_model)
  return build_chat_client(settings)


async def close_chat_clients() -> None:
  """Close the cached chat client, if one was created."""
  if _chat_client.cache_info().currsize:
    await _chat_client(get_settings()).aclose()
  _chat_client.cache_clear()


def get_textbooks_repo(settings: Settings = Depends(get_settings)) -> TextbooksRepository:  # noqa: B008
  return _get_textbooks_repo(settings)


def get_change_feed() -> ChangeFeed:
  return _get_change_feed()


def get_outline_generator(settings: Settings = Depends(get_settings)) -> OutlineGenerator:  # noqa: B008
  return OutlineGenerator(_chat_client(settings), max_sections=settings.max_sections_per_chapter)


def get_section_writer(settings: Settings = Depends(get_settings)) -> SectionWriter:  # noqa: B008
  return SectionWriter(_chat_client(settings))


@lru_cache
def _task_dispatcher() -> AsyncioJobDispatcher:
  return AsyncioJobDispatcher()


def get_job_dispatcher(background_tasks: BackgroundTasks, settings: Settings = Depends(get_settings)) -> JobDispatcher:  # noqa: B008
  if settings.job_dispatch == "task":
    return _task_dispatcher()
  return BackgroundTasksDispatcher(background_tasks)


async def drain_job_dispatcher(timeout_seconds: float) -> None:
  """Give detached jobs up to `timeout_seconds` to finish before shutdown."""
  if not _task_dispatcher.cache_info().currsize:
    return
  dispatcher = _task_dispatcher()
  if not dispatcher.pending:
    return
  logger.info("Waiting up to %.0fs for %d textbook job(s) to finish", timeout_seconds, dispatcher.pending)
  if not await dispatcher.wait_idle(timeout=timeout_seconds):
    logger.warning("%d textbook job(s) still running at shutdown", dispatcher.pending)
