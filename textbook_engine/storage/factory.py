from __future__ import annotations

from functools import lru_cache

from textbook_engine.config import Settings
from textbook_engine.progress.events import get_change_feed
from textbook_engine.storage.memory_textbooks_repo import InMemoryTextbooksRepository
from textbook_engine.storage.notifying_repo import NotifyingTextbooksRepository
from textbook_engine.storage.postgres_textbooks_repo import PostgresTextbooksRepository
from textbook_engine.storage.textbooks_repo import TextbooksRepository


@lru_cache
def _build_repo(storage_backend: str) -> TextbooksRepository:
  # One instance per backend so the in-memory store and chapter ownership map live for the process.
  if storage_backend == "memory":
    inner: TextbooksRepository = InMemoryTextbooksRepository()
  elif storage_backend == "postgres":
    inner = PostgresTextbooksRepository()
  else:
    raise ValueError(f"Unknown storage backend: {storage_backend}")

  return NotifyingTextbooksRepository(inner, get_change_feed())


def _get_textbooks_repo(settings: Settings) -> TextbooksRepository:
  """Return the active textbooks repository, wrapped so writes reach the change feed."""

  if settings.storage_backend == "postgres" and not settings.pg_dsn:
    raise ValueError("TEXTBOOK_PG_DSN must be set to enable Postgres persistence.")

  return _build_repo(settings.storage_backend)
