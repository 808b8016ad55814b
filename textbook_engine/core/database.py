"""Async engine and session factory for the Postgres textbook store."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from textbook_engine.config import DatabaseSettings, get_database_settings

_ASYNC_DRIVER = "postgresql+asyncpg"
_PLAIN_SCHEMES = frozenset({"postgres", "postgresql"})


class Base(DeclarativeBase):
  """Declarative base for the textbooks, chapters and sections tables."""


def async_database_url(dsn: str | None) -> str | None:
  """Point a plain Postgres DSN at the asyncpg driver; DSNs naming a driver are returned unchanged."""
  if not dsn:
    return None
  scheme, separator, rest = dsn.partition("://")
  if separator and scheme in _PLAIN_SCHEMES:
    return f"{_ASYNC_DRIVER}://{rest}"
  return dsn


def engine_options(settings: DatabaseSettings) -> dict[str, Any]:
  """Keyword arguments shared by the service engine and the migration engine."""
  return {"echo": settings.debug, "connect_args": {"timeout": settings.pg_connect_timeout}}


@lru_cache(maxsize=1)
def get_db_engine() -> AsyncEngine | None:
  settings = get_database_settings()
  url = async_database_url(settings.pg_dsn)
  if url is None:
    return None
  return create_async_engine(url, pool_pre_ping=True, **engine_options(settings))


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  engine = get_db_engine()
  if engine is None:
    return None
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def dispose_db_engine() -> None:
  """Close pooled connections; does nothing when no engine was ever created."""
  if get_db_engine.cache_info().currsize == 0:
    return
  engine = get_db_engine()
  get_session_factory.cache_clear()
  get_db_engine.cache_clear()
  if engine is not None:
    await engine.dispose()
