import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlparse

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from textbook_engine.core.logging import _initialize_logging

_REPO_ROOT = Path(__file__).resolve().parents[2]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and optionally migrate; on shutdown let detached jobs finish, then release clients and connections."""
  from textbook_engine.api.deps import close_chat_clients, drain_job_dispatcher
  from textbook_engine.config import get_settings
  from textbook_engine.core.database import dispose_db_engine

  settings = get_settings()
  logger = logging.getLogger("textbook_engine.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified. storage_backend=%s", settings.storage_backend)

  if settings.auto_apply_migrations and settings.storage_backend == "postgres":
    logger.info("Auto-apply migrations enabled; TEXTBOOK_PG_DSN=%s", _redact_dsn(settings.pg_dsn))
    # env.py drives its own event loop, so run the upgrade off this one.
    await asyncio.to_thread(_upgrade_to_head)
    logger.info("Migrations applied.")

  yield

  await drain_job_dispatcher(settings.shutdown_grace_seconds)
  await close_chat_clients()
  await dispose_db_engine()
  logger.info("Shutdown complete.")


def _upgrade_to_head() -> None:
  config = Config(str(_REPO_ROOT / "alembic.ini"))
  # Keep the application log handlers in place.
  config.attributes["configure_logger"] = False
  config.set_main_option("script_location", str(_REPO_ROOT / "alembic"))
  command.upgrade(config, "head")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
