"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from textbook_engine.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_STORAGE_BACKENDS = {"postgres", "memory"}
_JOB_DISPATCH_MODES = {"background", "task"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the textbook generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  storage_backend: str
  auto_apply_migrations: bool
  llm_api_key: str | None
  llm_base_url: str
  llm_model: str
  llm_timeout_seconds: float
  llm_max_attempts: int
  min_chapters: int
  max_chapters: int
  default_chapters: int
  max_sections_per_chapter: int
  section_pacing_seconds: float
  min_prompt_chars: int
  max_prompt_chars: int
  stream_timeout_seconds: float
  job_dispatch: str
  shutdown_grace_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("TEXTBOOK_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("TEXTBOOK_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("TEXTBOOK_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("TEXTBOOK_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("TEXTBOOK_DEBUG"))

  log_max_bytes = _positive_int("TEXTBOOK_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("TEXTBOOK_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("TEXTBOOK_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("TEXTBOOK_LOG_HTTP_4XX"))

  pg_dsn = _optional_str(os.getenv("TEXTBOOK_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  pg_connect_timeout = _positive_int("TEXTBOOK_PG_CONNECT_TIMEOUT", "5")

  # Fall back to the in-memory store only when no database is configured.
  storage_backend = (os.getenv("TEXTBOOK_STORAGE_BACKEND") or ("postgres" if pg_dsn else "memory")).strip().lower()
  if storage_backend not in _STORAGE_BACKENDS:
    raise ValueError(f"TEXTBOOK_STORAGE_BACKEND must be one of: {', '.join(sorted(_STORAGE_BACKENDS))}.")
  if storage_backend == "postgres" and not pg_dsn:
    raise ValueError("TEXTBOOK_PG_DSN must be set when TEXTBOOK_STORAGE_BACKEND is 'postgres'.")

  llm_timeout_seconds = float(os.getenv("TEXTBOOK_LLM_TIMEOUT_SECONDS", "120"))
  if llm_timeout_seconds <= 0:
    raise ValueError("TEXTBOOK_LLM_TIMEOUT_SECONDS must be positive.")
  llm_max_attempts = _positive_int("TEXTBOOK_LLM_MAX_ATTEMPTS", "3")

  # Chapter bounds clamp client requests; the default must sit inside them.
  min_chapters = _positive_int("TEXTBOOK_MIN_CHAPTERS", "1")
  max_chapters = _positive_int("TEXTBOOK_MAX_CHAPTERS", "10")
  if min_chapters > max_chapters:
    raise ValueError("TEXTBOOK_MIN_CHAPTERS must not exceed TEXTBOOK_MAX_CHAPTERS.")
  default_chapters = _positive_int("TEXTBOOK_DEFAULT_CHAPTERS", "3")
  if not min_chapters <= default_chapters <= max_chapters:
    raise ValueError("TEXTBOOK_DEFAULT_CHAPTERS must fall within the chapter bounds.")

  max_sections_per_chapter = _positive_int("TEXTBOOK_MAX_SECTIONS_PER_CHAPTER", "5")
  section_pacing_seconds = _non_negative_float("TEXTBOOK_SECTION_PACING_SECONDS", "2")

  min_prompt_chars = _positive_int("TEXTBOOK_MIN_PROMPT_CHARS", "10")
  max_prompt_chars = _positive_int("TEXTBOOK_MAX_PROMPT_CHARS", "4000")
  if min_prompt_chars > max_prompt_chars:
    raise ValueError("TEXTBOOK_MIN_PROMPT_CHARS must not exceed TEXTBOOK_MAX_PROMPT_CHARS.")

  stream_timeout_seconds = _non_negative_float("TEXTBOOK_STREAM_TIMEOUT_SECONDS", "90")

  # "background" runs jobs after the response via BackgroundTasks; "task" detaches them onto the event loop.
  job_dispatch = (os.getenv("TEXTBOOK_JOB_DISPATCH") or "background").strip().lower()
  if job_dispatch not in _JOB_DISPATCH_MODES:
    raise ValueError(f"TEXTBOOK_JOB_DISPATCH must be one of: {', '.join(sorted(_JOB_DISPATCH_MODES))}.")
  shutdown_grace_seconds = _non_negative_float("TEXTBOOK_SHUTDOWN_GRACE_SECONDS", "30")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("TEXTBOOK_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=pg_dsn,
    pg_connect_timeout=pg_connect_timeout,
    storage_backend=storage_backend,
    auto_apply_migrations=_parse_bool(os.getenv("TEXTBOOK_AUTO_APPLY_MIGRATIONS")),
    llm_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    llm_base_url=(os.getenv("TEXTBOOK_LLM_BASE_URL") or "https://api.openai.com/v1").strip().rstrip("/"),
    llm_model=(os.getenv("TEXTBOOK_LLM_MODEL") or "gpt-4o").strip(),
    llm_timeout_seconds=llm_timeout_seconds,
    llm_max_attempts=llm_max_attempts,
    min_chapters=min_chapters,
    max_chapters=max_chapters,
    default_chapters=default_chapters,
    max_sections_per_chapter=max_sections_per_chapter,
    section_pacing_seconds=section_pacing_seconds,
    min_prompt_chars=min_prompt_chars,
    max_prompt_chars=max_prompt_chars,
    stream_timeout_seconds=stream_timeout_seconds,
    job_dispatch=job_dispatch,
    shutdown_grace_seconds=shutdown_grace_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("TEXTBOOK_DEBUG"))
  pg_connect_timeout = _positive_int("TEXTBOOK_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = _optional_str(os.getenv("TEXTBOOK_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
