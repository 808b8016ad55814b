"""Load service settings from a local .env file."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VAR = "TEXTBOOK_ENV_FILE"
_SERVICE_KEYS = ("TEXTBOOK_", "DATABASE_URL", "OPENAI_API_KEY")


def default_env_path() -> Path:
  """`TEXTBOOK_ENV_FILE` when set, else `.env` beside pyproject.toml."""
  override = os.getenv(ENV_FILE_VAR)
  if override:
    return Path(override).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _parse_line(raw_line: str) -> tuple[str, str] | None:
  line = raw_line.strip().removeprefix("export ").lstrip()
  if not line or line.startswith("#") or "=" not in line:
    return None

  key, value = (part.strip() for part in line.split("=", 1))
  if value[:1] in {'"', "'"} and len(value) >= 2 and value.endswith(value[0]):
    return key, value[1:-1]
  # Unquoted values may carry a trailing comment.
  value, _, _ = value.partition(" #")
  return key, value.rstrip()


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Export the service's own keys from `path` and return what was applied.

  Only `TEXTBOOK_*`, `DATABASE_URL` and `OPENAI_API_KEY` are read; other keys are skipped.
  """
  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    parsed = _parse_line(raw_line)
    if parsed is None:
      continue
    key, value = parsed
    if not key.startswith(_SERVICE_KEYS):
      continue
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied[key] = value
  return applied
