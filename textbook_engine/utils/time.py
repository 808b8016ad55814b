"""Timestamp helpers shared by persistence and progress code."""

from __future__ import annotations

from datetime import UTC, datetime

DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now_iso() -> str:
  return datetime.now(UTC).strftime(DATE_FORMAT)


def parse_iso(raw: str) -> datetime:
  """Parse a stored UTC timestamp, accepting both the compact `Z` form and full ISO offsets."""
  parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=UTC)
  return parsed
