"""Helpers for pulling JSON payloads out of model replies."""

from __future__ import annotations

import re

# First fenced block whose body is a JSON object, with or without a `json` language tag.
_FENCED_OBJECT_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


def extract_json_text(raw: str) -> str:
  """Return the first fenced JSON object in `raw`, or `raw` itself when there is none."""
  match = _FENCED_OBJECT_RE.search(raw)
  if match is None:
    return raw.strip()
  return match.group(1)
