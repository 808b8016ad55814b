"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_textbook_id() -> str:
  """Return a new textbook (generation job) identifier."""
  return str(uuid.uuid4())


def generate_row_id() -> str:
  """Return a new chapter or section row identifier."""
  return str(uuid.uuid4())
