"""Outline generation and normalization."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from textbook_engine.ai.contracts import Outline
from textbook_engine.ai.errors import OutlineParseError
from textbook_engine.ai.json_parser import extract_json_text
from textbook_engine.ai.prompts import render_outline_messages
from textbook_engine.ai.providers.chat_completions import ChatMessage

logger = logging.getLogger(__name__)

MAX_SECTIONS_PER_CHAPTER = 5


class ChatClient(Protocol):
  async def complete(self, messages: list[ChatMessage]) -> str:
    """Return the reply text for one chat completion."""


def normalize_outline(outline: Outline, chapter_count: int, max_sections: int = MAX_SECTIONS_PER_CHAPTER) -> Outline:
  """Truncate trailing chapters beyond `chapter_count` and sections beyond `max_sections`; never pads."""
  chapters = tuple(chapter.model_copy(update={"sections": chapter.sections[:max_sections]}) for chapter in outline.chapters[:chapter_count])
  return outline.model_copy(update={"chapters": chapters})


def _truncate_payload(payload: dict[str, Any], chapter_count: int, max_sections: int) -> dict[str, Any]:
  """Cut surplus chapters and sections from the raw reply so entries past the caps never reach validation."""
  chapters = []
  for chapter in payload["chapters"][:chapter_count]:
    if isinstance(chapter, dict) and isinstance(chapter.get("sections"), list):
      chapter = {**chapter, "sections": chapter["sections"][:max_sections]}
    chapters.append(chapter)
  return {**payload, "chapters": chapters}


def parse_outline(content: str, chapter_count: int, max_sections: int = MAX_SECTIONS_PER_CHAPTER) -> Outline:
  """Parse a raw model reply into a normalized outline or raise `OutlineParseError`."""
  try:
    payload: Any = json.loads(extract_json_text(content))
  except json.JSONDecodeError as exc:
    logger.error("Error parsing outline JSON: %s; raw content: %s", exc, content[:500])
    raise OutlineParseError("Failed to parse outline JSON") from exc

  # Required shape: a non-empty title and a chapters array.
  if not isinstance(payload, dict) or not payload.get("title") or not isinstance(payload.get("chapters"), list):
    logger.error("Invalid outline structure: %s", content[:500])
    raise OutlineParseError("Invalid outline structure")

  if len(payload["chapters"]) != chapter_count:
    logger.warning("Generated %d chapters, but %d were requested.", len(payload["chapters"]), chapter_count)

  try:
    outline = Outline.model_validate(_truncate_payload(payload, chapter_count, max_sections))
  except ValidationError as exc:
    logger.error("Outline failed validation: %s", exc.errors(include_input=False))
    raise OutlineParseError("Invalid outline structure") from exc

  return normalize_outline(outline, chapter_count, max_sections)


class OutlineGenerator:
  """Ask the model for a strict JSON outline and normalize the reply."""

  def __init__(self, chat_client: ChatClient, *, max_sections: int = MAX_SECTIONS_PER_CHAPTER) -> None:
    self._chat_client = chat_client
    self._max_sections = max_sections

  async def generate(self, prompt: str, chapter_count: int) -> Outline:
    """Generate an outline; model-call errors propagate, malformed replies raise `OutlineParseError`."""
    logger.info("Generating textbook outline with %d chapters", chapter_count)
    messages = render_outline_messages(prompt, chapter_count, self._max_sections)
    content = await self._chat_client.complete(messages)
    outline = parse_outline(content, chapter_count, self._max_sections)
    logger.info("Outline accepted: %r with %d chapters and %d sections", outline.title, len(outline.chapters), outline.total_sections)
    return outline
