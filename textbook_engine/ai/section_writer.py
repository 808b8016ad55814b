"""Section content generation."""

from __future__ import annotations

import logging

from textbook_engine.ai.errors import EmptyCompletionError, ModelCallError, SectionGenerationError
from textbook_engine.ai.outline import ChatClient
from textbook_engine.ai.prompts import render_section_messages

logger = logging.getLogger(__name__)

EMPTY_CONTENT_MESSAGE = "Content generation failed for this section. Please try regenerating."


def failure_content(exc: SectionGenerationError) -> str:
  """Human-readable text stored in place of section content when generation fails."""
  if isinstance(exc.__cause__, EmptyCompletionError):
    return EMPTY_CONTENT_MESSAGE
  return f"Error generating content: {exc}. Please try regenerating this section."


class SectionWriter:
  """Produce prose for one outline section."""

  def __init__(self, chat_client: ChatClient) -> None:
    self._chat_client = chat_client

  async def write(self, *, textbook_title: str, chapter_title: str, section_title: str) -> str:
    """Return section content or raise `SectionGenerationError` once the caller's retries are spent."""
    messages = render_section_messages(textbook_title, chapter_title, section_title)
    try:
      return await self._chat_client.complete(messages)
    except ModelCallError as exc:
      logger.error("Error generating section content for %r: %s", section_title, exc)
      raise SectionGenerationError(str(exc)) from exc
