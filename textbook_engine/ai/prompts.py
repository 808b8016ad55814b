"""Prompt helpers for outline and section generation."""

from __future__ import annotations

from textbook_engine.ai.providers.chat_completions import ChatMessage

_OUTLINE_SHAPE = "{ title: string, description: string, chapters: Array<{ title: string, sections: Array<{ title: string }> }> }"


def render_outline_messages(prompt: str, chapter_count: int, max_sections: int) -> list[ChatMessage]:
  """Build the outline request constraining the reply to a strict JSON shape."""
  system = (
    f"You are an expert textbook creator. Create a detailed outline for a textbook with exactly {chapter_count} chapters "
    f"based on the user's prompt. Each chapter should have NO MORE THAN {max_sections} sections. "
    f"Respond with JSON only, using the following structure: {_OUTLINE_SHAPE}"
  )
  return [{"role": "system", "content": system}, {"role": "user", "content": prompt}]


def render_section_messages(textbook_title: str, chapter_title: str, section_title: str) -> list[ChatMessage]:
  """Build the section request; the system turn carries the textbook and chapter context."""
  system = (
    f"You are writing content for a textbook section. The textbook is about: {textbook_title}. "
    f"The current chapter is: {chapter_title}. Write comprehensive, well-structured content for the section."
  )
  return [{"role": "system", "content": system}, {"role": "user", "content": f"Write the content for the section: {section_title}"}]
