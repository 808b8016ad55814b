"""Shared data contracts for outline generation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class OutlineSection(BaseModel):
  """One planned section; only the title is known before generation."""

  model_config = ConfigDict(frozen=True)

  title: StrictStr = Field(min_length=1)


class OutlineChapter(BaseModel):
  """Planned chapter with its ordered sections."""

  model_config = ConfigDict(frozen=True)

  title: StrictStr = Field(min_length=1)
  sections: tuple[OutlineSection, ...] = ()

  @field_validator("sections", mode="before")
  @classmethod
  def _coerce_sections(cls, value: Any) -> Any:
    """Treat a missing or non-array sections field as empty; accept bare-string titles and drop untitled entries."""
    if not isinstance(value, list | tuple):
      return ()
    sections = []
    for item in value:
      if isinstance(item, OutlineSection):
        sections.append(item)
        continue
      title = item if isinstance(item, str) else item.get("title") if isinstance(item, dict) else None
      if isinstance(title, str) and title.strip():
        sections.append({"title": title})
    return tuple(sections)


class Outline(BaseModel):
  """Accepted textbook outline."""

  model_config = ConfigDict(frozen=True)

  title: StrictStr = Field(min_length=1)
  description: str | None = None
  chapters: tuple[OutlineChapter, ...]

  @field_validator("description", mode="before")
  @classmethod
  def _coerce_description(cls, value: Any) -> Any:
    if value is None or isinstance(value, str):
      return value
    return str(value)

  @property
  def total_sections(self) -> int:
    return sum(len(chapter.sections) for chapter in self.chapters)
