from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from textbook_engine.jobs.models import TextbookStatus


class TextbookCreateRequest(BaseModel):
  """Request payload for generating a textbook."""

  prompt: StrictStr = Field(description="What the textbook should cover.", examples=["An introduction to graph theory for first-year students"])
  chapter_count: StrictInt | None = Field(default=None, description="Requested number of chapters; clamped to the configured range.", examples=[3])
  model_config = ConfigDict(extra="forbid")


class TextbookCreateResponse(BaseModel):
  """Returned once the outline is accepted and generation has started."""

  textbook_id: str
  title: str
  total_sections: int


class TextbookSummary(BaseModel):
  textbook_id: str
  title: str
  description: str | None = None
  status: TextbookStatus
  completion_percentage: int
  total_sections: int
  created_at: str
  updated_at: str


class TextbookListResponse(BaseModel):
  """Paginated generation history, newest first."""

  items: list[TextbookSummary]
  total: int
  limit: int
  offset: int


class SectionView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  section_id: str | None = None
  title: str
  position: int
  content: str | None = None
  is_generating: bool


class ChapterView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  chapter_id: str
  title: str
  position: int
  sections: list[SectionView]


class TextbookDocumentResponse(BaseModel):
  """Assembled textbook with whatever chapters and sections exist so far."""

  model_config = ConfigDict(from_attributes=True)

  textbook_id: str
  title: str
  description: str | None = None
  status: TextbookStatus
  completion_percentage: int
  total_sections: int
  created_at: str
  chapters: list[ChapterView]


class CurrentSectionView(BaseModel):
  model_config = ConfigDict(from_attributes=True)

  chapter_position: int
  chapter_title: str
  section_position: int
  section_title: str


class ProgressResponse(BaseModel):
  """Advisory progress view derived from persisted rows."""

  model_config = ConfigDict(from_attributes=True)

  textbook_id: str
  status: TextbookStatus
  completion_percentage: int = Field(ge=0, le=100)
  completed_sections: int
  total_sections: int
  currently_generating: CurrentSectionView | None = None
  estimated_seconds_remaining: int | None = None
