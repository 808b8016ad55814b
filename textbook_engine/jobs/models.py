"""Domain models for textbook generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

TextbookStatus = Literal["generating", "completed", "error"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "error"})


@dataclass
class TextbookRecord:
  """One generation job; the row a client watches while chapters and sections appear."""

  textbook_id: str
  title: str
  prompt: str
  status: TextbookStatus
  completion_percentage: int
  total_sections: int
  created_at: str
  updated_at: str
  description: str | None = None
  outline: dict[str, Any] | None = None


@dataclass
class ChapterRecord:
  """Persisted chapter; written once, never updated."""

  chapter_id: str
  textbook_id: str
  title: str
  position: int
  created_at: str


@dataclass
class SectionRecord:
  """Persisted section; its existence marks the section as done."""

  section_id: str
  chapter_id: str
  title: str
  content: str
  position: int
  created_at: str


def record_to_row(record: TextbookRecord | ChapterRecord | SectionRecord) -> dict[str, Any]:
  """Flatten a record into the column naming used by change events and API payloads."""
  if isinstance(record, TextbookRecord):
    return {
      "id": record.textbook_id,
      "title": record.title,
      "description": record.description,
      "prompt": record.prompt,
      "status": record.status,
      "completion_percentage": record.completion_percentage,
      "total_sections": record.total_sections,
      "outline": record.outline,
      "created_at": record.created_at,
      "updated_at": record.updated_at,
    }
  if isinstance(record, ChapterRecord):
    return {"id": record.chapter_id, "textbook_id": record.textbook_id, "title": record.title, "position": record.position, "created_at": record.created_at}
  return {"id": record.section_id, "chapter_id": record.chapter_id, "title": record.title, "content": record.content, "position": record.position, "created_at": record.created_at}


def textbook_from_row(row: dict[str, Any]) -> TextbookRecord:
  return TextbookRecord(
    textbook_id=row["id"],
    title=row["title"],
    description=row.get("description"),
    prompt=row.get("prompt", ""),
    status=row["status"],
    completion_percentage=int(row.get("completion_percentage") or 0),
    total_sections=int(row.get("total_sections") or 0),
    outline=row.get("outline"),
    created_at=row["created_at"],
    updated_at=row.get("updated_at") or row["created_at"],
  )


def chapter_from_row(row: dict[str, Any]) -> ChapterRecord:
  return ChapterRecord(chapter_id=row["id"], textbook_id=row["textbook_id"], title=row["title"], position=int(row["position"]), created_at=row.get("created_at", ""))


def section_from_row(row: dict[str, Any]) -> SectionRecord:
  return SectionRecord(section_id=row["id"], chapter_id=row["chapter_id"], title=row["title"], content=row.get("content") or "", position=int(row["position"]), created_at=row.get("created_at", ""))
