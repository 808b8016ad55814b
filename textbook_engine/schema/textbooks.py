from __future__ import annotations

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from textbook_engine.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")
_JSON = JSON().with_variant(JSONB(), "postgresql")


class Textbook(Base):
  __tablename__ = "textbooks"
  __table_args__ = (Index("ix_textbooks_created_at", "created_at"), CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="ck_textbooks_completion_percentage"))

  id: Mapped[str] = mapped_column(String, primary_key=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  prompt: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
  total_sections: Mapped[int] = mapped_column(Integer, nullable=False)
  outline: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class Chapter(Base):
  __tablename__ = "chapters"
  __table_args__ = (UniqueConstraint("textbook_id", "position", name="ux_chapters_textbook_position"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  textbook_id: Mapped[str] = mapped_column(ForeignKey("textbooks.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class Section(Base):
  __tablename__ = "sections"
  __table_args__ = (UniqueConstraint("chapter_id", "position", name="ux_sections_chapter_position"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  chapter_id: Mapped[str] = mapped_column(ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
