"""Create textbooks, chapters and sections tables.

Revision ID: 7c1e2a9d4b60
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "7c1e2a9d4b60"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "textbooks",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("prompt", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("total_sections", sa.Integer(), nullable=False),
    sa.Column("outline", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="ck_textbooks_completion_percentage"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_textbooks_status"), "textbooks", ["status"], unique=False)
  op.create_index("ix_textbooks_created_at", "textbooks", ["created_at"], unique=False)

  op.create_table(
    "chapters",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("textbook_id", sa.String(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.ForeignKeyConstraint(["textbook_id"], ["textbooks.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("textbook_id", "position", name="ux_chapters_textbook_position"),
  )
  op.create_index(op.f("ix_chapters_textbook_id"), "chapters", ["textbook_id"], unique=False)

  op.create_table(
    "sections",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("chapter_id", sa.String(), nullable=False),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.ForeignKeyConstraint(["chapter_id"], ["chapters.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("chapter_id", "position", name="ux_sections_chapter_position"),
  )
  op.create_index(op.f("ix_sections_chapter_id"), "sections", ["chapter_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_sections_chapter_id"), table_name="sections")
  op.drop_table("sections")
  op.drop_index(op.f("ix_chapters_textbook_id"), table_name="chapters")
  op.drop_table("chapters")
  op.drop_index("ix_textbooks_created_at", table_name="textbooks")
  op.drop_index(op.f("ix_textbooks_status"), table_name="textbooks")
  op.drop_table("textbooks")
