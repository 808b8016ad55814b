"""Schema package exports."""

from .textbooks import Chapter, Section, Textbook

__all__ = ["Chapter", "Section", "Textbook"]
