"""Persistence layer for textbooks, chapters and sections."""

from .textbooks_repo import ChapterPersistError, PersistenceError, SectionPersistError, TextbooksRepository

__all__ = ["ChapterPersistError", "PersistenceError", "SectionPersistError", "TextbooksRepository"]
