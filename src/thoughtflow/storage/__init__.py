"""Storage layer for ThoughtFlow."""

from thoughtflow.storage.base import NoteStore, TagStore
from thoughtflow.storage.note_repository import NoteRepository
from thoughtflow.storage.tag_repository import TagRepository

__all__ = [
    "NoteStore",
    "TagStore",
    "NoteRepository",
    "TagRepository",
]
