"""Persistence contracts the engine talks to.

Every method is a request/response call that may suspend; implementations
raise ``TransportError`` (or ``ConflictError`` for duplicate tag names) and
never swallow failures.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from thoughtflow.models.schema import Note, Tag


class NoteStore(ABC):
    """Thought persistence."""

    @abstractmethod
    async def create_note(self, content: str, owner_id: str, is_draft: bool) -> Note:
        """Insert a thought and return it with its server-assigned id and timestamps."""

    @abstractmethod
    async def update_note(self, note_id: str, **fields) -> None:
        """Update ``content`` and/or ``is_draft`` of an existing thought."""

    @abstractmethod
    async def get_draft_for(self, owner_id: str) -> Optional[Note]:
        """Return the owner's most recently updated draft, or None."""

    @abstractmethod
    async def list_notes(
        self, owner_id: str, ascending: bool = False, include_drafts: bool = False
    ) -> List[Note]:
        """List the owner's thoughts ordered by creation time (tags unresolved)."""


class TagStore(ABC):
    """Tag and note-tag association persistence."""

    @abstractmethod
    async def list_tags(self, owner_id: str) -> List[Tag]:
        """List the owner's tags ordered by name."""

    @abstractmethod
    async def create_tag(self, owner_id: str, name: str, color: str) -> Tag:
        """Create a tag; raises ConflictError if the name exists for the owner."""

    @abstractmethod
    async def list_associations(self, note_ids: Sequence[str]) -> List[Tuple[str, Tag]]:
        """Return (note_id, tag) pairs for the given thoughts."""

    @abstractmethod
    async def delete_associations(self, note_id: str) -> None:
        """Remove every tag link of a thought."""

    @abstractmethod
    async def insert_associations(self, note_id: str, tag_ids: Sequence[str]) -> None:
        """Link a thought to each of the given tags."""
