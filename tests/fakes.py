"""In-memory fake stores for testing.

These implement the NoteStore and TagStore contracts without a database
so the draft session and collection cache can be driven step by step.

Design principles:
- Deterministic: ids are sequential ("note-1", "tag-1"), timestamps are
  whatever the test sets
- Inspectable: every mutating call is appended to ``calls``
- Failure injection: ``fail_next[method] = error`` raises once
- Gating: ``gate[method] = asyncio.Event()`` suspends that call until set
"""
import asyncio
import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from thoughtflow.exceptions import ConflictError, ErrorCode, NoteNotFoundError, TransportError
from thoughtflow.models.schema import Note, Tag, utc_now
from thoughtflow.storage.base import NoteStore, TagStore

OWNER = "user-1"

# Short enough to keep the suite fast, long enough to order events reliably
AUTOSAVE_DELAY = 0.05


def transport_error(operation: str = "fake") -> TransportError:
    return TransportError(
        f"Simulated failure in {operation}",
        operation=operation,
        code=ErrorCode.STORAGE_CONNECTION_FAILED,
    )


class _Injectable:
    """Shared failure-injection and gating behaviour."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_next: Dict[str, Exception] = {}
        self.gate: Dict[str, asyncio.Event] = {}
        self.entered: Dict[str, int] = {}

    async def _enter(self, method: str) -> None:
        self.entered[method] = self.entered.get(method, 0) + 1
        gate = self.gate.get(method)
        if gate is not None:
            await gate.wait()
        else:
            # Yield so concurrent callers interleave like real I/O
            await asyncio.sleep(0)
        error = self.fail_next.pop(method, None)
        if error is not None:
            raise error

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]


class FakeNoteStore(_Injectable, NoteStore):
    """Dict-backed NoteStore."""

    def __init__(self):
        super().__init__()
        self.notes: Dict[str, Note] = {}
        self._counter = 0
        self.clock: Optional[datetime.datetime] = None

    def _now(self) -> datetime.datetime:
        return self.clock or utc_now()

    def add(self, content: str, owner_id: str, is_draft: bool = False,
            created_at: Optional[datetime.datetime] = None) -> Note:
        """Seed a note directly, bypassing call recording."""
        self._counter += 1
        when = created_at or self._now()
        note = Note(
            id=f"note-{self._counter}",
            content=content,
            owner_id=owner_id,
            is_draft=is_draft,
            created_at=when,
            updated_at=when,
        )
        self.notes[note.id] = note
        return note

    async def create_note(self, content: str, owner_id: str, is_draft: bool) -> Note:
        await self._enter("create_note")
        note = self.add(content, owner_id, is_draft=is_draft)
        self.calls.append(("create_note", note.id, content, is_draft))
        return note

    async def update_note(self, note_id: str, **fields) -> None:
        await self._enter("update_note")
        if note_id not in self.notes:
            raise NoteNotFoundError(note_id)
        self.notes[note_id] = self.notes[note_id].model_copy(
            update={**fields, "updated_at": self._now()}
        )
        self.calls.append(("update_note", note_id, fields.get("content"), fields.get("is_draft")))

    async def get_draft_for(self, owner_id: str) -> Optional[Note]:
        await self._enter("get_draft_for")
        drafts = [n for n in self.notes.values() if n.owner_id == owner_id and n.is_draft]
        if not drafts:
            return None
        return max(drafts, key=lambda n: n.updated_at)

    async def list_notes(
        self, owner_id: str, ascending: bool = False, include_drafts: bool = False
    ) -> List[Note]:
        await self._enter("list_notes")
        self.calls.append(("list_notes", owner_id, ascending))
        notes = [
            n for n in self.notes.values()
            if n.owner_id == owner_id and (include_drafts or not n.is_draft)
        ]
        return sorted(notes, key=lambda n: n.created_at, reverse=not ascending)


class FakeTagStore(_Injectable, TagStore):
    """Dict-backed TagStore with a link table of (note_id, tag_id) pairs."""

    def __init__(self):
        super().__init__()
        self.tags: Dict[str, Tag] = {}
        self.links: List[Tuple[str, str]] = []
        self._counter = 0

    def add(self, name: str, owner_id: str, color: str = "#112233") -> Tag:
        """Seed a tag directly, bypassing call recording."""
        self._counter += 1
        tag = Tag(id=f"tag-{self._counter}", name=name, color=color, owner_id=owner_id)
        self.tags[tag.id] = tag
        return tag

    def link(self, note_id: str, *tag_ids: str) -> None:
        for tag_id in tag_ids:
            self.links.append((note_id, tag_id))

    def tag_ids_for(self, note_id: str) -> List[str]:
        return [t for n, t in self.links if n == note_id]

    async def list_tags(self, owner_id: str) -> List[Tag]:
        await self._enter("list_tags")
        tags = [t for t in self.tags.values() if t.owner_id == owner_id]
        return sorted(tags, key=lambda t: t.name)

    async def create_tag(self, owner_id: str, name: str, color: str) -> Tag:
        await self._enter("create_tag")
        if any(t.owner_id == owner_id and t.name == name for t in self.tags.values()):
            raise ConflictError(name, owner_id=owner_id)
        tag = self.add(name, owner_id, color=color)
        self.calls.append(("create_tag", name))
        return tag

    async def list_associations(self, note_ids: Sequence[str]) -> List[Tuple[str, Tag]]:
        await self._enter("list_associations")
        wanted = set(note_ids)
        return [(n, self.tags[t]) for n, t in self.links if n in wanted]

    async def delete_associations(self, note_id: str) -> None:
        await self._enter("delete_associations")
        self.links = [(n, t) for n, t in self.links if n != note_id]
        self.calls.append(("delete", note_id))

    async def insert_associations(self, note_id: str, tag_ids: Sequence[str]) -> None:
        await self._enter("insert_associations")
        unknown = [t for t in tag_ids if t not in self.tags]
        if unknown:
            raise transport_error("insert_associations")
        for tag_id in tag_ids:
            if (note_id, tag_id) not in self.links:
                self.links.append((note_id, tag_id))
        self.calls.append(("insert", note_id, list(tag_ids)))
