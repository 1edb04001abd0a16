"""Tests for the SQLite repositories."""
import asyncio

import pytest

from tests.fakes import OWNER
from thoughtflow.exceptions import ConflictError, NoteNotFoundError, TransportError, ValidationError
from thoughtflow.models.db_models import init_db
from thoughtflow.storage.note_repository import NoteRepository
from thoughtflow.storage.tag_repository import TagRepository


class TestNoteRepository:
    """Tests for NoteRepository."""

    @pytest.mark.anyio
    async def test_create_assigns_id_and_timestamps(self, note_repository):
        note = await note_repository.create_note("hello", OWNER, is_draft=True)

        assert note.id
        assert note.content == "hello"
        assert note.is_draft is True
        assert note.created_at.tzinfo is not None
        assert note.created_at == note.updated_at

    @pytest.mark.anyio
    async def test_update_changes_content_and_draft_flag(self, note_repository):
        note = await note_repository.create_note("v1", OWNER, is_draft=True)

        await note_repository.update_note(note.id, content="v2", is_draft=False)

        [stored] = await note_repository.list_notes(OWNER)
        assert stored.content == "v2"
        assert stored.is_draft is False
        assert stored.updated_at >= note.updated_at

    @pytest.mark.anyio
    async def test_update_missing_note(self, note_repository):
        with pytest.raises(NoteNotFoundError):
            await note_repository.update_note("missing", content="x")

    @pytest.mark.anyio
    async def test_update_rejects_unknown_fields(self, note_repository):
        note = await note_repository.create_note("v1", OWNER, is_draft=True)
        with pytest.raises(ValidationError):
            await note_repository.update_note(note.id, owner_id="thief")

    @pytest.mark.anyio
    async def test_get_draft_returns_most_recent(self, note_repository):
        assert await note_repository.get_draft_for(OWNER) is None
        older = await note_repository.create_note("older", OWNER, is_draft=True)
        await asyncio.sleep(0.01)
        await note_repository.create_note("newer", OWNER, is_draft=True)
        await asyncio.sleep(0.01)
        await note_repository.update_note(older.id, content="older, touched")

        draft = await note_repository.get_draft_for(OWNER)

        assert draft.id == older.id
        assert await note_repository.get_draft_for("someone-else") is None

    @pytest.mark.anyio
    async def test_list_notes_order_and_scope(self, note_repository):
        for text in ("first", "second", "third"):
            await note_repository.create_note(text, OWNER, is_draft=False)
            await asyncio.sleep(0.01)
        await note_repository.create_note("a draft", OWNER, is_draft=True)
        await note_repository.create_note("other", "someone-else", is_draft=False)

        newest = await note_repository.list_notes(OWNER)
        oldest = await note_repository.list_notes(OWNER, ascending=True)
        with_drafts = await note_repository.list_notes(OWNER, include_drafts=True)

        assert [n.content for n in newest] == ["third", "second", "first"]
        assert [n.content for n in oldest] == ["first", "second", "third"]
        assert len(with_drafts) == 4

    @pytest.mark.anyio
    async def test_database_failure_becomes_transport_error(self, tmp_path):
        engine = init_db(f"sqlite:///{tmp_path / 'broken.db'}")
        repository = NoteRepository(engine=engine)
        with engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE note_tags")
            conn.exec_driver_sql("DROP TABLE notes")

        with pytest.raises(TransportError):
            await repository.list_notes(OWNER)
        engine.dispose()


class TestTagRepository:
    """Tests for TagRepository."""

    @pytest.mark.anyio
    async def test_create_and_list_sorted(self, tag_repository):
        await tag_repository.create_tag(OWNER, "zeta", "#000000")
        await tag_repository.create_tag(OWNER, "alpha", "#ffffff")
        await tag_repository.create_tag("someone-else", "beta", "#123456")

        tags = await tag_repository.list_tags(OWNER)

        assert [t.name for t in tags] == ["alpha", "zeta"]
        assert tags[0].color == "#ffffff"
        assert tags[0].owner_id == OWNER

    @pytest.mark.anyio
    async def test_duplicate_name_conflicts(self, tag_repository):
        await tag_repository.create_tag(OWNER, "ideas", "#000000")

        with pytest.raises(ConflictError):
            await tag_repository.create_tag(OWNER, "ideas", "#111111")

        # Case-sensitive, and unique per owner only
        await tag_repository.create_tag(OWNER, "Ideas", "#111111")
        await tag_repository.create_tag("someone-else", "ideas", "#111111")

    @pytest.mark.anyio
    async def test_concurrent_creates_yield_one_tag(self, tag_repository):
        results = await asyncio.gather(
            *(tag_repository.create_tag(OWNER, "race", "#000000") for _ in range(4)),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        assert len(created) == 1
        assert all(isinstance(r, ConflictError) for r in results if isinstance(r, Exception))
        assert len(await tag_repository.list_tags(OWNER)) == 1

    @pytest.mark.anyio
    async def test_association_round_trip(self, note_repository, tag_repository):
        note = await note_repository.create_note("tagged", OWNER, is_draft=True)
        other = await note_repository.create_note("other", OWNER, is_draft=True)
        x = await tag_repository.create_tag(OWNER, "x", "#000000")
        y = await tag_repository.create_tag(OWNER, "y", "#000000")

        await tag_repository.insert_associations(note.id, [y.id, x.id, x.id])
        await tag_repository.insert_associations(other.id, [y.id])

        pairs = await tag_repository.list_associations([note.id])
        assert [(n, t.name) for n, t in pairs] == [(note.id, "x"), (note.id, "y")]

        await tag_repository.delete_associations(note.id)
        assert await tag_repository.list_associations([note.id]) == []
        assert [t.name for _, t in await tag_repository.list_associations([other.id])] == ["y"]

    @pytest.mark.anyio
    async def test_list_associations_empty_input(self, tag_repository):
        assert await tag_repository.list_associations([]) == []

    @pytest.mark.anyio
    async def test_unknown_tag_id_is_transport_error(self, note_repository, tag_repository):
        note = await note_repository.create_note("tagged", OWNER, is_draft=True)
        with pytest.raises(TransportError):
            await tag_repository.insert_associations(note.id, ["no-such-tag"])


def test_in_memory_engine_shares_schema():
    engine = init_db("sqlite://")
    notes = NoteRepository(engine=engine)
    tags = TagRepository(engine=engine)
    assert notes.engine is tags.engine
    engine.dispose()
