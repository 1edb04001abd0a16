"""Common test fixtures for ThoughtFlow."""

import pytest

from tests.fakes import AUTOSAVE_DELAY, OWNER, FakeNoteStore, FakeTagStore
from thoughtflow.config import config
from thoughtflow.models.db_models import init_db
from thoughtflow.observability import metrics
from thoughtflow.services.collection import NoteCollectionCache
from thoughtflow.services.draft_session import DraftSession
from thoughtflow.services.status import CollectingSink, StaticIdentity
from thoughtflow.storage.note_repository import NoteRepository
from thoughtflow.storage.tag_repository import TagRepository


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", tmp_path / "test_thoughtflow.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "owner_id", OWNER)
    monkeypatch.setattr(config, "autosave_delay", AUTOSAVE_DELAY)
    monkeypatch.setattr(config, "search_debounce", 0.0)
    yield config


@pytest.fixture
def note_store():
    return FakeNoteStore()


@pytest.fixture
def tag_store():
    return FakeTagStore()


@pytest.fixture
def identity():
    return StaticIdentity(OWNER)


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
async def session(note_store, tag_store, identity, sink):
    """A DraftSession over the fake stores."""
    draft_session = DraftSession(
        note_store, tag_store, identity, sink=sink, autosave_delay=AUTOSAVE_DELAY
    )
    yield draft_session
    draft_session.dispose()


@pytest.fixture
async def collection(note_store, tag_store, identity, sink):
    """A NoteCollectionCache over the fake stores."""
    cache = NoteCollectionCache(note_store, tag_store, identity, sink=sink, search_debounce=0.05)
    yield cache
    cache.dispose()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    db_engine = init_db(f"sqlite:///{tmp_path / 'thoughtflow.db'}")
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def note_repository(engine):
    return NoteRepository(engine=engine)


@pytest.fixture
def tag_repository(engine):
    return TagRepository(engine=engine)
