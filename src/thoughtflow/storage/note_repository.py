"""SQLite-backed thought storage."""

import asyncio
import logging
import uuid
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from thoughtflow.exceptions import ErrorCode, NoteNotFoundError, TransportError, ValidationError
from thoughtflow.models.db_models import DBNote, get_session_factory, init_db
from thoughtflow.models.schema import Note, ensure_timezone_aware, utc_now
from thoughtflow.observability import traced
from thoughtflow.storage.base import NoteStore

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {"content", "is_draft"}


class NoteRepository(NoteStore):
    """NoteStore over SQLAlchemy.

    Blocking session work runs in a worker thread so callers on the event
    loop only suspend. Tags are not loaded here; the collection cache
    resolves them through the TagStore in one batch.
    """

    def __init__(self, engine: Optional[Any] = None):
        """Initialize the repository.

        Args:
            engine: Pre-configured SQLAlchemy engine, shared with the
                TagRepository. Created from config when None.
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            content=db_note.content or "",
            owner_id=db_note.owner_id,
            is_draft=bool(db_note.is_draft),
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )

    def _create_sync(self, content: str, owner_id: str, is_draft: bool) -> Note:
        now = utc_now()
        with self.session_factory() as session:
            db_note = DBNote(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                content=content,
                is_draft=is_draft,
                created_at=now,
                updated_at=now,
            )
            session.add(db_note)
            session.commit()
            return self._db_note_to_model(db_note)

    def _update_sync(self, note_id: str, fields: dict) -> None:
        with self.session_factory() as session:
            db_note = session.get(DBNote, note_id)
            if db_note is None:
                raise NoteNotFoundError(note_id)
            for key, value in fields.items():
                setattr(db_note, key, value)
            db_note.updated_at = utc_now()
            session.commit()

    def _get_draft_sync(self, owner_id: str) -> Optional[Note]:
        with self.session_factory() as session:
            db_note = session.scalar(
                select(DBNote)
                .where(DBNote.owner_id == owner_id, DBNote.is_draft.is_(True))
                .order_by(DBNote.updated_at.desc())
                .limit(1)
            )
            return self._db_note_to_model(db_note) if db_note else None

    def _list_sync(self, owner_id: str, ascending: bool, include_drafts: bool) -> List[Note]:
        with self.session_factory() as session:
            query = select(DBNote).where(DBNote.owner_id == owner_id)
            if not include_drafts:
                query = query.where(DBNote.is_draft.is_(False))
            order = DBNote.created_at.asc() if ascending else DBNote.created_at.desc()
            db_notes = session.scalars(query.order_by(order)).all()
            return [self._db_note_to_model(n) for n in db_notes]

    async def _run(self, operation: str, code: ErrorCode, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            logger.error(f"Database failure during {operation}: {e}")
            raise TransportError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

    @traced("db_create_note")
    async def create_note(self, content: str, owner_id: str, is_draft: bool) -> Note:
        return await self._run(
            "create_note", ErrorCode.STORAGE_WRITE_FAILED,
            self._create_sync, content, owner_id, is_draft,
        )

    @traced("db_update_note")
    async def update_note(self, note_id: str, **fields) -> None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}", field="fields"
            )
        await self._run(
            "update_note", ErrorCode.STORAGE_WRITE_FAILED,
            self._update_sync, note_id, fields,
        )

    @traced("db_get_draft")
    async def get_draft_for(self, owner_id: str) -> Optional[Note]:
        return await self._run(
            "get_draft", ErrorCode.STORAGE_READ_FAILED, self._get_draft_sync, owner_id
        )

    @traced("db_list_notes")
    async def list_notes(
        self, owner_id: str, ascending: bool = False, include_drafts: bool = False
    ) -> List[Note]:
        return await self._run(
            "list_notes", ErrorCode.STORAGE_READ_FAILED,
            self._list_sync, owner_id, ascending, include_drafts,
        )
