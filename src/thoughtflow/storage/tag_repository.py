"""Repository for tag storage and note-tag associations."""
import asyncio
import logging
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from thoughtflow.config import config
from thoughtflow.exceptions import ConflictError, ErrorCode, TransportError
from thoughtflow.models.db_models import DBTag, get_session_factory, init_db, note_tags
from thoughtflow.models.schema import Tag
from thoughtflow.observability import traced
from thoughtflow.storage.base import TagStore

logger = logging.getLogger(__name__)


class TagRepository(TagStore):
    """Repository for managing tags and their links to thoughts.

    Name uniqueness is enforced by the ``unique_owner_tag_name`` constraint,
    so two racing creators of the same name get one tag and one
    ConflictError.
    """

    def __init__(self, engine: Optional[Any] = None):
        """Initialize the tag repository.

        Args:
            engine: Pre-configured SQLAlchemy engine shared with NoteRepository.
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)

    @staticmethod
    def _to_model(db_tag: DBTag) -> Tag:
        return Tag(
            id=db_tag.id,
            name=db_tag.name,
            color=db_tag.color or config.default_tag_color,
            owner_id=db_tag.owner_id,
        )

    def _list_tags_sync(self, owner_id: str) -> List[Tag]:
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag).where(DBTag.owner_id == owner_id).order_by(DBTag.name)
            ).all()
            return [self._to_model(t) for t in db_tags]

    def _create_tag_sync(self, owner_id: str, name: str, color: str) -> Tag:
        with self.session_factory() as session:
            db_tag = DBTag(id=uuid.uuid4().hex, owner_id=owner_id, name=name, color=color)
            session.add(db_tag)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(name, owner_id=owner_id) from e
            return self._to_model(db_tag)

    def _list_associations_sync(self, note_ids: Sequence[str]) -> List[Tuple[str, Tag]]:
        if not note_ids:
            return []
        with self.session_factory() as session:
            rows = session.execute(
                select(note_tags.c.note_id, DBTag)
                .join(DBTag, note_tags.c.tag_id == DBTag.id)
                .where(note_tags.c.note_id.in_(list(note_ids)))
                .order_by(DBTag.name)
            ).all()
            return [(note_id, self._to_model(db_tag)) for note_id, db_tag in rows]

    def _delete_associations_sync(self, note_id: str) -> None:
        with self.session_factory() as session:
            session.execute(delete(note_tags).where(note_tags.c.note_id == note_id))
            session.commit()

    def _insert_associations_sync(self, note_id: str, tag_ids: Sequence[str]) -> None:
        rows = [{"note_id": note_id, "tag_id": tag_id} for tag_id in dict.fromkeys(tag_ids)]
        if not rows:
            return
        with self.session_factory() as session:
            session.execute(insert(note_tags), rows)
            session.commit()

    async def _run(self, operation: str, code: ErrorCode, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except ConflictError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database failure during {operation}: {e}")
            raise TransportError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

    @traced("db_list_tags")
    async def list_tags(self, owner_id: str) -> List[Tag]:
        return await self._run(
            "list_tags", ErrorCode.STORAGE_READ_FAILED, self._list_tags_sync, owner_id
        )

    @traced("db_create_tag")
    async def create_tag(self, owner_id: str, name: str, color: str) -> Tag:
        return await self._run(
            "create_tag", ErrorCode.STORAGE_WRITE_FAILED,
            self._create_tag_sync, owner_id, name, color,
        )

    @traced("db_list_associations")
    async def list_associations(self, note_ids: Sequence[str]) -> List[Tuple[str, Tag]]:
        return await self._run(
            "list_associations", ErrorCode.STORAGE_READ_FAILED,
            self._list_associations_sync, list(note_ids),
        )

    @traced("db_delete_associations")
    async def delete_associations(self, note_id: str) -> None:
        await self._run(
            "delete_associations", ErrorCode.STORAGE_WRITE_FAILED,
            self._delete_associations_sync, note_id,
        )

    @traced("db_insert_associations")
    async def insert_associations(self, note_id: str, tag_ids: Sequence[str]) -> None:
        await self._run(
            "insert_associations", ErrorCode.STORAGE_WRITE_FAILED,
            self._insert_associations_sync, note_id, list(tag_ids),
        )
