"""SQLAlchemy database models for the ThoughtFlow SQLite adapter."""
import datetime

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, String, Table,
                        Text, UniqueConstraint, create_engine, event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from thoughtflow.config import config

Base = declarative_base()

# Association table for tags and thoughts
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", String(36), ForeignKey("notes.id"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id"), primary_key=True),
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBNote(Base):
    """Database model for a thought."""
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True, index=True)
    owner_id = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    is_draft = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=_utcnow, nullable=False, index=True)

    tags = relationship("DBTag", secondary=note_tags, back_populates="notes")

    def __repr__(self) -> str:
        return f"<Note(id='{self.id}', owner='{self.owner_id}', draft={self.is_draft})>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(String(36), primary_key=True)
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(7), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    notes = relationship("DBNote", secondary=note_tags, back_populates="tags")

    # Tag names are unique per owner; concurrent creators race on this
    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="unique_owner_tag_name"),
    )

    def __repr__(self) -> str:
        return f"<Tag(id='{self.id}', name='{self.name}')>"


def init_db(db_url=None):
    """Create the engine and schema.

    File databases get WAL journaling and a small QueuePool; the in-memory
    database shares one connection across threads through StaticPool.
    ``check_same_thread`` is off because repositories run their queries in
    worker threads via ``asyncio.to_thread``.
    """
    url = db_url or config.get_db_url()
    in_memory = url in ("sqlite://", "sqlite:///:memory:")

    if in_memory:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=5,
            pool_timeout=30,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
