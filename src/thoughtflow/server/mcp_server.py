"""MCP server exposing the ThoughtFlow engine as tools."""

import atexit
import datetime
import json
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from thoughtflow.config import config
from thoughtflow.exceptions import ErrorCode, ThoughtflowError, ValidationError
from thoughtflow.models.schema import Note, SaveResult, SortOrder, Tag
from thoughtflow.observability import metrics, timed_operation
from thoughtflow.services.collection import NoteCollectionCache
from thoughtflow.services.draft_session import DraftSession
from thoughtflow.services.status import CollectingSink, StaticIdentity
from thoughtflow.services.tag_service import TagService
from thoughtflow.storage.note_repository import NoteRepository
from thoughtflow.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 100_000
PREVIEW_LENGTH = 200


def _split_names(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return list(dict.fromkeys(t.strip() for t in value.split(",") if t.strip()))


def _parse_date(value: Optional[str], field: str) -> Optional[datetime.date]:
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(
            f"{field} must be a date like 2024-05-31", field=field, value=value,
            code=ErrorCode.INVALID_DATE,
        ) from None


def _format_tags(tags: List[Tag]) -> str:
    return ", ".join(tag.name for tag in tags)


class ThoughtflowMcpServer:
    """MCP server hosting one draft session and one collection for an owner."""

    def __init__(self, engine=None, owner_id: Optional[str] = None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by both
                repositories. Created from config when None.
            owner_id: Identity to act as. Defaults to config.owner_id; with
                neither, saves fail with AuthError.
        """
        self.mcp = FastMCP(config.server_name)
        self.note_repository = NoteRepository(engine=engine)
        self.tag_repository = TagRepository(engine=self.note_repository.engine)
        self.identity = StaticIdentity(owner_id or config.owner_id)
        self.sink = CollectingSink()

        self.session = DraftSession(
            self.note_repository, self.tag_repository, self.identity, sink=self.sink
        )
        self.collection = NoteCollectionCache(
            self.note_repository, self.tag_repository, self.identity, sink=self.sink
        )
        self.tag_service = TagService(self.tag_repository, self.identity, sink=self.sink)
        self.session.on_published(self.collection.handle_published)
        self._hydrated = False

        atexit.register(self._shutdown)
        self._register_tools()
        logger.info(
            f"ThoughtFlow MCP server {config.server_version} initialized "
            f"(owner={self.identity.current_owner()})"
        )

    def _shutdown(self) -> None:
        """Drop pending timers on exit."""
        self.session.dispose()
        self.collection.dispose()

    async def _ensure_hydrated(self) -> None:
        if not self._hydrated:
            self._hydrated = True
            await self.session.load()

    def format_error_response(self, error: Exception) -> str:
        """Format an error for a tool result without leaking internals."""
        error_id = uuid.uuid4().hex[:8]
        if isinstance(error, ThoughtflowError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        logger.error(f"Unexpected error [{error_id}]: {error}", exc_info=True)
        return f"Error: An unexpected error occurred (ref: {error_id})"

    def _with_events(self, text: str) -> str:
        """Append status events emitted during the tool call."""
        events = self.sink.drain()
        if not events:
            return text
        lines = [f"- [{e.level.value}] {e}" for e in events]
        return text + "\n\nStatus:\n" + "\n".join(lines)

    async def _resolve_tags(self, names: List[str], create: bool) -> List[Tag]:
        if not names:
            return []
        if create:
            return [await self.tag_service.get_or_create(name) for name in names]
        known = {tag.name: tag for tag in await self.tag_service.list_tags()}
        missing = [name for name in names if name not in known]
        if missing:
            raise ValidationError(f"Unknown tags: {', '.join(missing)}", field="tags")
        return [known[name] for name in names]

    def _describe_draft(self) -> str:
        s = self.session
        result = f"State: {s.state.value}\n"
        result += f"ID: {s.note_id or '(unsaved)'}\n"
        if s.tags:
            result += f"Tags: {_format_tags(s.tags)}\n"
        if s.last_saved_at:
            result += f"Last saved: {s.last_saved_at.isoformat()}\n"
        if s.tags_pending:
            result += "Tags pending: run tf_save_draft again to retry\n"
        if s.autosave_pending:
            result += f"Autosave in {config.autosave_delay:g}s\n"
        result += f"\n{s.content}\n"
        return result

    @staticmethod
    def _describe_save(result: SaveResult, published: bool) -> str:
        if result.ok and result.note is not None:
            verb = "published" if published else "saved as draft"
            return f"Thought {verb} with ID: {result.note.id}"
        if result.discarded:
            return "Save discarded: session closed"
        return f"Save failed: {result.error.message if isinstance(result.error, ThoughtflowError) else result.error}"

    @staticmethod
    def _describe_note(note: Note) -> str:
        preview = note.content[:PREVIEW_LENGTH]
        if len(note.content) > PREVIEW_LENGTH:
            preview += "..."
        line = f"## {note.created_at.isoformat()} (ID: {note.id})\n"
        if note.tags:
            line += f"Tags: {_format_tags(note.tags)}\n"
        return line + preview + "\n"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="tf_edit_draft")
        async def tf_edit_draft(content: str, tags: Optional[str] = None) -> str:
            """Replace the draft text (and optionally its tags); autosaves after a pause.
            Args:
                content: Full text of the thought being written
                tags: Comma-separated tag names; missing tags are created
            """
            with timed_operation("tf_edit_draft") as op:
                try:
                    if len(content) > MAX_CONTENT_LENGTH:
                        raise ValidationError(
                            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
                            field="content",
                        )
                    await self._ensure_hydrated()
                    self.session.edit(content)
                    if tags is not None:
                        self.session.set_tags(
                            await self._resolve_tags(_split_names(tags), create=True)
                        )
                    op["state"] = self.session.state.value
                    return self._with_events(self._describe_draft())
                except Exception as e:
                    return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_set_tags")
        async def tf_set_tags(tags: str = "") -> str:
            """Replace the draft's tags.
            Args:
                tags: Comma-separated tag names (empty clears); missing tags are created
            """
            try:
                await self._ensure_hydrated()
                self.session.set_tags(await self._resolve_tags(_split_names(tags), create=True))
                return self._with_events(self._describe_draft())
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_get_draft")
        async def tf_get_draft() -> str:
            """Show the current draft, its tags and save state."""
            try:
                await self._ensure_hydrated()
                return self._with_events(self._describe_draft())
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_save_draft")
        async def tf_save_draft() -> str:
            """Save the draft now instead of waiting for autosave."""
            try:
                await self._ensure_hydrated()
                if self.session.tags_pending and not self.session.is_dirty:
                    result = await self.session.retry_tag_sync()
                else:
                    result = await self.session.save_draft()
                return self._with_events(self._describe_save(result, published=False))
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_publish")
        async def tf_publish() -> str:
            """Publish the draft. The editor is cleared for the next thought."""
            try:
                await self._ensure_hydrated()
                result = await self.session.publish()
                return self._with_events(self._describe_save(result, published=True))
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_list_thoughts")
        async def tf_list_thoughts(
            query: str = "",
            sort: str = "newest",
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """List published thoughts with optional filters.
            Args:
                query: Case-insensitive text to search for
                sort: "newest" or "oldest"
                start_date: Only thoughts created after this date (YYYY-MM-DD)
                end_date: Only thoughts created on or before this date (YYYY-MM-DD)
                tags: Comma-separated tag names; a thought matches if it has any of them
            """
            with timed_operation("tf_list_thoughts") as op:
                try:
                    try:
                        sort_order = SortOrder(sort.lower())
                    except ValueError:
                        raise ValidationError(
                            "sort must be 'newest' or 'oldest'", field="sort", value=sort,
                            code=ErrorCode.INVALID_SORT_ORDER,
                        ) from None
                    start = _parse_date(start_date, "start_date")
                    end = _parse_date(end_date, "end_date")
                    selected = await self._resolve_tags(_split_names(tags), create=False)

                    if sort_order is self.collection.filter_state.sort:
                        await self.collection.refresh()
                    else:
                        await self.collection.set_sort(sort_order)
                    self.collection.set_query(query)
                    self.collection.set_date_range(start, end)
                    self.collection.set_selected_tags(t.id for t in selected)

                    view = self.collection.view
                    op["result_count"] = len(view)
                    if not view:
                        message = self.collection.empty_message or "Could not load thoughts."
                        return self._with_events(message)
                    header = f"Found {len(view)} of {len(self.collection.notes)} thoughts\n\n"
                    body = "\n".join(self._describe_note(n) for n in view)
                    return self._with_events(header + body)
                except Exception as e:
                    return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_list_tags")
        async def tf_list_tags(query: str = "") -> str:
            """List tags by name, optionally only those containing `query`."""
            try:
                tags = await self.tag_service.search_tags(query)
                if not tags:
                    return self._with_events("No tags found")
                lines = [f"- {tag.name} ({tag.color}) ID: {tag.id}" for tag in tags]
                return self._with_events("\n".join(lines))
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_create_tag")
        async def tf_create_tag(name: str) -> str:
            """Create a tag with a random color.
            Args:
                name: Tag name (case-sensitive, must be new)
            """
            try:
                tag = await self.tag_service.create_tag(name)
                return self._with_events(f"Tag created with ID: {tag.id} ({tag.color})")
            except Exception as e:
                return self._with_events(self.format_error_response(e))

        @self.mcp.tool(name="tf_status")
        def tf_status() -> str:
            """Operation metrics for this server process."""
            return json.dumps(
                {"summary": metrics.get_summary(), "operations": metrics.get_metrics()},
                indent=2,
            )

    def run(self) -> None:
        """Run the MCP server over stdio."""
        self.mcp.run()
