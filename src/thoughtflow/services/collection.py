"""Note collection cache: the owner's fetched thoughts plus a filtered view."""

import datetime
import logging
from collections import defaultdict
from datetime import timezone
from typing import Dict, Iterable, List, Optional, Tuple

from thoughtflow.config import config
from thoughtflow.exceptions import AuthError, ThoughtflowError
from thoughtflow.models.schema import (
    DateRange,
    EmptyState,
    FilterState,
    Note,
    SortOrder,
    Tag,
    dedupe_tags,
)
from thoughtflow.observability import timed_operation
from thoughtflow.services.debounce import CancelableTimer
from thoughtflow.services.filter_pipeline import classify_empty, filter_notes
from thoughtflow.services.status import DisplaySink, IdentityProvider, LoggingSink
from thoughtflow.storage.base import NoteStore, TagStore

logger = logging.getLogger(__name__)


class NoteCollectionCache:
    """Holds published thoughts with resolved tags and a memoized filtered view.

    Sort order is applied by the store at fetch time, so changing it
    re-fetches. Query, date range and tag selection only recompute the
    view. A failed fetch keeps the last loaded collection.
    """

    def __init__(
        self,
        note_store: NoteStore,
        tag_store: TagStore,
        identity: IdentityProvider,
        sink: Optional[DisplaySink] = None,
        sort: Optional[SortOrder] = None,
        search_debounce: Optional[float] = None,
        tz: datetime.tzinfo = timezone.utc,
        include_drafts: bool = False,
    ):
        self.note_store = note_store
        self.tag_store = tag_store
        self.identity = identity
        self.sink = sink or LoggingSink()
        self.tz = tz
        self.include_drafts = include_drafts
        self._filter = FilterState(sort=sort or SortOrder(config.default_sort))
        self._notes: List[Note] = []
        self._loaded = False
        self._generation = 0
        self._view_key: Optional[Tuple] = None
        self._view: List[Note] = []
        self.view_computations = 0
        delay = config.search_debounce if search_debounce is None else search_debounce
        self._scheduled_query: Optional[str] = None
        self._query_timer = CancelableTimer(delay, self._apply_scheduled_query, name="search")

    @property
    def notes(self) -> List[Note]:
        return list(self._notes)

    @property
    def filter_state(self) -> FilterState:
        return self._filter

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def refresh(self) -> bool:
        """Fetch the owner's thoughts in the current sort order and resolve tags.

        Returns:
            True if the collection was replaced, False if the fetch failed.
        """
        owner_id = self.identity.current_owner()
        try:
            if not owner_id:
                raise AuthError("You must be signed in to view your thoughts")
            with timed_operation("refresh_collection", owner_id=owner_id) as op:
                notes = await self.note_store.list_notes(
                    owner_id,
                    ascending=self._filter.sort.ascending,
                    include_drafts=self.include_drafts,
                )
                pairs = await self.tag_store.list_associations([n.id for n in notes])
                op["result_count"] = len(notes)
        except ThoughtflowError as e:
            logger.warning(f"Collection refresh failed: {e}")
            self.sink.error("Error", "Failed to load your thoughts. Please refresh the page.", e)
            return False

        self._notes = self._resolve_tags(notes, pairs)
        self._loaded = True
        self._generation += 1
        return True

    @staticmethod
    def _resolve_tags(notes: List[Note], pairs: Iterable[Tuple[str, Tag]]) -> List[Note]:
        by_note: Dict[str, List[Tag]] = defaultdict(list)
        for note_id, tag in pairs:
            by_note[note_id].append(tag)
        return [
            note.model_copy(update={"tags": dedupe_tags(by_note.get(note.id, []))})
            for note in notes
        ]

    async def handle_published(self, note: Note) -> None:
        """Publish listener for DraftSession.on_published."""
        await self.refresh()

    # ------------------------------------------------------------------
    # Filter inputs
    # ------------------------------------------------------------------

    def _update(self, **changes) -> None:
        self._filter = self._filter.model_copy(update=changes)

    async def set_sort(self, sort: SortOrder) -> bool:
        """Change the sort order and re-fetch. No-op if unchanged."""
        sort = SortOrder(sort)
        if sort is self._filter.sort:
            return True
        self._update(sort=sort)
        return await self.refresh()

    def set_query(self, query: str) -> None:
        """Apply a search query immediately; cancels any debounced query."""
        self._query_timer.cancel()
        self._scheduled_query = None
        self._update(query=query or "")

    def schedule_query(self, query: str) -> None:
        """Apply ``query`` after the search debounce; the latest call wins."""
        self._scheduled_query = query or ""
        self._query_timer.schedule()

    async def _apply_scheduled_query(self) -> None:
        if self._scheduled_query is not None:
            self._update(query=self._scheduled_query)
            self._scheduled_query = None

    async def wait_for_query(self) -> None:
        await self._query_timer.wait()

    def set_date_range(
        self, start: Optional[datetime.date] = None, end: Optional[datetime.date] = None
    ) -> None:
        self._update(date_range=DateRange(start=start, end=end))

    def set_selected_tags(self, tag_ids: Iterable[str]) -> None:
        self._update(selected_tag_ids=frozenset(tag_ids))

    def toggle_tag(self, tag_id: str) -> None:
        selected = set(self._filter.selected_tag_ids)
        selected.symmetric_difference_update({tag_id})
        self.set_selected_tags(selected)

    def clear_filters(self) -> None:
        """Reset query, date range and tags; keep the sort order."""
        self._query_timer.cancel()
        self._scheduled_query = None
        self._filter = FilterState(sort=self._filter.sort)

    # ------------------------------------------------------------------
    # Derived view
    # ------------------------------------------------------------------

    @property
    def view(self) -> List[Note]:
        """The filtered thoughts, recomputed only when an input changed."""
        key = (
            self._generation,
            self._filter.query,
            self._filter.date_range,
            self._filter.selected_tag_ids,
        )
        if key != self._view_key:
            self._view = filter_notes(self._notes, self._filter, self.tz)
            self._view_key = key
            self.view_computations += 1
        return list(self._view)

    @property
    def empty_state(self) -> Optional[EmptyState]:
        """Which empty message to show, or None when there is something to show."""
        if not self._loaded:
            return None
        return classify_empty(len(self._notes), len(self.view))

    @property
    def empty_message(self) -> Optional[str]:
        state = self.empty_state
        return state.message if state else None

    def dispose(self) -> None:
        self._query_timer.dispose()
