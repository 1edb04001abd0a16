"""Draft session: one thought's edit buffer and its save lifecycle.

State machine::

    EMPTY --edit--> EDITING --quiet period--> AUTOSAVING --ok--> DRAFT_SAVED
                       ^                          |                  |
                       +-------- failure ---------+                  |
                       +------------------- edit --------------------+
    EDITING | DRAFT_SAVED --publish--> PUBLISHING --ok--> EMPTY (id released)

Saving is two-phase. Phase 1 writes the content and binds the note id;
phase 2 reconciles the tag links. If phase 2 fails the session stays in
the intermediate ``tags_pending`` state until ``retry_tag_sync()`` or the
next save re-runs the reconciliation.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Sequence

from thoughtflow.config import config
from thoughtflow.exceptions import (
    AuthError,
    ErrorCode,
    SyncError,
    ThoughtflowError,
    ValidationError,
)
from thoughtflow.models.schema import (
    CurrentDraft,
    Note,
    SaveResult,
    SessionState,
    Tag,
    dedupe_tags,
    utc_now,
)
from thoughtflow.observability import get_logger, timed_operation
from thoughtflow.services.debounce import CancelableTimer
from thoughtflow.services.status import DisplaySink, IdentityProvider, LoggingSink
from thoughtflow.services.tag_sync import TagAssociationSynchronizer
from thoughtflow.storage.base import NoteStore, TagStore

logger = logging.getLogger(__name__)

PublishListener = Callable[[Note], Any]


class DraftSession:
    """Owns one in-flight thought.

    Edits are applied synchronously and in call order. Persisted effects
    only happen through ``save()``, which is serialized per session: a save
    issued while another is outstanding waits behind it. Must be used from
    a running event loop.
    """

    def __init__(
        self,
        note_store: NoteStore,
        tag_store: TagStore,
        identity: IdentityProvider,
        sink: Optional[DisplaySink] = None,
        autosave_delay: Optional[float] = None,
        synchronizer: Optional[TagAssociationSynchronizer] = None,
    ):
        self.note_store = note_store
        self.identity = identity
        self.sink = sink or LoggingSink()
        self.synchronizer = synchronizer or TagAssociationSynchronizer(tag_store)
        self.tag_store = tag_store
        delay = config.autosave_delay if autosave_delay is None else autosave_delay
        self._timer = CancelableTimer(delay, self._autosave, name="autosave")
        self._save_lock = asyncio.Lock()
        self._log = get_logger("draft_session")

        self._state = SessionState.EMPTY
        self._content = ""
        self._tags: List[Tag] = []
        self._note_id: Optional[str] = None
        self._current_draft: Optional[CurrentDraft] = None
        self._revision = 0
        self._saved_revision = 0
        self._last_saved_at = None
        self._pending_tag_ids: Optional[List[str]] = None
        self._pending_publish = False
        self._pending_revision = 0
        self._disposed = False
        self._publish_listeners: List[PublishListener] = []

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def content(self) -> str:
        return self._content

    @property
    def tags(self) -> List[Tag]:
        return list(self._tags)

    @property
    def tag_ids(self) -> List[str]:
        return [t.id for t in self._tags]

    @property
    def note_id(self) -> Optional[str]:
        return self._note_id

    @property
    def current_draft(self) -> Optional[CurrentDraft]:
        return self._current_draft

    @property
    def last_saved_at(self):
        """When the draft was last saved; shown as "Draft saved at ..."."""
        return self._last_saved_at

    @property
    def is_dirty(self) -> bool:
        return self._revision != self._saved_revision

    @property
    def tags_pending(self) -> bool:
        """True between a successful content write and a successful tag sync."""
        return self._pending_tag_ids is not None

    @property
    def autosave_pending(self) -> bool:
        return self._timer.pending

    @property
    def disposed(self) -> bool:
        return self._disposed

    def on_published(self, listener: PublishListener) -> None:
        """Register a callback (sync or async) run after each successful publish."""
        self._publish_listeners.append(listener)

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    async def load(self) -> SessionState:
        """Hydrate from the owner's most recent draft, if any.

        Load failures are reported to the sink and leave the session EMPTY.
        Edits made while the load is in flight win over the stored draft.
        """
        owner_id = self.identity.current_owner()
        if not owner_id:
            return self._state

        revision = self._revision
        with timed_operation("load_draft", owner_id=owner_id) as op:
            try:
                draft = await self.note_store.get_draft_for(owner_id)
                pairs = (
                    await self.tag_store.list_associations([draft.id]) if draft else []
                )
            except ThoughtflowError as e:
                self._log.error("Draft load failed", error=e.code.name)
                self.sink.error("Error", "Failed to load your draft.", e)
                return self._state
            op["found"] = draft is not None

        if self._disposed or draft is None:
            return self._state
        if self._revision != revision or self._note_id is not None:
            self._log.info("Skipping draft hydration; buffer changed during load")
            return self._state

        self._content = draft.content
        self._tags = dedupe_tags([tag for _, tag in pairs])
        self._note_id = draft.id
        self._current_draft = CurrentDraft(owner_id=owner_id, note_id=draft.id)
        self._last_saved_at = draft.updated_at
        self._saved_revision = self._revision
        self._state = SessionState.DRAFT_SAVED
        self._log.set_context(note_id=draft.id)
        self._log.info("Hydrated draft", tags=len(self._tags))
        return self._state

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def edit(self, content: str) -> None:
        """Replace the buffer content and restart the autosave timer."""
        self._ensure_live()
        self._content = content
        self._touch()

    def set_tags(self, tags: Sequence[Tag]) -> None:
        """Replace the selected tags (deduplicated by id); debounced like edits."""
        self._ensure_live()
        self._tags = dedupe_tags(list(tags))
        self._touch()

    def add_tag(self, tag: Tag) -> None:
        if tag.id not in self.tag_ids:
            self.set_tags([*self._tags, tag])

    def remove_tag(self, tag_id: str) -> None:
        if tag_id in self.tag_ids:
            self.set_tags([t for t in self._tags if t.id != tag_id])

    def _touch(self) -> None:
        self._revision += 1
        if self._state not in (SessionState.AUTOSAVING, SessionState.PUBLISHING):
            self._state = self._resting_state()
        self._timer.schedule()

    def _resting_state(self) -> SessionState:
        """State to show when no save is in flight."""
        if self._note_id is None and not self._content.strip():
            return SessionState.EMPTY
        if self._note_id is not None and not self.is_dirty and not self.tags_pending:
            return SessionState.DRAFT_SAVED
        return SessionState.EDITING

    def _ensure_live(self) -> None:
        if self._disposed:
            raise RuntimeError("Draft session has been disposed")

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def _autosave(self) -> None:
        if self._disposed or not self._content.strip():
            return
        if not self.is_dirty and not self.tags_pending:
            return
        await self.save(as_draft=True)

    async def save_draft(self) -> SaveResult:
        """Save-as-Draft: the autosave path, immediately."""
        return await self.save(as_draft=True)

    async def publish(self) -> SaveResult:
        return await self.save(as_draft=False)

    async def save(self, as_draft: bool = True) -> SaveResult:
        """Upsert the thought, then reconcile its tags.

        Failures are never raised: they are emitted to the display sink and
        returned in ``SaveResult.error``. The buffer is never lost.

        Args:
            as_draft: Keep the thought as a draft (True) or publish it.
        """
        if self._disposed:
            return SaveResult(ok=False, discarded=True)
        # An explicit save supersedes the pending autosave.
        self._timer.cancel()
        async with self._save_lock:
            if self._disposed:
                return SaveResult(ok=False, discarded=True)
            operation = "save_draft" if as_draft else "publish"
            with timed_operation(operation, note_id=self._note_id) as op:
                result = await self._save_locked(as_draft)
                op["ok"] = result.ok
                return result

    async def _save_locked(self, as_draft: bool) -> SaveResult:
        prior_state = self._state
        content = self._content
        tag_ids = self.tag_ids
        revision = self._revision

        try:
            if not content.strip():
                raise ValidationError(
                    "Please enter some content for your thought",
                    field="content",
                    code=ErrorCode.NOTE_CONTENT_REQUIRED,
                )
            owner_id = self.identity.current_owner()
            if not owner_id:
                raise AuthError()
        except ThoughtflowError as e:
            self.sink.error("Error", e.message, e)
            return SaveResult(ok=False, error=e)

        self._state = SessionState.AUTOSAVING if as_draft else SessionState.PUBLISHING

        # Phase 1: content
        note_id = self._note_id
        try:
            if note_id is None:
                note = await self.note_store.create_note(content, owner_id, is_draft=as_draft)
                note_id = note.id
            else:
                await self.note_store.update_note(note_id, content=content, is_draft=as_draft)
                note = Note(id=note_id, content=content, owner_id=owner_id, is_draft=as_draft)
        except ThoughtflowError as e:
            if self._disposed:
                return SaveResult(ok=False, error=e, discarded=True)
            self._state = SessionState.EDITING if as_draft else prior_state
            if self._revision != revision:
                self._state = SessionState.EDITING
            self._log.warning("Content write failed", error=e.code.name)
            self.sink.error("Error", "Failed to save your thought. Please try again.", e)
            return SaveResult(ok=False, error=e)

        if self._disposed:
            return SaveResult(ok=False, note=note, discarded=True)

        self._note_id = note_id
        self._log.set_context(note_id=note_id)
        if as_draft:
            self._current_draft = CurrentDraft(owner_id=owner_id, note_id=note_id)
        self._pending_tag_ids = list(tag_ids)
        self._pending_publish = not as_draft
        self._pending_revision = revision

        # Phase 2: tags
        return await self._finish_tags(note, revision)

    async def _finish_tags(self, note: Note, revision: int) -> SaveResult:
        tag_ids = list(self._pending_tag_ids or [])
        try:
            await self.synchronizer.reconcile(note.id, tag_ids)
        except SyncError as e:
            if self._disposed:
                return SaveResult(ok=False, note=note, error=e, discarded=True)
            self._state = SessionState.EDITING
            self._log.warning("Tag sync failed after content write", step=e.step)
            self.sink.error(
                "Error", "Your thought was saved but its tags could not be updated.", e
            )
            return SaveResult(ok=False, note=note, error=e, details={"content_saved": True})

        if self._disposed:
            return SaveResult(ok=False, note=note, discarded=True)

        tags_by_id = {t.id: t for t in self._tags}
        note = note.model_copy(
            update={"tags": [tags_by_id[i] for i in tag_ids if i in tags_by_id]}
        )
        publishing = self._pending_publish
        self._pending_tag_ids = None
        self._pending_publish = False

        if publishing:
            await self._complete_publish(note, revision)
        else:
            self._saved_revision = revision
            self._last_saved_at = utc_now()
            self._state = self._resting_state()
            self.sink.info("Draft saved", "Your draft has been saved")
        return SaveResult(ok=True, note=note)

    async def _complete_publish(self, note: Note, revision: int) -> None:
        self._note_id = None
        self._current_draft = None
        self._last_saved_at = None
        self._log.clear_context()
        if self._revision == revision:
            self._timer.cancel()
            self._content = ""
            self._tags = []
            self._saved_revision = self._revision
            self._state = SessionState.EMPTY
        else:
            # Edits typed while publishing become the start of a new thought.
            self._saved_revision = revision
            self._state = self._resting_state()
        self.sink.info("Success", "Your thought has been saved")
        for listener in list(self._publish_listeners):
            try:
                outcome = listener(note)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                # Listeners never undo a publish that already happened
                logger.error(f"Publish listener failed: {e}", exc_info=True)

    async def retry_tag_sync(self) -> SaveResult:
        """Re-run only the tag reconciliation of the last save.

        The recovery path after a SyncError: the content write already
        happened, and reconciliation is idempotent.
        """
        async with self._save_lock:
            if self._disposed:
                return SaveResult(ok=False, discarded=True)
            if self._pending_tag_ids is None or self._note_id is None:
                return SaveResult(ok=True)
            owner_id = self.identity.current_owner()
            if not owner_id:
                error = AuthError()
                self.sink.error("Error", error.message, error)
                return SaveResult(ok=False, error=error)
            note = Note(
                id=self._note_id,
                content=self._content,
                owner_id=owner_id,
                is_draft=not self._pending_publish,
            )
            return await self._finish_tags(note, self._pending_revision)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no autosave is pending or running and no save is queued."""
        await self._timer.wait()
        async with self._save_lock:
            pass

    def dispose(self) -> None:
        """Cancel the pending autosave. In-flight saves finish but are discarded."""
        if self._disposed:
            return
        self._timer.dispose()
        self._disposed = True
        self._publish_listeners.clear()
        self._log.info("Session disposed")
