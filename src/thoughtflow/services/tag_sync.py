"""Tag association reconciliation."""

import logging
from typing import Iterable, List

from thoughtflow.exceptions import SyncError, ThoughtflowError
from thoughtflow.observability import timed_operation
from thoughtflow.storage.base import TagStore

logger = logging.getLogger(__name__)


class TagAssociationSynchronizer:
    """Makes a thought's persisted tag links equal a target set.

    Reconciliation is a full replace (delete all, then insert the target),
    not a diff. Running it twice with the same target leaves the same end
    state, so re-running it is the recovery path after a SyncError.
    """

    def __init__(self, tag_store: TagStore):
        self.tag_store = tag_store

    async def reconcile(self, note_id: str, target_tag_ids: Iterable[str]) -> List[str]:
        """Replace the associations of ``note_id`` with ``target_tag_ids``.

        Returns:
            The deduplicated target ids, in the order given.

        Raises:
            SyncError: If the delete or the insert step fails. ``step`` says
                which; after a failed insert the note has no tags at all.
        """
        targets = list(dict.fromkeys(target_tag_ids))
        with timed_operation("reconcile_tags", note_id=note_id) as op:
            op["target_count"] = len(targets)
            try:
                await self.tag_store.delete_associations(note_id)
            except ThoughtflowError as e:
                raise SyncError(note_id, "delete", targets, original_error=e) from e

            if not targets:
                return targets

            try:
                await self.tag_store.insert_associations(note_id, targets)
            except ThoughtflowError as e:
                logger.warning(
                    f"Tag insert failed for {note_id} after delete; links are now empty"
                )
                raise SyncError(note_id, "insert", targets, original_error=e) from e
        return targets
