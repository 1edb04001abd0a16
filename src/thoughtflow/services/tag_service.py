"""Tag store client: owner-scoped listing and creation of tags."""

import logging
from typing import List, Optional

from thoughtflow.exceptions import AuthError, ConflictError, ErrorCode, ValidationError
from thoughtflow.models.schema import Tag, random_tag_color
from thoughtflow.observability import traced
from thoughtflow.services.status import DisplaySink, IdentityProvider, LoggingSink
from thoughtflow.storage.base import TagStore

logger = logging.getLogger(__name__)


class TagService:
    """Lists and creates tags for the current owner.

    Every consumer (tag picker, tag filter) may hold its own TagService and
    re-fetch; nothing is cached here.
    """

    def __init__(
        self,
        tag_store: TagStore,
        identity: IdentityProvider,
        sink: Optional[DisplaySink] = None,
    ):
        self.tag_store = tag_store
        self.identity = identity
        self.sink = sink or LoggingSink()

    def _owner(self) -> str:
        owner_id = self.identity.current_owner()
        if not owner_id:
            raise AuthError("You must be signed in to manage tags")
        return owner_id

    @traced("list_tags")
    async def list_tags(self) -> List[Tag]:
        """Return the owner's tags ordered by name."""
        tags = await self.tag_store.list_tags(self._owner())
        return sorted(tags, key=lambda t: t.name)

    async def search_tags(self, query: str = "") -> List[Tag]:
        """Tags whose name contains ``query``, case-insensitively (tag picker)."""
        needle = query.strip().casefold()
        tags = await self.list_tags()
        if not needle:
            return tags
        return [t for t in tags if needle in t.name.casefold()]

    @traced("create_tag")
    async def create_tag(self, name: str) -> Tag:
        """Create a tag with a random display color.

        Raises:
            ValidationError: If ``name`` is blank.
            ConflictError: If the owner already has a tag with this name.
        """
        clean = (name or "").strip()
        if not clean:
            raise ValidationError(
                "Tag name cannot be empty", field="name", code=ErrorCode.TAG_NAME_REQUIRED
            )
        tag = await self.tag_store.create_tag(self._owner(), clean, random_tag_color())
        logger.info(f"Created tag {tag.name!r} ({tag.id})")
        self.sink.info("Success", f'Tag "{tag.name}" created successfully')
        return tag

    async def get_or_create(self, name: str) -> Tag:
        """Return the owner's tag named ``name``, creating it if missing."""
        clean = (name or "").strip()
        for tag in await self.list_tags():
            if tag.name == clean:
                return tag
        try:
            return await self.create_tag(clean)
        except ConflictError:
            # Created concurrently by another client.
            for tag in await self.list_tags():
                if tag.name == clean:
                    return tag
            raise
