"""Identity and display-sink seams.

The engine never renders anything: it emits StatusEvents to a DisplaySink
and asks an IdentityProvider who the current owner is.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from thoughtflow.exceptions import ThoughtflowError
from thoughtflow.models.schema import StatusEvent, StatusLevel

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Supplies the current owner identity, or None when signed out."""

    @abstractmethod
    def current_owner(self) -> Optional[str]:
        ...


class StaticIdentity(IdentityProvider):
    """Identity fixed at construction; ``sign_out()`` drops it."""

    def __init__(self, owner_id: Optional[str]):
        self._owner_id = owner_id

    def current_owner(self) -> Optional[str]:
        return self._owner_id

    def sign_out(self) -> None:
        self._owner_id = None


class DisplaySink(ABC):
    """Receives user-facing status events."""

    @abstractmethod
    def emit(self, event: StatusEvent) -> None:
        ...

    def info(self, title: str, description: str) -> None:
        self.emit(StatusEvent(level=StatusLevel.INFO, title=title, description=description))

    def error(self, title: str, description: str, error: Optional[Exception] = None) -> None:
        code = error.code.name if isinstance(error, ThoughtflowError) else None
        self.emit(
            StatusEvent(
                level=StatusLevel.ERROR,
                title=title,
                description=description,
                error_code=code,
            )
        )


class LoggingSink(DisplaySink):
    """Writes status events to the log. Used when nothing renders them."""

    def emit(self, event: StatusEvent) -> None:
        if event.level is StatusLevel.ERROR:
            logger.warning(f"{event} [{event.error_code}]")
        else:
            logger.info(str(event))


class CollectingSink(DisplaySink):
    """Buffers events until drained; the MCP server returns them with each tool result."""

    def __init__(self):
        self.events: List[StatusEvent] = []

    def emit(self, event: StatusEvent) -> None:
        self.events.append(event)

    def drain(self) -> List[StatusEvent]:
        events, self.events = self.events, []
        return events
