"""Filter pipeline over a loaded thought collection.

Pure functions only. Three conjunctive predicates are applied in order:
search, date range, tag membership. Input order is preserved because
sorting happens when the collection is fetched.
"""

import datetime
from datetime import timezone
from typing import FrozenSet, List, Optional, Sequence

from thoughtflow.models.schema import DateRange, EmptyState, FilterState, Note


def matches_search(note: Note, query: str) -> bool:
    """Case-insensitive substring match of ``query`` against the content."""
    if not query:
        return True
    return query.casefold() in note.content.casefold()


def within_date_range(
    note: Note, date_range: DateRange, tz: datetime.tzinfo = timezone.utc
) -> bool:
    """True when ``start < created_at < end + 1 day`` for the bounds that are set.

    An end before the start simply never matches.
    """
    lower = date_range.lower_bound(tz)
    upper = date_range.upper_bound(tz)
    if lower is not None and not note.created_at > lower:
        return False
    if upper is not None and not note.created_at < upper:
        return False
    return True


def has_selected_tag(note: Note, selected_tag_ids: FrozenSet[str]) -> bool:
    """True when the note carries at least one selected tag (OR semantics)."""
    if not selected_tag_ids:
        return True
    return not note.tag_ids.isdisjoint(selected_tag_ids)


def filter_notes(
    notes: Sequence[Note], state: FilterState, tz: datetime.tzinfo = timezone.utc
) -> List[Note]:
    """Return the notes passing every active predicate of ``state``.

    Args:
        notes: Collection in fetch order.
        state: Query, date range and tag selection. ``state.sort`` is not
            applied here.
        tz: Timezone the calendar-date bounds are interpreted in.

    Returns:
        A new list, a subsequence of ``notes``.
    """
    query = state.query.strip()
    return [
        note
        for note in notes
        if matches_search(note, query)
        and within_date_range(note, state.date_range, tz)
        and has_selected_tag(note, state.selected_tag_ids)
    ]


def classify_empty(total: int, matched: int) -> Optional[EmptyState]:
    """Tell "nothing saved yet" apart from "nothing matches"; None if not empty."""
    if matched:
        return None
    if total == 0:
        return EmptyState.NO_THOUGHTS
    return EmptyState.NO_MATCH
