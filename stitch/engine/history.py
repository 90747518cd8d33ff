"""
Increment History Ledger

Append-mostly log of counter increments. Only two pruning operations exist:
drop the most recent entry for one counter (decrement as approximate undo)
and purge every entry for one counter (reset or delete).

Storage order is not trusted; readers sort by timestamp.
"""

from stitch.persistence.models import HistoryEntry


def record_increment(history: list[HistoryEntry], counter_id: str, timestamp: int) -> HistoryEntry:
    """Append an increment entry and return it."""
    entry = HistoryEntry(counter_id=counter_id, timestamp=timestamp)
    history.append(entry)
    return entry


def remove_latest(history: list[HistoryEntry], counter_id: str) -> HistoryEntry | None:
    """
    Remove the most recent entry for ``counter_id``.

    "Most recent" is the latest timestamp; ties go to the later list position.
    Entries for other counters are never touched.

    Returns:
        The removed entry, or None if the counter had no history
    """
    latest_index: int | None = None
    for index, entry in enumerate(history):
        if entry.counter_id != counter_id:
            continue
        if latest_index is None or entry.timestamp >= history[latest_index].timestamp:
            latest_index = index

    if latest_index is None:
        return None
    return history.pop(latest_index)


def purge(history: list[HistoryEntry], counter_id: str) -> int:
    """Remove every entry for ``counter_id`` in place. Returns how many were removed."""
    kept = [entry for entry in history if entry.counter_id != counter_id]
    removed = len(history) - len(kept)
    history[:] = kept
    return removed


def series(history: list[HistoryEntry], counter_id: str | None = None) -> list[HistoryEntry]:
    """Entries for one counter (or all when ``counter_id`` is None), oldest first."""
    selected = history if counter_id is None else [e for e in history if e.counter_id == counter_id]
    return sorted(selected, key=lambda e: e.timestamp)
