"""
Id-keyed, ordered view of one table.

A :class:`LiveCollection` starts from an authoritative snapshot
(:meth:`LiveCollection.reset`) and is then patched one change event at a
time (:meth:`LiveCollection.apply`).  Rows are always held newest first
by the collection's sort column; consumers that read oldest first, such
as a chat transcript, iterate ``reversed(collection)``.

Merge rules:

* insert: placed by sort key if the id is not held and the row matches
  the predicate; a repeated insert is a no-op.
* update: replaces the held row, moving it if its sort key changed; an
  update for an id that is not held is a no-op; an update that makes a
  held row fail the predicate removes it.
* delete: removes the id if held, otherwise a no-op.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable, Iterable, Iterator, Optional

from core.live.events import ChangeEvent, EventType

Predicate = Callable[[dict], bool]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _sort_value(value):
    """Sort key for one column value.

    Values fall into tiers so mixed types never get compared with each
    other: missing, then unparseable text, then numbers, then timestamps.
    Naive timestamps are taken as UTC.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, datetime):
        return (3, _aware(value))
    if isinstance(value, date):
        return (3, datetime.combine(value, time.min, tzinfo=timezone.utc))
    if isinstance(value, (int, float)):
        return (2, value)
    text = str(value)
    try:
        return (3, _aware(datetime.fromisoformat(text.replace('Z', '+00:00'))))
    except ValueError:
        return (1, text)


class LiveCollection:
    def __init__(self, order_by: str = 'created_at', *, predicate: Optional[Predicate] = None,
                 limit: Optional[int] = None):
        if limit is not None and limit < 1:
            raise ValueError('limit must be positive')
        self.order_by = order_by
        self.predicate = predicate
        self.limit = limit
        self._rows: list[dict] = []
        self._index: dict[str, dict] = {}

    # -- reading ----------------------------------------------------------

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[dict]:
        return iter(list(self._rows))

    def __reversed__(self) -> Iterator[dict]:
        return iter(self._rows[::-1])

    def __contains__(self, row_id) -> bool:
        return str(row_id) in self._index

    def get(self, row_id) -> Optional[dict]:
        return self._index.get(str(row_id))

    @property
    def rows(self) -> list[dict]:
        return list(self._rows)

    @property
    def ids(self) -> list[str]:
        return [str(r['id']) for r in self._rows]

    # -- writing ----------------------------------------------------------

    def reset(self, rows: Iterable[dict]) -> None:
        """Replace the content with an authoritative snapshot."""
        kept: dict[str, dict] = {}
        for row in rows:
            if self._accepts(row):
                kept[str(row['id'])] = dict(row)
        ordered = sorted(kept.values(), key=self._key, reverse=True)
        if self.limit is not None:
            ordered = ordered[:self.limit]
        self._rows = ordered
        self._index = {str(r['id']): r for r in ordered}

    def clear(self) -> None:
        self._rows = []
        self._index = {}

    def apply(self, event: ChangeEvent) -> bool:
        """Merge one change event; return whether the collection changed."""
        if event.event is EventType.INSERT:
            return self._insert(event.new_row)
        if event.event is EventType.UPDATE:
            return self._update(event.new_row)
        return self._remove(event.row_id)

    # -- internals --------------------------------------------------------

    def _key(self, row: dict):
        return _sort_value(row.get(self.order_by))

    def _accepts(self, row: dict) -> bool:
        return self.predicate is None or bool(self.predicate(row))

    def _place(self, row: dict) -> None:
        key = self._key(row)
        pos = len(self._rows)
        for i, held in enumerate(self._rows):
            if self._key(held) <= key:
                pos = i
                break
        self._rows.insert(pos, row)
        self._index[str(row['id'])] = row

    def _insert(self, row: dict) -> bool:
        row_id = str(row['id'])
        if row_id in self._index or not self._accepts(row):
            return False
        self._place(dict(row))
        if self.limit is not None and len(self._rows) > self.limit:
            dropped = self._rows.pop()
            self._index.pop(str(dropped['id']), None)
            return str(dropped['id']) != row_id
        return True

    def _update(self, row: dict) -> bool:
        row_id = str(row['id'])
        held = self._index.get(row_id)
        if held is None:
            return False
        if not self._accepts(row):
            return self._remove(row_id)
        if held == row:
            return False
        row = dict(row)
        if self._key(held) == self._key(row):
            self._rows[self._rows.index(held)] = row
            self._index[row_id] = row
        else:
            self._rows.remove(held)
            self._place(row)
        return True

    def _remove(self, row_id: str) -> bool:
        held = self._index.pop(str(row_id), None)
        if held is None:
            return False
        self._rows.remove(held)
        return True
