"""
Change events as seen by a subscriber.

The wire payload is the dict published by ``core.services.changefeed``
(or forwarded by the websocket consumer); :meth:`ChangeEvent.from_payload`
accepts either and normalizes it.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from core.live.errors import InvalidEvent


class EventType(str, enum.Enum):
    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'


@dataclass(frozen=True)
class ChangeEvent:
    event: EventType
    table: str
    new_row: dict = field(default_factory=dict)
    old_row: dict = field(default_factory=dict)
    commit_timestamp: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'ChangeEvent':
        if not isinstance(payload, dict):
            raise InvalidEvent('change payload must be an object')
        try:
            event = EventType(str(payload.get('event', '')).lower())
        except ValueError:
            raise InvalidEvent(f"unknown event type {payload.get('event')!r}") from None
        table = payload.get('table')
        if not isinstance(table, str) or not table:
            raise InvalidEvent('change payload has no table')
        new_row = payload.get('new_row') or {}
        old_row = payload.get('old_row') or {}
        if not isinstance(new_row, dict) or not isinstance(old_row, dict):
            raise InvalidEvent('rows must be objects')
        if event is EventType.DELETE:
            if 'id' not in old_row:
                raise InvalidEvent('delete event without old_row.id')
        elif 'id' not in new_row:
            raise InvalidEvent(f'{event.value} event without new_row.id')
        return cls(event, table, dict(new_row), dict(old_row), payload.get('commit_timestamp'))

    @classmethod
    def insert(cls, table: str, row: dict) -> 'ChangeEvent':
        return cls(EventType.INSERT, table, dict(row))

    @classmethod
    def update(cls, table: str, row: dict, old_row: Optional[dict] = None) -> 'ChangeEvent':
        return cls(EventType.UPDATE, table, dict(row), dict(old_row or {}))

    @classmethod
    def delete(cls, table: str, row: dict) -> 'ChangeEvent':
        return cls(EventType.DELETE, table, {}, dict(row))

    @property
    def row(self) -> dict:
        """The row the event is about: the old row for deletes, else the new one."""
        return self.old_row if self.event is EventType.DELETE else self.new_row

    @property
    def row_id(self) -> str:
        return str(self.row['id'])
