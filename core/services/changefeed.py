"""
Publishing row changes to the realtime change feed.

Every insert, update and delete of a feed table is broadcast to the
channel-layer group ``feed.<table>`` as a ``feed.change`` message::

    {"type": "feed.change", "event": "insert", "table": "alerts",
     "new_row": {...}, "old_row": {...}, "commit_timestamp": "..."}

Websocket consumers and in-process subscribers
(``core.live.subscriptions.ChannelLayerTransport``) join that group.
"""
from __future__ import annotations

import logging
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

INSERT = 'insert'
UPDATE = 'update'
DELETE = 'delete'
EVENTS = (INSERT, UPDATE, DELETE)

MESSAGE_TYPE = 'feed.change'


def group_for(table: str) -> str:
    return f'feed.{table}'


def build_event(event: str, table: str, new_row: Optional[dict], old_row: Optional[dict]) -> dict:
    if event not in EVENTS:
        raise ValueError(f'unknown change event {event!r}')
    return {
        'type': MESSAGE_TYPE,
        'event': event,
        'table': table,
        'new_row': new_row or {},
        'old_row': old_row or {},
        'commit_timestamp': timezone.now().isoformat(),
    }


def publish(event: str, table: str, new_row: Optional[dict] = None, old_row: Optional[dict] = None) -> None:
    """Broadcast one row change once the surrounding transaction commits."""
    payload = build_event(event, table, new_row, old_row)

    def _send():
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        try:
            async_to_sync(channel_layer.group_send)(group_for(table), payload)
        except Exception:
            # A broken channel layer must not fail the write that triggered it
            logger.exception('change feed publish failed for %s %s', event, table)

    transaction.on_commit(_send)
