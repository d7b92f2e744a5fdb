import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from core.models import TABLES
from core.realtime.filters import InvalidFilter, RowFilter
from core.services import changefeed
from core.services.visibility import can_see_row

logger = logging.getLogger(__name__)

MAX_SUBSCRIPTIONS = 32


async def _ws_error(ws, code: int, message: str, *, close: bool = False):
    """
    Uniform error frame.
    App codes: 4xxx client errors, 5xxx server errors.
    """
    payload = {"type": "error", "code": code, "message": message}
    try:
        await ws.send(json.dumps(payload))
    finally:
        if close:
            await ws.close(code=code)


def _filter_row(event: dict) -> list:
    if event.get("event") == changefeed.DELETE:
        return [event.get("old_row")]
    if event.get("event") == changefeed.UPDATE:
        # an update that moves a row out of a filter must still reach the subscriber
        return [event.get("new_row"), event.get("old_row")]
    return [event.get("new_row")]


class ChangeFeedConsumer(AsyncWebsocketConsumer):
    """Per-connection multiplexer of table subscriptions.

    Client frames::

        {"type": "subscribe", "channel": "nurse-alerts", "table": "alerts",
         "filter": "is_acknowledged=is.false"}
        {"type": "unsubscribe", "channel": "nurse-alerts"}

    Every matching row change is forwarded once per subscription as
    ``{"type": "change", "channel": ..., "event": ..., "table": ...,
    "new_row": ..., "old_row": ..., "commit_timestamp": ...}``.
    """

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4001)
            return
        self.user = user
        self.subscriptions: dict[str, tuple[str, RowFilter | None]] = {}
        await self.accept()

    async def disconnect(self, close_code):
        for table in {t for t, _ in getattr(self, "subscriptions", {}).values()}:
            await self.channel_layer.group_discard(changefeed.group_for(table), self.channel_name)
        self.subscriptions = {}

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return

        try:
            data = json.loads(text_data)
        except Exception:
            await _ws_error(self, 4000, "invalid_json")
            return

        if not isinstance(data, dict):
            await _ws_error(self, 4002, "invalid_payload")
            return

        kind = data.get("type")
        if kind == "subscribe":
            await self._subscribe(data)
        elif kind == "unsubscribe":
            await self._unsubscribe(data)
        elif kind == "ping":
            await self.send(json.dumps({"type": "pong"}))
        else:
            await _ws_error(self, 4003, "unsupported_type")

    async def _subscribe(self, data: dict):
        channel = data.get("channel")
        table = data.get("table")
        if not isinstance(channel, str) or not channel.strip():
            await _ws_error(self, 4004, "missing_channel")
            return
        if table not in TABLES:
            await _ws_error(self, 4005, "unknown_table")
            return
        if channel not in self.subscriptions and len(self.subscriptions) >= MAX_SUBSCRIPTIONS:
            await _ws_error(self, 4006, "too_many_subscriptions")
            return
        row_filter = None
        if data.get("filter"):
            try:
                row_filter = RowFilter.parse(data["filter"])
            except InvalidFilter:
                await _ws_error(self, 4007, "invalid_filter")
                return

        await self.channel_layer.group_add(changefeed.group_for(table), self.channel_name)
        self.subscriptions[channel] = (table, row_filter)
        logger.debug("user %s subscribed %s to %s (%s)", self.user.id, channel, table, row_filter)
        await self.send(json.dumps({"type": "subscribed", "channel": channel, "table": table}))

    async def _unsubscribe(self, data: dict):
        channel = data.get("channel")
        entry = self.subscriptions.pop(channel, None)
        if entry is None:
            await _ws_error(self, 4008, "unknown_channel")
            return
        table = entry[0]
        if not any(t == table for t, _ in self.subscriptions.values()):
            await self.channel_layer.group_discard(changefeed.group_for(table), self.channel_name)
        await self.send(json.dumps({"type": "unsubscribed", "channel": channel}))

    # group_send handler for {"type": "feed.change", ...}
    async def feed_change(self, event):
        table = event.get("table")
        targets = [
            channel for channel, (t, row_filter) in self.subscriptions.items()
            if t == table and (row_filter is None or any(row_filter.matches(r) for r in _filter_row(event)))
        ]
        if not targets:
            return
        row = event.get("old_row") if event.get("event") == changefeed.DELETE else event.get("new_row")
        visible = await database_sync_to_async(can_see_row)(self.user, table, row)
        if not visible:
            return
        body = {k: event.get(k) for k in ("event", "table", "new_row", "old_row", "commit_timestamp")}
        for channel in targets:
            await self.send(json.dumps({"type": "change", "channel": channel, **body}))
