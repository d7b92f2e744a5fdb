"""
Change-feed subscriptions with reconnect.

A :class:`SubscriptionManager` opens one :class:`Subscription` per
(screen, table) pair.  Each subscription runs a background task that
reads change payloads from a :class:`Connection`, drops the ones outside
its table or row filter, passes the rest through the owner's optional
``gate`` (which may drop or rewrite an event) and hands what is left to
the owner's callback on the event loop.

When the connection fails (opening it or ``receive`` raises anything)
the task reopens it after an exponential backoff delay and, once
connected again, awaits the owner's ``on_reconnect`` hook so it can
re-fetch a full snapshot.  Events that happened while disconnected are
not replayed.

After :meth:`Subscription.close` returns, the callback is never invoked
again.
"""
from __future__ import annotations

import abc
import asyncio
import contextlib
import itertools
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from channels.layers import get_channel_layer
from django.conf import settings

from core.live.errors import InvalidEvent
from core.live.events import ChangeEvent, EventType
from core.realtime.filters import RowFilter
from core.services import changefeed

logger = logging.getLogger(__name__)

Callback = Callable[[ChangeEvent], None]
ReconnectHook = Callable[[], Awaitable[None]]
Gate = Callable[[ChangeEvent], Awaitable[Optional[ChangeEvent]]]


@dataclass(frozen=True)
class Backoff:
    base: float = 0.5
    factor: float = 2.0
    maximum: float = 30.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls) -> 'Backoff':
        return cls(base=settings.REALTIME_BACKOFF_BASE, maximum=settings.REALTIME_BACKOFF_MAX)

    def delay(self, attempt: int) -> float:
        delay = min(self.maximum, self.base * (self.factor ** max(attempt, 0)))
        if self.jitter and delay:
            delay += random.uniform(0, delay * self.jitter)
        return delay


class Connection(abc.ABC):
    """One open feed connection.  Any exception from ``receive`` counts as a drop."""

    @abc.abstractmethod
    async def receive(self) -> dict:
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        ...


class Transport(abc.ABC):
    @abc.abstractmethod
    async def open(self, table: str, row_filter: Optional[RowFilter] = None) -> Connection:
        ...


class _LayerConnection(Connection):
    def __init__(self, layer, group: str, channel: str):
        self.layer = layer
        self.group = group
        self.channel = channel

    async def receive(self) -> dict:
        try:
            return await self.layer.receive(self.channel)
        except Exception as exc:
            raise ConnectionError(f'channel layer receive failed: {exc}') from exc

    async def close(self) -> None:
        await self.layer.group_discard(self.group, self.channel)


class ChannelLayerTransport(Transport):
    """Join the server's ``feed.<table>`` group on the channel layer directly.

    Works in the same process as the publisher with the in-memory layer
    and across processes with the Redis layer.  Row filters are applied
    by the subscription, not the layer.
    """

    def __init__(self, channel_layer=None):
        self.layer = channel_layer or get_channel_layer()

    async def open(self, table: str, row_filter: Optional[RowFilter] = None) -> Connection:
        if self.layer is None:
            raise ConnectionError('no channel layer configured')
        group = changefeed.group_for(table)
        try:
            channel = await self.layer.new_channel()
            await self.layer.group_add(group, channel)
        except Exception as exc:
            raise ConnectionError(f'channel layer unavailable: {exc}') from exc
        return _LayerConnection(self.layer, group, channel)


class Subscription:
    def __init__(self, manager: 'SubscriptionManager', table: str, callback: Callback, *,
                 row_filter: Optional[RowFilter], on_reconnect: Optional[ReconnectHook], channel: str,
                 gate: Optional[Gate] = None):
        self.manager = manager
        self.table = table
        self.channel = channel
        self.row_filter = row_filter
        self._callback = callback
        self._on_reconnect = on_reconnect
        self._gate = gate
        self._closed = False
        self._ready = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.connected = False
        self.reconnects = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f'<Subscription {self.channel} table={self.table} filter={self.row_filter}>'

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f'feed:{self.channel}')

    async def _run(self) -> None:
        attempt = 0
        first = True
        while not self._closed:
            try:
                conn = await self.manager.transport.open(self.table, self.row_filter)
            except Exception as exc:
                logger.warning('subscription %s could not connect: %r', self.channel, exc)
                first = False
                self._ready.set()
                await asyncio.sleep(self.manager.backoff.delay(attempt))
                attempt += 1
                continue

            attempt = 0
            self.connected = True
            try:
                if not first:
                    self.reconnects += 1
                    logger.info('subscription %s reconnected', self.channel)
                    if self._on_reconnect is not None and not self._closed:
                        try:
                            await self._on_reconnect()
                        except Exception:
                            logger.exception('subscription %s resync failed', self.channel)
                first = False
                self._ready.set()
                await self._pump(conn)
            except Exception as exc:
                logger.warning('subscription %s dropped: %r', self.channel, exc)
            finally:
                self.connected = False
                with contextlib.suppress(Exception):
                    await conn.close()

            if not self._closed:
                await asyncio.sleep(self.manager.backoff.delay(attempt))
                attempt += 1

    def _wants(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.row_filter is None:
            return True
        if event.event is EventType.UPDATE:
            return self.row_filter.matches(event.new_row) or self.row_filter.matches(event.old_row)
        return self.row_filter.matches(event.row)

    async def _pump(self, conn: Connection) -> None:
        while not self._closed:
            payload = await conn.receive()
            try:
                event = ChangeEvent.from_payload(payload)
            except InvalidEvent as exc:
                logger.warning('subscription %s dropped malformed event: %s', self.channel, exc)
                continue
            if self._closed or not self._wants(event):
                continue
            if self._gate is not None:
                event = await self._gate(event)
                if event is None or self._closed:
                    continue
            try:
                self._callback(event)
            except Exception:
                logger.exception('subscription %s callback failed on %s', self.channel, event.event.value)

    async def wait_ready(self) -> None:
        await self._ready.wait()

    async def close(self) -> None:
        """Terminate the channel.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.manager._forget(self)
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception('subscription %s ended with an error', self.channel)
        logger.debug('subscription %s closed', self.channel)


class SubscriptionManager:
    def __init__(self, transport: Transport, *, backoff: Optional[Backoff] = None):
        self.transport = transport
        self.backoff = backoff or Backoff.from_settings()
        self._open: dict[str, Subscription] = {}
        self._seq = itertools.count(1)

    @property
    def open_subscriptions(self) -> list[Subscription]:
        return list(self._open.values())

    async def subscribe(self, table: str, callback: Callback, *, row_filter: Optional[RowFilter] = None,
                        on_reconnect: Optional[ReconnectHook] = None,
                        gate: Optional[Gate] = None,
                        channel: Optional[str] = None) -> Subscription:
        """Open a channel for ``table`` and return its handle.

        Returns once the first connection attempt has finished.  If it
        failed, the subscription keeps retrying in the background and
        treats its first success as a reconnect.
        """
        channel = channel or f'{table}-{next(self._seq)}'
        if channel in self._open:
            raise ValueError(f'channel {channel!r} is already open')
        sub = Subscription(self, table, callback, row_filter=row_filter,
                           on_reconnect=on_reconnect, channel=channel, gate=gate)
        self._open[channel] = sub
        sub._start()
        await sub.wait_ready()
        logger.debug('opened %r', sub)
        return sub

    def _forget(self, sub: Subscription) -> None:
        if self._open.get(sub.channel) is sub:
            del self._open[sub.channel]

    async def close_all(self) -> None:
        for sub in list(self._open.values()):
            await sub.close()
