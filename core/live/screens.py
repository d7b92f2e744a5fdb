"""
Screen lifecycle: snapshot, subscribe, reconcile, recompute, tear down.

A :class:`Screen` owns one :class:`~core.live.collection.LiveCollection`
and at most one feed subscription.  ``mount()`` subscribes and fetches
the full snapshot; events that arrive while the fetch is in flight are
buffered and replayed on top of the snapshot, so nothing committed
between the two steps is lost.  After every change the badge counts are
recomputed and listeners are notified.

Every awaited fetch or write is tagged with the generation it started
in.  ``unmount()`` and ``refresh()`` bump the generation, so a result
that lands afterwards is dropped instead of touching a screen that has
moved on.

Feed events go through the backend's visibility check before they are
merged, so the collection only ever holds rows a fresh fetch would
return.

Nothing here raises on backend failure: fetch errors put the screen in
the ``error`` state, failed actions return ``False`` and leave a
``notice``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from django.conf import settings

from core.live import aggregates
from core.live.backends import Backend
from core.live.collection import LiveCollection
from core.live.errors import BackendError
from core.live.events import ChangeEvent, EventType
from core.live.session import Session
from core.live.subscriptions import Subscription, SubscriptionManager
from core.realtime.filters import RowFilter, match_all

logger = logging.getLogger(__name__)

IDLE = 'idle'
LOADING = 'loading'
READY = 'ready'
ERROR = 'error'

Listener = Callable[['Screen'], None]


@dataclass
class ScreenState:
    status: str = IDLE
    error: Optional[str] = None
    notice: Optional[str] = None


class Screen:
    table: str = ''
    order_by: str = 'created_at'
    limit: Optional[int] = None

    def __init__(self, session: Session, backend: Backend, manager: SubscriptionManager):
        self.session = session
        self.backend = backend
        self.manager = manager
        self.collection = LiveCollection(self.order_by, predicate=self.accepts, limit=self.limit)
        self.state = ScreenState()
        self.subscription: Optional[Subscription] = None
        self._badges: dict = self.compute_badges([])
        self._listeners: list[Listener] = []
        self._generation = 0
        self._mounted = False
        self._buffer: Optional[list[ChangeEvent]] = None

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.table} {self.state.status} rows={len(self.collection)}>'

    # -- per-screen configuration ------------------------------------------

    def filters(self) -> list[RowFilter]:
        """Filters for the snapshot fetch; rows must match all of them."""
        return []

    def feed_filter(self) -> Optional[RowFilter]:
        """The single server-side filter for the subscription."""
        filters = self.filters()
        return filters[0] if filters else None

    def accepts(self, row: dict) -> bool:
        return match_all(self.filters(), row)

    def compute_badges(self, rows: list[dict]) -> dict:
        return {'total': len(rows)}

    async def fetch(self) -> list[dict]:
        return await self.backend.fetch(self.table, filters=self.filters(), order_by=self.order_by,
                                        limit=self.limit)

    # -- reading ------------------------------------------------------------

    @property
    def rows(self) -> list[dict]:
        return self.collection.rows

    @property
    def badges(self) -> dict:
        return dict(self._badges)

    @property
    def mounted(self) -> bool:
        return self._mounted

    def listen(self, fn: Listener) -> Callable[[], None]:
        """Register a re-render callback; returns a function that removes it."""
        self._listeners.append(fn)

        def remove():
            if fn in self._listeners:
                self._listeners.remove(fn)
        return remove

    # -- lifecycle ----------------------------------------------------------

    async def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._generation += 1
        generation = self._generation
        self._buffer = []
        self.subscription = await self.manager.subscribe(
            self.table, self._on_event, row_filter=self.feed_filter(), on_reconnect=self.refresh,
            gate=self._admit,
        )
        if generation != self._generation:
            # unmounted while subscribing
            await self.subscription.close()
            self.subscription = None
            return
        await self._load(generation)

    async def refresh(self) -> None:
        """Replace the collection with a fresh snapshot."""
        if not self._mounted:
            return
        self._generation += 1
        if self._buffer is None:
            self._buffer = []
        await self._load(self._generation)

    async def unmount(self) -> None:
        self._generation += 1
        self._mounted = False
        self._buffer = None
        sub, self.subscription = self.subscription, None
        if sub is not None:
            await sub.close()
        self.state.status = IDLE

    # -- internals ----------------------------------------------------------

    async def _load(self, generation: int) -> None:
        self.state.status = LOADING
        self.state.error = None
        self._notify()
        try:
            rows = await self.fetch()
        except BackendError as e:
            if generation != self._generation:
                return
            logger.warning('%s fetch failed: %s', self.table, e.message)
            self._buffer = None
            self.state.status = ERROR
            self.state.error = e.message
            self._notify()
            return
        if generation != self._generation:
            logger.debug('%s discarded a stale snapshot', self.table)
            return
        self.collection.reset(rows)
        buffered, self._buffer = self._buffer or [], None
        for event in buffered:
            self.collection.apply(event)
        self.state.status = READY
        self._changed()

    async def _admit(self, event: ChangeEvent) -> Optional[ChangeEvent]:
        """Keep feed events to rows the session may see.

        Deletes pass, since they only remove rows already held.  An update
        that takes a held row out of sight becomes its removal.
        """
        if event.event is EventType.DELETE:
            return event
        try:
            visible = await self.backend.can_see(self.table, event.new_row)
        except BackendError as e:
            logger.warning('%s visibility check failed: %s', self.table, e.message)
            visible = False
        if visible:
            return event
        if event.event is EventType.UPDATE and event.row_id in self.collection:
            return ChangeEvent.delete(self.table, event.new_row)
        return None

    def _on_event(self, event: ChangeEvent) -> None:
        if not self._mounted or self.state.status == ERROR:
            # after a failed load only a successful refresh repopulates
            return
        if self._buffer is not None:
            self._buffer.append(event)
            return
        if self.collection.apply(event):
            self._changed()

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    def _changed(self) -> None:
        self._badges = self.compute_badges(self.collection.rows)
        self._notify()

    def _notify(self) -> None:
        for fn in list(self._listeners):
            try:
                fn(self)
            except Exception:
                logger.exception('%s listener failed', type(self).__name__)

    def _fail(self, generation: int, error: BackendError) -> bool:
        if self._is_current(generation):
            self.state.notice = error.message
            self._notify()
        return False


class AlertsScreen(Screen):
    """Alert list for admins and doctors; the nurse dashboard sets ``pending_only``."""
    table = 'alerts'

    def __init__(self, session, backend, manager, *, pending_only: bool = False, patient_id=None):
        self.pending_only = pending_only
        self.patient_id = patient_id
        self._in_flight: set[str] = set()
        super().__init__(session, backend, manager)

    def filters(self):
        filters = []
        if self.patient_id:
            filters.append(RowFilter.eq('patient_id', self.patient_id))
        if self.pending_only:
            filters.append(RowFilter('is_acknowledged', 'is', False))
        return filters

    def feed_filter(self):
        # acknowledgements must still reach a pending-only screen to remove rows
        if self.patient_id:
            return RowFilter.eq('patient_id', self.patient_id)
        return None

    def compute_badges(self, rows):
        return aggregates.alert_badges(rows)

    async def acknowledge(self, alert_id) -> bool:
        """Acknowledge once.  Returns ``False`` if already acknowledged or in flight."""
        alert_id = str(alert_id)
        held = self.collection.get(alert_id)
        if alert_id in self._in_flight or (held is not None and held.get('is_acknowledged')):
            return False
        self._in_flight.add(alert_id)
        generation = self._generation
        try:
            row, changed = await self.backend.acknowledge_alert(alert_id)
        except BackendError as e:
            return self._fail(generation, e)
        finally:
            self._in_flight.discard(alert_id)
        if not self._is_current(generation):
            return False
        if self.collection.apply(ChangeEvent.update(self.table, row)):
            self._changed()
        return changed


class MessagesScreen(Screen):
    """One conversation between the session user and ``peer_id``.

    Rows are held newest first; :attr:`transcript` gives them oldest
    first for display.
    """
    table = 'messages'

    def __init__(self, session, backend, manager, *, peer_id):
        self.peer_id = str(peer_id)
        super().__init__(session, backend, manager)

    def feed_filter(self):
        return RowFilter.eq('receiver_id', self.session.user_id)

    def accepts(self, row):
        pair = {str(row.get('sender_id')), str(row.get('receiver_id'))}
        return pair == {str(self.session.user_id), self.peer_id}

    async def fetch(self):
        me, peer = self.session.user_id, self.peer_id
        sent = await self.backend.fetch(self.table, filters=[
            RowFilter.eq('sender_id', me), RowFilter.eq('receiver_id', peer)])
        received = await self.backend.fetch(self.table, filters=[
            RowFilter.eq('sender_id', peer), RowFilter.eq('receiver_id', me)])
        return sent + received

    def compute_badges(self, rows):
        return aggregates.message_badges(rows, self.session.user_id)

    @property
    def transcript(self) -> list[dict]:
        return list(reversed(self.collection))

    async def send(self, content: str) -> bool:
        if not (content or '').strip():
            self.state.notice = 'message cannot be empty'
            self._notify()
            return False
        generation = self._generation
        try:
            row = await self.backend.send_message(self.peer_id, content)
        except BackendError as e:
            return self._fail(generation, e)
        if not self._is_current(generation):
            return False
        # own messages are not on this screen's feed filter
        if self.collection.apply(ChangeEvent.insert(self.table, row)):
            self._changed()
        return True

    async def mark_read(self) -> bool:
        unread = [r for r in self.collection
                  if str(r.get('sender_id')) == self.peer_id and not r.get('is_read')]
        if not unread:
            return False
        generation = self._generation
        try:
            await self.backend.mark_read(self.peer_id)
        except BackendError as e:
            return self._fail(generation, e)
        if not self._is_current(generation):
            return False
        changed = False
        for row in unread:
            changed = self.collection.apply(ChangeEvent.update(self.table, {**row, 'is_read': True})) or changed
        if changed:
            self._changed()
        return True


class VitalsScreen(Screen):
    table = 'vitals'
    order_by = 'recorded_at'

    def __init__(self, session, backend, manager, *, patient_id, limit: Optional[int] = None):
        self.patient_id = str(patient_id)
        self.limit = limit or settings.VITALS_WINDOW
        super().__init__(session, backend, manager)

    def filters(self):
        return [RowFilter.eq('patient_id', self.patient_id)]

    def compute_badges(self, rows):
        return aggregates.vital_badges(rows)

    @property
    def latest(self) -> Optional[dict]:
        rows = self.collection.rows
        return rows[0] if rows else None


class PrescriptionsScreen(Screen):
    """Pharmacist queue."""
    table = 'prescriptions'

    def __init__(self, session, backend, manager):
        self._in_flight: set[str] = set()
        super().__init__(session, backend, manager)

    def compute_badges(self, rows):
        return aggregates.prescription_badges(rows)

    async def dispense(self, prescription_id) -> bool:
        prescription_id = str(prescription_id)
        held = self.collection.get(prescription_id)
        if prescription_id in self._in_flight or (held is not None and held.get('status') != 'active'):
            return False
        self._in_flight.add(prescription_id)
        generation = self._generation
        try:
            row = await self.backend.dispense(prescription_id)
        except BackendError as e:
            return self._fail(generation, e)
        finally:
            self._in_flight.discard(prescription_id)
        if not self._is_current(generation):
            return False
        if self.collection.apply(ChangeEvent.update(self.table, row)):
            self._changed()
        return True


class AppointmentsScreen(Screen):
    table = 'appointments'
    order_by = 'scheduled_at'

    def __init__(self, session, backend, manager, *, patient_id=None, doctor_id=None):
        self.patient_id = patient_id
        self.doctor_id = doctor_id
        super().__init__(session, backend, manager)

    def filters(self):
        filters = []
        if self.patient_id:
            filters.append(RowFilter.eq('patient_id', self.patient_id))
        if self.doctor_id:
            filters.append(RowFilter.eq('doctor_id', self.doctor_id))
        return filters

    def compute_badges(self, rows):
        return aggregates.appointment_badges(rows)
