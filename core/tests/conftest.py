import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from core.live.backends import Backend
from core.live.errors import BackendError
from core.live.session import Session
from core.live.subscriptions import Backoff, Connection, SubscriptionManager, Transport
from core.realtime.filters import match_all
from core.roles import Role

PASSWORD = 'Carelink-Test-2024'


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()
    yield
    cache.clear()


# -- database fixtures --------------------------------------------------------

@pytest.fixture
def make_user(db):
    from core.models import User

    seq = itertools.count(1)

    def make(role=Role.PATIENT, **extra):
        n = next(seq)
        extra.setdefault('email', f'{role}{n}@carelink.test')
        extra.setdefault('full_name', f'{role.title()} {n}')
        return User.objects.create_user(password=PASSWORD, role=role, **extra)
    return make


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def nurse(make_user):
    return make_user(Role.NURSE)


@pytest.fixture
def doctor(make_user):
    return make_user(Role.HOSPITAL_DOCTOR)


@pytest.fixture
def pharmacist(make_user):
    return make_user(Role.PHARMACIST)


@pytest.fixture
def patient(make_user):
    from core.models import Patient

    user = make_user(Role.PATIENT)
    return Patient.objects.create(user=user, room_number='101')


@pytest.fixture
def client_for():
    def make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return make


# -- live view fakes -----------------------------------------------------------

class FakeConnection(Connection):
    def __init__(self, transport):
        self.transport = transport
        self.queue = asyncio.Queue()
        self.closed = False

    async def receive(self):
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeTransport(Transport):
    """In-memory transport: ``push`` delivers to every open connection."""

    def __init__(self, failures=0):
        self.connections = []
        self.opened = 0
        self.failures = failures

    async def open(self, table, row_filter=None):
        self.opened += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError('refused')
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn

    @property
    def live(self):
        return [c for c in self.connections if not c.closed]

    def push(self, payload):
        for conn in self.live:
            conn.queue.put_nowait(payload)

    def drop(self):
        for conn in self.live:
            conn.queue.put_nowait(ConnectionError('dropped'))


def _now():
    return datetime.now(timezone.utc)


class FakeBackend(Backend):
    """Holds tables as lists of row dicts and applies writes to them."""

    def __init__(self, session, tables=None):
        self.session = session
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.calls = []
        self.fail_with = None
        self.gate = None
        # predicate over (table, row) for rows the session may not see
        self.hidden = None

    async def fetch(self, table, *, filters=(), order_by='created_at', limit=None):
        self.calls.append(('fetch', table))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with:
            raise BackendError(self.fail_with, status=503)
        rows = [dict(r) for r in self.tables.get(table, []) if match_all(filters, r)]
        rows.sort(key=lambda r: r.get(order_by) or '', reverse=True)
        return rows[:limit] if limit else rows

    async def can_see(self, table, row):
        return self.hidden is None or not self.hidden(table, row)

    def _find(self, table, row_id):
        for row in self.tables.get(table, []):
            if row['id'] == str(row_id):
                return row
        raise BackendError('not found', status=404)

    async def acknowledge_alert(self, alert_id):
        self.calls.append(('acknowledge', str(alert_id)))
        await asyncio.sleep(0)
        row = self._find('alerts', alert_id)
        if row['is_acknowledged']:
            return dict(row), False
        row.update(is_acknowledged=True, acknowledged_by=self.session.user_id)
        return dict(row), True

    async def send_message(self, receiver_id, content):
        self.calls.append(('send', str(receiver_id)))
        row = message_row(self.session.user_id, receiver_id, content)
        self.tables.setdefault('messages', []).append(row)
        return dict(row)

    async def mark_read(self, peer_id):
        self.calls.append(('mark_read', str(peer_id)))
        count = 0
        for row in self.tables.get('messages', []):
            if row['sender_id'] == str(peer_id) and row['receiver_id'] == self.session.user_id and not row['is_read']:
                row['is_read'] = True
                count += 1
        return count

    async def dispense(self, prescription_id):
        self.calls.append(('dispense', str(prescription_id)))
        row = self._find('prescriptions', prescription_id)
        if row['status'] != 'active':
            raise BackendError('cannot dispense', status=409, code='invalid_transition')
        row.update(status='dispensed', dispensed_by=self.session.user_id)
        return dict(row)


_row_ids = itertools.count(1)
_base_time = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def _row_id():
    return f'00000000-0000-4000-8000-{next(_row_ids):012d}'


def _stamp(minutes):
    return (_base_time + timedelta(minutes=minutes)).isoformat()


def alert_row(minutes=0, severity='medium', acknowledged=False, patient_id='p-1'):
    return {
        'id': _row_id(), 'patient_id': patient_id, 'vital_id': None, 'alert_type': 'heart_rate',
        'severity': severity, 'message': 'Heart rate critical: 140', 'is_acknowledged': acknowledged,
        'acknowledged_by': None, 'created_at': _stamp(minutes),
    }


def message_row(sender_id, receiver_id, content='hello', minutes=None, is_read=False):
    stamp = _now().isoformat() if minutes is None else _stamp(minutes)
    return {
        'id': _row_id(), 'sender_id': str(sender_id), 'receiver_id': str(receiver_id),
        'content': content, 'is_read': is_read, 'created_at': stamp,
    }


def feed(event, table, new_row=None, old_row=None):
    return {'type': 'feed.change', 'event': event, 'table': table,
            'new_row': new_row or {}, 'old_row': old_row or {}, 'commit_timestamp': _now().isoformat()}


async def settle(predicate=None, timeout=2.0):
    """Yield to the loop until ``predicate()`` holds (or just a few turns)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        for _ in range(5):
            await asyncio.sleep(0)
        if predicate is None or predicate():
            return
        if loop.time() > deadline:
            raise AssertionError('condition not reached in time')
        await asyncio.sleep(0.01)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def manager(transport):
    return SubscriptionManager(transport, backoff=Backoff(base=0.01, maximum=0.05, jitter=0))


@pytest.fixture
def nurse_session():
    return Session(user_id='11111111-1111-4111-8111-111111111111', role=Role.NURSE, email='nurse@carelink.test')


@pytest.fixture
def patient_session():
    return Session(user_id='22222222-2222-4222-8222-222222222222', role=Role.PATIENT, email='pat@carelink.test')


@pytest.fixture
def live():
    """Row builders and helpers for live view tests."""
    return SimpleNamespace(
        Backend=FakeBackend,
        Transport=FakeTransport,
        alert_row=alert_row,
        message_row=message_row,
        feed=feed,
        settle=settle,
        stamp=_stamp,
        row_id=_row_id,
    )
