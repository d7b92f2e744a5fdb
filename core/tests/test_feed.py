"""
Change feed: model signals, the websocket consumer, and live screens
driven end to end through the channel layer.
"""
import json

import pytest
import requests
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.db import transaction
from rest_framework_simplejwt.tokens import AccessToken

from core.live.backends import HttpBackend, OrmBackend
from core.live.errors import BackendError
from core.live.screens import READY, AlertsScreen, MessagesScreen
from core.live.session import Session
from core.live.subscriptions import Backoff, ChannelLayerTransport, SubscriptionManager
from core.models import Alert, Message
from core.roles import Role
from core.serializers.rows import serialize_row
from core.services import changefeed


class RecordingLayer:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def group_send(self, group, message):
        if self.fail:
            raise OSError('layer down')
        self.sent.append((group, message))


@pytest.fixture
def recorded(monkeypatch):
    layer = RecordingLayer()
    monkeypatch.setattr(changefeed, 'get_channel_layer', lambda: layer)
    return layer


@pytest.fixture
def fresh_layer():
    layer = get_channel_layer()
    async_to_sync(layer.flush)()
    yield layer
    async_to_sync(layer.flush)()


# -- publishing ----------------------------------------------------------------

@pytest.mark.django_db
def test_insert_update_delete_are_published(patient, nurse, recorded, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        alert = Alert.objects.create(patient=patient, alert_type='heart_rate', severity='critical',
                                     message='Heart rate critical: 140')
    group, insert = recorded.sent[-1]
    assert group == 'feed.alerts'
    assert insert['type'] == 'feed.change'
    assert insert['event'] == 'insert'
    assert insert['new_row'] == serialize_row(alert)
    assert insert['old_row'] == {}

    with django_capture_on_commit_callbacks(execute=True):
        alert.is_acknowledged = True
        alert.acknowledged_by = nurse
        alert.save()
    _, update = recorded.sent[-1]
    assert update['event'] == 'update'
    assert update['old_row']['is_acknowledged'] is False
    assert update['new_row']['is_acknowledged'] is True
    assert update['new_row']['acknowledged_by'] == str(nurse.id)

    alert_id = str(alert.id)
    with django_capture_on_commit_callbacks(execute=True):
        alert.delete()
    _, delete = recorded.sent[-1]
    assert delete['event'] == 'delete'
    assert delete['old_row']['id'] == alert_id
    assert delete['new_row'] == {}


@pytest.mark.django_db
def test_each_marked_message_is_its_own_event(patient, nurse, recorded, django_capture_on_commit_callbacks):
    from core.services.messages import mark_conversation_read

    for text in ('one', 'two', 'three'):
        Message.objects.create(sender=patient.user, receiver=nurse, content=text)
    with django_capture_on_commit_callbacks(execute=True):
        assert mark_conversation_read(nurse, patient.user.id) == 3
    updates = [m for g, m in recorded.sent if g == 'feed.messages' and m['event'] == 'update']
    assert len(updates) == 3
    assert all(m['new_row']['is_read'] for m in updates)


@pytest.mark.django_db
def test_doctor_change_review_is_published(patient, admin, doctor, recorded, django_capture_on_commit_callbacks):
    from core.services import doctors

    with django_capture_on_commit_callbacks(execute=True):
        req = doctors.request_change(patient.user, requested_doctor_id=doctor.id, reason='closer to home')
    group, insert = recorded.sent[-1]
    assert group == 'feed.doctor_change_requests'
    assert insert['event'] == 'insert'
    assert insert['new_row']['status'] == 'pending'

    with django_capture_on_commit_callbacks(execute=True):
        doctors.review(admin, req.id, approve=True)
    updates = {g: m for g, m in recorded.sent if m['event'] == 'update'}
    assert updates['feed.doctor_change_requests']['old_row']['status'] == 'pending'
    assert updates['feed.doctor_change_requests']['new_row']['status'] == 'approved'
    assert updates['feed.patients']['new_row']['assigned_doctor_id'] == str(doctor.id)


@pytest.mark.django_db
def test_rolled_back_write_is_not_published(patient, recorded, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(RuntimeError):
            with transaction.atomic():
                Alert.objects.create(patient=patient, alert_type='x', severity='low', message='m')
                raise RuntimeError('abort')
    assert recorded.sent == []


@pytest.mark.django_db
def test_broken_layer_does_not_fail_the_write(patient, monkeypatch, django_capture_on_commit_callbacks):
    monkeypatch.setattr(changefeed, 'get_channel_layer', lambda: RecordingLayer(fail=True))
    with django_capture_on_commit_callbacks(execute=True):
        Alert.objects.create(patient=patient, alert_type='x', severity='low', message='m')
    assert Alert.objects.count() == 1


def test_unknown_event_is_refused():
    with pytest.raises(ValueError):
        changefeed.build_event('upsert', 'alerts', {}, {})


# -- websocket consumer ----------------------------------------------------------

def _communicator(user=None):
    from carelink.asgi import application

    path = '/ws/realtime/'
    if user is not None:
        path += f'?token={AccessToken.for_user(user)}'
    return WebsocketCommunicator(application, path)


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_socket_without_token_is_closed(fresh_layer):
    ws = _communicator()
    connected, code = await ws.connect()
    assert connected is False
    assert code == 4001


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_socket_protocol_errors(nurse, fresh_layer):
    ws = _communicator(nurse)
    connected, _ = await ws.connect()
    assert connected
    await ws.send_to(text_data='{')
    assert (await ws.receive_json_from())['code'] == 4000
    await ws.send_json_to({'type': 'subscribe', 'channel': 'c', 'table': 'secrets'})
    assert (await ws.receive_json_from())['code'] == 4005
    await ws.send_json_to({'type': 'subscribe', 'channel': 'c', 'table': 'alerts', 'filter': 'a=like.b'})
    assert (await ws.receive_json_from())['code'] == 4007
    await ws.send_json_to({'type': 'unsubscribe', 'channel': 'nope'})
    assert (await ws.receive_json_from())['code'] == 4008
    await ws.send_json_to({'type': 'ping'})
    assert await ws.receive_json_from() == {'type': 'pong'}
    await ws.disconnect()


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_socket_forwards_filtered_changes(nurse, patient, fresh_layer):
    ws = _communicator(nurse)
    await ws.connect()
    await ws.send_json_to({'type': 'subscribe', 'channel': 'pending', 'table': 'alerts',
                           'filter': 'is_acknowledged=is.false'})
    assert (await ws.receive_json_from())['type'] == 'subscribed'

    alert = await database_sync_to_async(Alert.objects.create)(
        patient=patient, alert_type='heart_rate', severity='critical', message='m')
    frame = await ws.receive_json_from(timeout=2)
    assert frame['type'] == 'change'
    assert frame['channel'] == 'pending'
    assert frame['event'] == 'insert'
    assert frame['new_row']['id'] == str(alert.id)

    # the update leaves the filter but is still delivered
    alert.is_acknowledged = True
    await database_sync_to_async(alert.save)()
    frame = await ws.receive_json_from(timeout=2)
    assert frame['event'] == 'update'
    assert frame['new_row']['is_acknowledged'] is True

    await ws.send_json_to({'type': 'unsubscribe', 'channel': 'pending'})
    assert (await ws.receive_json_from())['type'] == 'unsubscribed'
    await database_sync_to_async(Alert.objects.create)(
        patient=patient, alert_type='heart_rate', severity='low', message='m')
    assert await ws.receive_nothing(timeout=0.3)
    await ws.disconnect()


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_patient_socket_only_sees_own_rows(patient, make_user, fresh_layer):
    from core.models import Patient

    other = await database_sync_to_async(
        lambda: Patient.objects.create(user=make_user(Role.PATIENT)))()
    ws = _communicator(patient.user)
    await ws.connect()
    await ws.send_json_to({'type': 'subscribe', 'channel': 'mine', 'table': 'alerts'})
    await ws.receive_json_from()

    await database_sync_to_async(Alert.objects.create)(
        patient=other, alert_type='temperature', severity='medium', message='not yours')
    mine = await database_sync_to_async(Alert.objects.create)(
        patient=patient, alert_type='temperature', severity='medium', message='yours')
    frame = await ws.receive_json_from(timeout=2)
    assert frame['new_row']['id'] == str(mine.id)
    assert await ws.receive_nothing(timeout=0.3)
    await ws.disconnect()


# -- live screens over the ORM and the channel layer ----------------------------

@pytest.fixture
def layer_manager(fresh_layer):
    return SubscriptionManager(ChannelLayerTransport(fresh_layer),
                               backoff=Backoff(base=0.01, maximum=0.05, jitter=0))


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_alerts_screen_end_to_end(nurse, patient, layer_manager, live):
    session = Session.for_user(nurse)
    screen = AlertsScreen(session, OrmBackend(session), layer_manager, pending_only=True)
    await screen.mount()
    assert screen.state.status == READY
    assert screen.rows == []

    alert = await database_sync_to_async(Alert.objects.create)(
        patient=patient, alert_type='heart_rate', severity='critical', message='Heart rate critical: 140')
    await live.settle(lambda: screen.badges['critical'] == 1)

    assert await screen.acknowledge(alert.id) is True
    assert screen.rows == []
    # the feed echo of our own write is a no-op
    await live.settle()
    assert screen.badges == {'total': 0, 'unacknowledged': 0, 'critical': 0}
    await screen.unmount()
    assert layer_manager.open_subscriptions == []


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_patient_alerts_screen_matches_fresh_fetch(patient, make_user, layer_manager, live):
    from core.models import Patient

    other = await database_sync_to_async(
        lambda: Patient.objects.create(user=make_user(Role.PATIENT)))()
    me = Session.for_user(patient.user)
    backend = OrmBackend(me)
    screen = AlertsScreen(me, backend, layer_manager)
    await screen.mount()

    await database_sync_to_async(Alert.objects.create)(
        patient=other, alert_type='heart_rate', severity='critical', message='not yours')
    mine = await database_sync_to_async(Alert.objects.create)(
        patient=patient, alert_type='temperature', severity='medium', message='yours')
    await live.settle(lambda: str(mine.id) in screen.collection)

    fresh = await backend.fetch('alerts')
    assert screen.rows == fresh
    assert screen.badges == {'total': 1, 'unacknowledged': 1, 'critical': 0}
    await screen.unmount()


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_messages_screen_end_to_end(nurse, patient, layer_manager, live):
    me = Session.for_user(patient.user)
    for text in ('a', 'b', 'c'):
        await database_sync_to_async(Message.objects.create)(sender=nurse, receiver=patient.user, content=text)
    screen = MessagesScreen(me, OrmBackend(me), layer_manager, peer_id=nurse.id)
    await screen.mount()
    assert screen.badges == {'total': 3, 'unread': 3}

    await database_sync_to_async(Message.objects.create)(sender=nurse, receiver=patient.user, content='d')
    await live.settle(lambda: screen.badges['unread'] == 4)
    assert screen.transcript[-1]['content'] == 'd'

    assert await screen.mark_read() is True
    assert screen.badges['unread'] == 0
    assert await screen.send('thanks') is True
    assert screen.badges['total'] == 5
    await screen.unmount()


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
async def test_orm_backend_maps_service_errors(nurse):
    backend = OrmBackend(Session.for_user(nurse))
    with pytest.raises(BackendError) as exc:
        await backend.dispense('00000000-0000-4000-8000-000000000001')
    assert exc.value.status == 403
    assert exc.value.code == 'forbidden'

    gone = OrmBackend(Session(user_id='00000000-0000-4000-8000-00000000dead', role=Role.NURSE))
    with pytest.raises(BackendError) as exc:
        await gone.fetch('alerts')
    assert exc.value.status == 401


class StubHttp:
    """Stands in for ``requests.Session``; answers every call with ``rows``."""

    def __init__(self, rows=()):
        self.rows = list(rows)
        self.requests = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.requests.append((method, url, params, headers))
        return _ok_response({'ok': True, 'rows': self.rows})


def _ok_response(body):
    r = requests.Response()
    r.status_code = 200
    r._content = json.dumps(body).encode()
    return r


@pytest.mark.asyncio
async def test_http_backend_checks_visibility_through_rows_endpoint():
    http = StubHttp()
    session = Session(user_id='u-1', role=Role.PATIENT, access_token='tok')
    backend = HttpBackend('http://carelink.test/', session, http=http)
    assert await backend.can_see('vitals', {'id': 'v-1'}) is False

    method, url, params, headers = http.requests[0]
    assert (method, url) == ('GET', 'http://carelink.test/api/rows/vitals')
    assert ('id', 'eq.v-1') in params
    assert ('limit', '1') in params
    assert headers == {'Authorization': 'Bearer tok'}

    http.rows = [{'id': 'v-1'}]
    assert await backend.can_see('vitals', {'id': 'v-1'}) is True
