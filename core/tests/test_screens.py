import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.live.screens import (
    ERROR, IDLE, READY, AlertsScreen, AppointmentsScreen, MessagesScreen, PrescriptionsScreen, VitalsScreen,
)

pytestmark = pytest.mark.asyncio


def _vital(live, minutes, patient_id='p-1', is_alert=False):
    return {'id': live.row_id(), 'patient_id': patient_id, 'heart_rate': 80, 'is_alert': is_alert,
            'recorded_at': live.stamp(minutes), 'created_at': live.stamp(minutes)}


async def test_mount_loads_snapshot_newest_first(nurse_session, manager, live):
    rows = [live.alert_row(1), live.alert_row(5, 'critical'), live.alert_row(3, acknowledged=True)]
    backend = live.Backend(nurse_session, {'alerts': rows})
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()
    assert screen.state.status == READY
    assert [r['id'] for r in screen.rows] == [rows[1]['id'], rows[2]['id'], rows[0]['id']]
    assert screen.badges == {'total': 3, 'unacknowledged': 2, 'critical': 1}
    await screen.unmount()


async def test_critical_alert_lifecycle(nurse_session, manager, transport, live):
    backend = live.Backend(nurse_session, {'alerts': []})
    screen = AlertsScreen(nurse_session, backend, manager)
    renders = []
    screen.listen(lambda s: renders.append(s.badges))
    await screen.mount()

    alert = live.alert_row(10, 'critical')
    backend.tables['alerts'].append(alert)
    transport.push(live.feed('insert', 'alerts', alert))
    await live.settle(lambda: screen.badges['critical'] == 1)

    assert await screen.acknowledge(alert['id']) is True
    assert screen.badges == {'total': 1, 'unacknowledged': 0, 'critical': 0}
    assert screen.rows[0]['acknowledged_by'] == nurse_session.user_id

    # the echo from the feed changes nothing
    count = len(renders)
    transport.push(live.feed('update', 'alerts', dict(backend.tables['alerts'][0])))
    await live.settle()
    assert len(renders) == count
    await screen.unmount()


async def test_concurrent_acknowledge_applies_once(nurse_session, manager, live):
    alert = live.alert_row(2, 'high')
    backend = live.Backend(nurse_session, {'alerts': [alert]})
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()

    results = await asyncio.gather(screen.acknowledge(alert['id']), screen.acknowledge(alert['id']))
    assert sorted(results) == [False, True]
    assert [c for c in backend.calls if c[0] == 'acknowledge'] == [('acknowledge', alert['id'])]
    # already acknowledged locally
    assert await screen.acknowledge(alert['id']) is False
    await screen.unmount()


async def test_two_screens_race_on_one_alert(nurse_session, manager, transport, live):
    alert = live.alert_row(2, 'critical')
    backend = live.Backend(nurse_session, {'alerts': [alert]})
    first = AlertsScreen(nurse_session, backend, manager)
    second = AlertsScreen(nurse_session, backend, manager)
    await first.mount()
    await second.mount()

    results = await asyncio.gather(first.acknowledge(alert['id']), second.acknowledge(alert['id']))
    assert sorted(results) == [False, True]
    for screen in (first, second):
        assert screen.badges['unacknowledged'] == 0
    await manager.close_all()


async def test_pending_only_drops_acknowledged_rows(nurse_session, manager, transport, live):
    pending = [live.alert_row(1), live.alert_row(2)]
    done = live.alert_row(3, acknowledged=True)
    backend = live.Backend(nurse_session, {'alerts': pending + [done]})
    screen = AlertsScreen(nurse_session, backend, manager, pending_only=True)
    await screen.mount()
    assert len(screen.rows) == 2

    transport.push(live.feed('update', 'alerts', {**pending[0], 'is_acknowledged': True}, pending[0]))
    await live.settle(lambda: len(screen.rows) == 1)
    assert screen.badges['total'] == 1
    await screen.unmount()


async def test_unread_count_drops_when_message_read(patient_session, manager, transport, live):
    me, peer = patient_session.user_id, 'peer-nurse'
    msgs = [live.message_row(peer, me, f'm{i}', minutes=i) for i in range(3)]
    stranger = live.message_row('someone', me, 'not this thread', minutes=9)
    backend = live.Backend(patient_session, {'messages': msgs + [stranger]})
    screen = MessagesScreen(patient_session, backend, manager, peer_id=peer)
    await screen.mount()
    assert screen.badges == {'total': 3, 'unread': 3}
    assert [m['content'] for m in screen.transcript] == ['m0', 'm1', 'm2']

    transport.push(live.feed('update', 'messages', {**msgs[1], 'is_read': True}, msgs[1]))
    await live.settle(lambda: screen.badges['unread'] == 2)

    # a message from another conversation never shows up here
    transport.push(live.feed('insert', 'messages', live.message_row('someone', me, 'hi')))
    await live.settle()
    assert screen.badges['total'] == 3
    await screen.unmount()


async def test_send_and_mark_read(patient_session, manager, live):
    me, peer = patient_session.user_id, 'peer-nurse'
    msgs = [live.message_row(peer, me, 'how are you', minutes=1)]
    backend = live.Backend(patient_session, {'messages': msgs})
    screen = MessagesScreen(patient_session, backend, manager, peer_id=peer)
    await screen.mount()

    assert await screen.send('   ') is False
    assert screen.state.notice == 'message cannot be empty'
    assert await screen.send('fine, thanks') is True
    assert screen.transcript[-1]['content'] == 'fine, thanks'

    assert await screen.mark_read() is True
    assert screen.badges['unread'] == 0
    assert ('mark_read', peer) in backend.calls
    # nothing left to mark
    assert await screen.mark_read() is False
    await screen.unmount()


async def test_events_during_fetch_are_replayed(nurse_session, manager, transport, live):
    old = live.alert_row(1)
    backend = live.Backend(nurse_session, {'alerts': [old]})
    backend.gate = asyncio.Event()
    screen = AlertsScreen(nurse_session, backend, manager)
    mounting = asyncio.create_task(screen.mount())
    await live.settle(lambda: ('fetch', 'alerts') in backend.calls)

    fresh = live.alert_row(20, 'critical')
    transport.push(live.feed('insert', 'alerts', fresh))
    transport.push(live.feed('update', 'alerts', {**old, 'is_acknowledged': True}, old))
    await live.settle()
    assert screen.rows == []

    backend.gate.set()
    await mounting
    assert screen.state.status == READY
    assert [r['id'] for r in screen.rows] == [fresh['id'], old['id']]
    assert screen.rows[1]['is_acknowledged'] is True
    await screen.unmount()


async def test_late_snapshot_after_unmount_is_discarded(nurse_session, manager, transport, live):
    backend = live.Backend(nurse_session, {'alerts': [live.alert_row(1)]})
    backend.gate = asyncio.Event()
    screen = AlertsScreen(nurse_session, backend, manager)
    renders = []
    screen.listen(lambda s: renders.append(s.state.status))
    mounting = asyncio.create_task(screen.mount())
    await live.settle(lambda: ('fetch', 'alerts') in backend.calls)

    await screen.unmount()
    assert transport.live == []
    count = len(renders)
    backend.gate.set()
    await mounting
    assert screen.rows == []
    assert screen.state.status == IDLE
    assert len(renders) == count


async def test_write_finishing_after_unmount_is_not_applied(nurse_session, manager, live):
    alert = live.alert_row(1)
    backend = live.Backend(nurse_session, {'alerts': [alert]})
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()

    pending = asyncio.create_task(screen.acknowledge(alert['id']))
    await screen.unmount()
    assert await pending is False
    assert screen.collection.get(alert['id'])['is_acknowledged'] is False


async def test_fetch_failure_sets_error_state(nurse_session, manager, transport, live):
    backend = live.Backend(nurse_session, {'alerts': [live.alert_row(1)]})
    backend.fail_with = 'backend unavailable'
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()
    assert screen.state.status == ERROR
    assert screen.state.error == 'backend unavailable'

    # nothing is merged into a screen that never loaded
    transport.push(live.feed('insert', 'alerts', live.alert_row(5, 'critical')))
    await live.settle()
    assert screen.rows == []
    assert screen.badges == {'total': 0, 'unacknowledged': 0, 'critical': 0}

    backend.fail_with = None
    await screen.refresh()
    assert screen.state.status == READY
    assert len(screen.rows) == 1
    await screen.unmount()


async def test_reconnect_refetches_snapshot(nurse_session, manager, transport, live):
    backend = live.Backend(nurse_session, {'alerts': [live.alert_row(1)]})
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()

    # committed while the feed was down, never delivered as an event
    missed = live.alert_row(30, 'critical')
    backend.tables['alerts'].append(missed)
    transport.drop()
    await live.settle(lambda: missed['id'] in screen.collection)
    assert screen.badges['critical'] == 1
    assert screen.subscription.reconnects == 1
    await screen.unmount()


async def test_vitals_keep_latest_readings(nurse_session, manager, transport, live):
    rows = [_vital(live, m) for m in range(5)] + [_vital(live, 9, patient_id='p-2')]
    backend = live.Backend(nurse_session, {'vitals': rows})
    screen = VitalsScreen(nurse_session, backend, manager, patient_id='p-1', limit=3)
    await screen.mount()
    assert [r['id'] for r in screen.rows] == [rows[4]['id'], rows[3]['id'], rows[2]['id']]

    newest = _vital(live, 40, is_alert=True)
    transport.push(live.feed('insert', 'vitals', newest))
    await live.settle(lambda: screen.latest['id'] == newest['id'])
    assert len(screen.rows) == 3
    assert screen.badges == {'readings': 3, 'flagged': 1}
    await screen.unmount()


async def test_dispense_guard(nurse_session, manager, live):
    rx = {'id': live.row_id(), 'status': 'active', 'patient_id': 'p-1', 'created_at': live.stamp(1)}
    backend = live.Backend(nurse_session, {'prescriptions': [rx]})
    screen = PrescriptionsScreen(nurse_session, backend, manager)
    await screen.mount()
    assert screen.badges == {'total': 1, 'pending': 1, 'dispensed': 0}

    results = await asyncio.gather(screen.dispense(rx['id']), screen.dispense(rx['id']))
    assert sorted(results) == [False, True]
    assert screen.badges == {'total': 1, 'pending': 0, 'dispensed': 1}
    assert await screen.dispense(rx['id']) is False
    await screen.unmount()


async def test_failed_action_leaves_notice(nurse_session, manager, live):
    backend = live.Backend(nurse_session, {'alerts': []})
    screen = AlertsScreen(nurse_session, backend, manager)
    await screen.mount()
    assert await screen.acknowledge('00000000-0000-4000-8000-999999999999') is False
    assert screen.state.notice == 'not found'
    await screen.unmount()


async def test_listener_removal_and_failure(nurse_session, manager, transport, live):
    backend = live.Backend(nurse_session, {'alerts': []})
    screen = AlertsScreen(nurse_session, backend, manager)
    seen = []

    def broken(s):
        raise RuntimeError('render')

    screen.listen(broken)
    remove = screen.listen(lambda s: seen.append(s.badges['total']))
    await screen.mount()
    remove()
    transport.push(live.feed('insert', 'alerts', live.alert_row(1)))
    await live.settle(lambda: len(screen.rows) == 1)
    assert seen and seen[-1] == 0
    await screen.unmount()


async def test_doctor_appointments_track_cancellations(nurse_session, manager, transport, live):
    soon = datetime.now(timezone.utc) + timedelta(days=1)

    def booking(days, doctor_id='d-1', status='confirmed'):
        return {'id': live.row_id(), 'doctor_id': doctor_id, 'patient_id': 'p-1', 'status': status,
                'scheduled_at': (soon + timedelta(days=days)).isoformat(), 'created_at': live.stamp(days)}

    rows = [booking(0), booking(2, status='pending'), booking(1, doctor_id='d-2')]
    backend = live.Backend(nurse_session, {'appointments': rows})
    screen = AppointmentsScreen(nurse_session, backend, manager, doctor_id='d-1')
    await screen.mount()
    assert [r['id'] for r in screen.rows] == [rows[1]['id'], rows[0]['id']]
    assert screen.badges == {'total': 2, 'upcoming': 2, 'pending': 1}

    transport.push(live.feed('update', 'appointments', dict(rows[0], status='cancelled'), rows[0]))
    await live.settle(lambda: screen.badges['upcoming'] == 1)
    assert screen.badges['total'] == 2
    await screen.unmount()


async def test_patient_screen_only_takes_in_own_rows(patient_session, manager, transport, live):
    mine = live.alert_row(1, 'critical')
    backend = live.Backend(patient_session, {'alerts': [mine]})
    backend.hidden = lambda table, row: row.get('patient_id') != 'p-1'
    screen = AlertsScreen(patient_session, backend, manager)
    await screen.mount()

    other = live.alert_row(5, 'critical', patient_id='p-2')
    newer = live.alert_row(6)
    backend.tables['alerts'] += [other, newer]
    transport.push(live.feed('insert', 'alerts', other))
    transport.push(live.feed('insert', 'alerts', newer))
    await live.settle(lambda: newer['id'] in screen.collection)
    assert other['id'] not in screen.collection

    fresh = [r for r in await backend.fetch('alerts') if not backend.hidden('alerts', r)]
    assert screen.rows == fresh
    assert screen.badges == {'total': 2, 'unacknowledged': 2, 'critical': 1}

    # a held row reassigned out of sight is removed, not updated in place
    transport.push(live.feed('update', 'alerts', {**mine, 'patient_id': 'p-2'}, mine))
    await live.settle(lambda: mine['id'] not in screen.collection)
    assert screen.badges['critical'] == 0
    await screen.unmount()
