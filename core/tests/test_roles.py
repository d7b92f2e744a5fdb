import json

import pytest
import requests

from core.exceptions import InvalidInput
from core.models import Alert, Appointment, Patient
from core.roles import ROUTES, Role, UnknownRole, parse_role, routes_for
from core.services import insights
from core.services.dashboards import DASHBOARDS, dashboard_for


def test_parse_role():
    assert parse_role('nurse') is Role.NURSE
    assert parse_role(Role.ADMIN) is Role.ADMIN
    with pytest.raises(UnknownRole):
        parse_role('janitor')
    with pytest.raises(UnknownRole):
        parse_role(None)


def test_every_role_has_a_dashboard_and_routes():
    assert set(DASHBOARDS) == set(Role)
    for role in Role:
        board = dashboard_for(role)
        assert any(r.path == board.home for r in routes_for(role)), role
    assert dashboard_for('doctor') is dashboard_for('hospital_doctor')
    with pytest.raises(UnknownRole):
        dashboard_for('janitor')


def test_patient_routes_stay_under_patient():
    paths = [r.path for r in routes_for('patient')]
    assert paths and all(p.startswith('/patient') for p in paths)
    assert len({r.path for r in ROUTES}) == len(ROUTES)


# -- dashboard endpoint --------------------------------------------------------

@pytest.mark.django_db
def test_nurse_dashboard(nurse, patient, client_for):
    Alert.objects.create(patient=patient, alert_type='heart_rate', severity='critical', message='x')
    Alert.objects.create(patient=patient, alert_type='temperature', severity='medium', message='y',
                         is_acknowledged=True)
    r = client_for(nurse).get('/api/dashboard')
    assert r.status_code == 200
    assert r.data['home'] == '/nurse'
    assert r.data['stats'] == {'patients': 1, 'pendingAlerts': 1, 'criticalAlerts': 1}


@pytest.mark.django_db
def test_hospital_doctor_dashboard(doctor, patient, make_user, client_for):
    patient.assigned_doctor = doctor
    patient.save()
    Patient.objects.create(user=make_user(Role.PATIENT), assigned_doctor=doctor)
    legacy = make_user(Role.DOCTOR)
    r = client_for(doctor).get('/api/dashboard')
    assert r.data['home'] == '/hospital-doctor'
    assert r.data['stats']['inPatients'] == 1
    assert r.data['stats']['outPatients'] == 1
    # the plain doctor role lands on the same screen
    assert client_for(legacy).get('/api/dashboard').data['home'] == '/hospital-doctor'


@pytest.mark.django_db
def test_online_doctor_and_patient_dashboards(make_user, patient, client_for):
    from datetime import timedelta

    from django.utils import timezone

    online = make_user(Role.ONLINE_DOCTOR)
    Appointment.objects.create(patient=patient, doctor=online, scheduled_at=timezone.now() + timedelta(days=1),
                               appointment_type=Appointment.TYPE_ONLINE)
    r = client_for(online).get('/api/dashboard')
    assert r.data['home'] == '/online-doctor'
    assert r.data['stats']['scheduled'] == 1

    r = client_for(patient.user).get('/api/dashboard')
    assert r.data['home'] == '/patient'
    assert r.data['stats']['hasRecord'] is True
    assert r.data['stats']['upcomingAppointments'] == 1


@pytest.mark.django_db
def test_admin_and_pharmacist_dashboards(admin, nurse, pharmacist, client_for):
    r = client_for(admin).get('/api/dashboard')
    assert r.data['home'] == '/admin'
    assert r.data['stats']['staffByRole'] == {'admin': 1, 'nurse': 1, 'pharmacist': 1}
    r = client_for(pharmacist).get('/api/dashboard')
    assert r.data['stats'] == {'pending': 0, 'dispensed': 0}


@pytest.mark.django_db
def test_unknown_role_is_refused(make_user, client_for):
    odd = make_user('janitor')
    client = client_for(odd)
    assert client.get('/api/dashboard').status_code == 403
    assert client.get('/api/routes').status_code == 403


@pytest.mark.django_db
def test_routes_endpoint(pharmacist, client_for):
    r = client_for(pharmacist).get('/api/routes')
    assert r.status_code == 200
    assert r.data['routes'] == [{'path': '/pharmacist', 'title': 'Dashboard'}]


# -- insights ------------------------------------------------------------------

def _response(status, body):
    r = requests.Response()
    r.status_code = status
    r._content = body.encode() if isinstance(body, str) else json.dumps(body).encode()
    return r


def _completion(content):
    return {'choices': [{'message': {'content': content}}]}


@pytest.fixture
def gateway(settings, monkeypatch):
    settings.INSIGHTS_API_KEY = 'test-key'
    sent = []

    def install(response):
        def fake_post(url, json=None, headers=None, timeout=None):
            sent.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
            if isinstance(response, Exception):
                raise response
            return response
        monkeypatch.setattr(insights.requests, 'post', fake_post)
        return sent
    return install


@pytest.mark.django_db
def test_insights_parses_json_answer(nurse, client_for, gateway):
    answer = {'status': 'attention', 'summary': 'Tachycardia', 'insights': [], 'recommendation': 'Recheck'}
    sent = gateway(_response(200, _completion(json.dumps(answer))))
    r = client_for(nurse).post('/api/insights', {'type': 'vitals_analysis', 'vitals': {'heart_rate': 130}},
                               format='json')
    assert r.status_code == 200
    assert r.data == answer
    assert sent[0]['headers'] == {'Authorization': 'Bearer test-key'}
    assert sent[0]['json']['messages'][0]['content'].startswith('You are ARIA')
    assert '"heart_rate": 130' in sent[0]['json']['messages'][1]['content']


@pytest.mark.django_db
def test_insights_wraps_plain_text(nurse, client_for, gateway):
    gateway(_response(200, _completion('Drink water.')))
    r = client_for(nurse).post('/api/insights', {'type': 'general'}, format='json')
    assert r.data == {'summary': 'Drink water.', 'status': 'normal'}


@pytest.mark.django_db
@pytest.mark.parametrize('status,code', [(429, 'rate_limited'), (402, 'quota_exceeded'), (500, 'upstream_error')])
def test_insights_upstream_errors(nurse, client_for, gateway, status, code):
    gateway(_response(status, 'nope'))
    r = client_for(nurse).post('/api/insights', {'type': 'alert_analysis', 'alerts': []}, format='json')
    assert r.status_code == (502 if status == 500 else status)
    assert r.data['error']['code'] == code


@pytest.mark.django_db
def test_insights_network_failure_and_missing_key(nurse, client_for, gateway, settings):
    gateway(requests.ConnectionError('down'))
    r = client_for(nurse).post('/api/insights', {'type': 'general'}, format='json')
    assert r.status_code == 502
    settings.INSIGHTS_API_KEY = ''
    assert client_for(nurse).post('/api/insights', {'type': 'general'}, format='json').status_code == 502


def test_unknown_insight_kind():
    with pytest.raises(InvalidInput):
        insights.build_prompts('poetry')
