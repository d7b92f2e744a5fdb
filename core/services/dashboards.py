"""
Role dispatch for the home dashboard.

Each :class:`~core.roles.Role` maps to one :class:`Dashboard` holding the
frontend home path and a builder for the stats cards shown there.  The
table is the single place that decides what a role lands on; an unknown
role is an error rather than a silent fallback.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from django.db.models import Count, Q
from django.utils import timezone

from core.models import Alert, Appointment, DoctorChangeRequest, Message, Patient, Prescription, User
from core.roles import Role, UnknownRole, parse_role


@dataclass(frozen=True)
class Dashboard:
    home: str
    title: str
    stats: Callable[[User], dict]


def _admin_stats(user) -> dict:
    staff = dict(
        User.objects.filter(is_active=True).exclude(role=Role.PATIENT)
        .order_by().values_list('role').annotate(n=Count('id'))
    )
    return {
        'patients': Patient.objects.count(),
        'staff': sum(staff.values()),
        'staffByRole': staff,
        'pendingAlerts': Alert.objects.filter(is_acknowledged=False).count(),
        'criticalAlerts': Alert.objects.filter(is_acknowledged=False, severity=Alert.SEVERITY_CRITICAL).count(),
        'pendingDoctorChanges': DoctorChangeRequest.objects.filter(
            status=DoctorChangeRequest.STATUS_PENDING).count(),
    }


def _hospital_doctor_stats(user) -> dict:
    mine = Patient.objects.filter(assigned_doctor=user)
    no_room = Q(room_number__isnull=True) | Q(room_number='')
    today = timezone.localdate()
    return {
        'inPatients': mine.exclude(no_room).count(),
        'outPatients': mine.filter(no_room).count(),
        'activeAlerts': Alert.objects.filter(patient__in=mine, is_acknowledged=False).count(),
        'prescriptionsToday': Prescription.objects.filter(doctor=user, created_at__date=today).count(),
    }


def _online_doctor_stats(user) -> dict:
    online = Appointment.objects.filter(doctor=user, appointment_type=Appointment.TYPE_ONLINE)
    return {
        'scheduled': online.filter(status__in=[Appointment.STATUS_PENDING, Appointment.STATUS_CONFIRMED]).count(),
        'completed': online.filter(status=Appointment.STATUS_COMPLETED).count(),
        'unreadMessages': Message.objects.filter(receiver=user, is_read=False).count(),
    }


def _nurse_stats(user) -> dict:
    pending = Alert.objects.filter(is_acknowledged=False)
    return {
        'patients': Patient.objects.count(),
        'pendingAlerts': pending.count(),
        'criticalAlerts': pending.filter(severity=Alert.SEVERITY_CRITICAL).count(),
    }


def _pharmacist_stats(user) -> dict:
    return {
        'pending': Prescription.objects.filter(status=Prescription.STATUS_ACTIVE).count(),
        'dispensed': Prescription.objects.filter(status=Prescription.STATUS_DISPENSED).count(),
    }


def _patient_stats(user) -> dict:
    record = Patient.objects.filter(user=user).first()
    if record is None:
        return {'hasRecord': False, 'upcomingAppointments': 0, 'activePrescriptions': 0, 'unreadMessages': 0}
    return {
        'hasRecord': True,
        'upcomingAppointments': Appointment.objects.filter(
            patient=record, scheduled_at__gte=timezone.now(),
            status__in=[Appointment.STATUS_PENDING, Appointment.STATUS_CONFIRMED],
        ).count(),
        'activePrescriptions': Prescription.objects.filter(patient=record, status=Prescription.STATUS_ACTIVE).count(),
        'unreadMessages': Message.objects.filter(receiver=user, is_read=False).count(),
    }


_HOSPITAL_DOCTOR = Dashboard('/hospital-doctor', 'Hospital doctor', _hospital_doctor_stats)

DASHBOARDS: dict[Role, Dashboard] = {
    Role.ADMIN: Dashboard('/admin', 'Administration', _admin_stats),
    Role.DOCTOR: _HOSPITAL_DOCTOR,
    Role.HOSPITAL_DOCTOR: _HOSPITAL_DOCTOR,
    Role.ONLINE_DOCTOR: Dashboard('/online-doctor', 'Online doctor', _online_doctor_stats),
    Role.NURSE: Dashboard('/nurse', 'Nursing station', _nurse_stats),
    Role.PHARMACIST: Dashboard('/pharmacist', 'Pharmacy', _pharmacist_stats),
    Role.PATIENT: Dashboard('/patient', 'My health', _patient_stats),
}


def dashboard_for(role) -> Dashboard:
    try:
        return DASHBOARDS[parse_role(role)]
    except KeyError:
        raise UnknownRole(f'no dashboard for role {role!r}') from None


def build_dashboard(user) -> dict:
    board = dashboard_for(user.role)
    return {'role': user.role, 'home': board.home, 'title': board.title, 'stats': board.stats(user)}
