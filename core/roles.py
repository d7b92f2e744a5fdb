"""
Roles and the client-side routing surface.

Every profile carries exactly one :class:`Role`.  The route table below
lists the role-scoped screens of the frontend; it is not a server API but
is served from ``/api/routes`` so clients can build navigation without
hard-coding it.
"""
from __future__ import annotations

from dataclasses import dataclass

from django.db import models


class Role(models.TextChoices):
    ADMIN = 'admin', 'Administrator'
    DOCTOR = 'doctor', 'Doctor'
    HOSPITAL_DOCTOR = 'hospital_doctor', 'Hospital doctor'
    ONLINE_DOCTOR = 'online_doctor', 'Online doctor'
    NURSE = 'nurse', 'Nurse'
    PHARMACIST = 'pharmacist', 'Pharmacist'
    PATIENT = 'patient', 'Patient'


class UnknownRole(ValueError):
    pass


DOCTOR_ROLES = frozenset({Role.DOCTOR, Role.HOSPITAL_DOCTOR, Role.ONLINE_DOCTOR})
CARE_ROLES = frozenset({Role.ADMIN, Role.NURSE, Role.DOCTOR, Role.HOSPITAL_DOCTOR})
STAFF_ROLES = frozenset(set(Role) - {Role.PATIENT})


def parse_role(value) -> Role:
    """Return the :class:`Role` for ``value`` or raise :class:`UnknownRole`."""
    try:
        return Role(value)
    except ValueError:
        raise UnknownRole(f'unknown role: {value!r}') from None


@dataclass(frozen=True)
class Route:
    path: str
    title: str
    roles: frozenset


def _r(path: str, title: str, *roles: Role) -> Route:
    return Route(path=path, title=title, roles=frozenset(roles))


ROUTES: tuple[Route, ...] = (
    _r('/admin', 'Dashboard', Role.ADMIN),
    _r('/admin/staff', 'Staff', Role.ADMIN),
    _r('/admin/patients', 'Patients', Role.ADMIN),
    _r('/admin/alerts', 'Alerts', Role.ADMIN),
    _r('/admin/doctor-requests', 'Doctor requests', Role.ADMIN),
    _r('/admin/settings', 'Settings', Role.ADMIN),
    _r('/hospital-doctor', 'Dashboard', Role.DOCTOR, Role.HOSPITAL_DOCTOR),
    _r('/doctor/patients', 'Patients', Role.DOCTOR, Role.HOSPITAL_DOCTOR, Role.ONLINE_DOCTOR),
    _r('/doctor/messages', 'Messages', Role.DOCTOR, Role.HOSPITAL_DOCTOR, Role.ONLINE_DOCTOR),
    _r('/doctor/calls', 'Calls', Role.DOCTOR, Role.HOSPITAL_DOCTOR, Role.ONLINE_DOCTOR),
    _r('/doctor/alerts', 'Alerts', Role.DOCTOR, Role.HOSPITAL_DOCTOR),
    _r('/online-doctor', 'Dashboard', Role.ONLINE_DOCTOR),
    _r('/nurse', 'Dashboard', Role.NURSE),
    _r('/nurse/add-patient', 'Add patient', Role.NURSE),
    _r('/pharmacist', 'Dashboard', Role.PHARMACIST),
    _r('/patient', 'Dashboard', Role.PATIENT),
    _r('/patient/vitals', 'Vitals', Role.PATIENT),
    _r('/patient/messages', 'Messages', Role.PATIENT),
    _r('/patient/appointments', 'Appointments', Role.PATIENT),
    _r('/patient/book', 'Book appointment', Role.PATIENT),
    _r('/patient/doctors', 'Doctors', Role.PATIENT),
    _r('/patient/contact', 'Contact', Role.PATIENT),
)


def routes_for(role) -> list[Route]:
    role = parse_role(role)
    return [r for r in ROUTES if role in r.roles]
