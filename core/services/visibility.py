"""
Per-role row visibility.

Staff roles see every clinical row; patients only see rows anchored to
their own patient record.  Messages are visible to their two parties
only, whatever the role.  Doctor change requests are visible to admins,
to the requesting patient and to the doctors they name.

The REST table endpoint narrows querysets with :func:`visible_queryset`;
the websocket consumer and the live screens check single feed rows with
:func:`can_see_row`.
"""
from __future__ import annotations

from django.db.models import Q, QuerySet

from core.models import TABLES, DoctorChangeRequest, Message, Patient, User
from core.roles import DOCTOR_ROLES, Role

PATIENT_SCOPED = ('vitals', 'alerts', 'appointments', 'prescriptions', 'doctor_change_requests')


def _is_patient(user) -> bool:
    return getattr(user, 'role', None) == Role.PATIENT


def visible_queryset(user, table: str) -> QuerySet:
    model = TABLES[table]
    qs = model._default_manager.all()
    if not getattr(user, 'is_authenticated', False):
        return qs.none()
    if model is Message:
        return qs.filter(Q(sender=user) | Q(receiver=user))
    if model is DoctorChangeRequest and not _is_patient(user):
        if user.role == Role.ADMIN:
            return qs
        if user.role in DOCTOR_ROLES:
            return qs.filter(Q(current_doctor=user) | Q(requested_doctor=user))
        return qs.none()
    if not _is_patient(user):
        return qs
    if model is User:
        return qs.filter(Q(id=user.id) | ~Q(role=Role.PATIENT))
    if model is Patient:
        return qs.filter(user=user)
    if table in PATIENT_SCOPED:
        return qs.filter(patient__user=user)
    return qs.none()


def can_see_row(user, table: str, row: dict) -> bool:
    if not row or not getattr(user, 'is_authenticated', False):
        return False
    uid = str(user.id)
    if table == Message.TABLE_NAME:
        return uid in (row.get('sender_id'), row.get('receiver_id'))
    if table == DoctorChangeRequest.TABLE_NAME and not _is_patient(user):
        if user.role == Role.ADMIN:
            return True
        return user.role in DOCTOR_ROLES and uid in (row.get('current_doctor_id'), row.get('requested_doctor_id'))
    if not _is_patient(user):
        return True
    if table == User.TABLE_NAME:
        return row.get('id') == uid or row.get('role') != Role.PATIENT
    if table == Patient.TABLE_NAME:
        return row.get('user_id') == uid
    if table in PATIENT_SCOPED:
        return Patient.objects.filter(id=row.get('patient_id'), user_id=user.id).exists()
    return False


def patient_record_for(user):
    """Return the caller's own patient record, or ``None``."""
    return Patient.objects.filter(user=user).first()
