from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidInput, InvalidTransition, NotAllowed, RowNotFound
from core.models import Appointment, Patient, User
from core.roles import DOCTOR_ROLES, Role
from core.services.audit import log_action


def _can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    transitions = {
        Appointment.STATUS_PENDING: [Appointment.STATUS_CONFIRMED, Appointment.STATUS_CANCELLED],
        Appointment.STATUS_CONFIRMED: [Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED],
        Appointment.STATUS_COMPLETED: [],
        Appointment.STATUS_CANCELLED: [],
    }
    return new in transitions.get(current, [])


def book_appointment(user: User, *, patient: Patient, doctor_id, scheduled_at,
                     appointment_type: str = Appointment.TYPE_IN_PERSON,
                     duration_minutes: int = 30, notes: str = '') -> Appointment:
    if user.role == Role.PATIENT and patient.user_id != user.id:
        raise NotAllowed('patients may only book for themselves')
    doctor = User.objects.filter(id=doctor_id, role__in=DOCTOR_ROLES, is_active=True).first()
    if doctor is None:
        raise RowNotFound('doctor not found')
    if scheduled_at <= timezone.now():
        raise InvalidInput('appointment must be in the future')
    appt = Appointment.objects.create(
        patient=patient, doctor=doctor, scheduled_at=scheduled_at,
        appointment_type=appointment_type, duration_minutes=duration_minutes, notes=notes,
    )
    log_action(user=user, action='appointment_book', table_name=Appointment.TABLE_NAME, record_id=appt.id)
    return appt


@transaction.atomic
def set_status(user: User, appointment_id, new_status: str) -> Appointment:
    appt = Appointment.objects.select_for_update().select_related('patient').filter(id=appointment_id).first()
    if appt is None:
        raise RowNotFound('appointment not found')
    is_owner = appt.patient.user_id == user.id
    is_doctor = appt.doctor_id == user.id
    if user.role != Role.ADMIN and not (is_owner or is_doctor):
        raise NotAllowed('not your appointment')
    # patients may only cancel
    if is_owner and not is_doctor and user.role != Role.ADMIN and new_status != Appointment.STATUS_CANCELLED:
        raise NotAllowed('patients may only cancel appointments')
    if not _can_transition(appt.status, new_status):
        raise InvalidTransition(f'cannot move appointment from {appt.status} to {new_status}')
    previous = appt.status
    appt.status = new_status
    appt.save(update_fields=['status', 'updated_at'])
    log_action(user=user, action='appointment_status', table_name=Appointment.TABLE_NAME, record_id=appt.id,
               detail={'from': previous, 'to': new_status})
    return appt
