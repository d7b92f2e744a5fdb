"""
Doctor directory and doctor change requests.

A patient asks to move to another doctor; the request stays ``pending``
until an admin approves it (which reassigns the patient record) or
rejects it.  A patient has at most one pending request at a time.
"""
import bleach
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.exceptions import InvalidInput, InvalidTransition, NotAllowed, RowNotFound
from core.models import DoctorChangeRequest, Patient, User
from core.roles import DOCTOR_ROLES, Role
from core.services.audit import log_action
from core.services.visibility import patient_record_for


def list_doctors(*, specialization: str = '', search: str = ''):
    qs = User.objects.filter(role__in=DOCTOR_ROLES, is_active=True)
    if specialization:
        qs = qs.filter(specialization__iexact=specialization.strip())
    if search:
        term = search.strip()
        qs = qs.filter(Q(full_name__icontains=term) | Q(specialization__icontains=term))
    return qs.order_by('full_name', 'email')


def _doctor(doctor_id) -> User:
    doctor = User.objects.filter(id=doctor_id, role__in=DOCTOR_ROLES, is_active=True).first()
    if doctor is None:
        raise RowNotFound('doctor not found')
    return doctor


def request_change(user: User, *, requested_doctor_id, reason: str = '') -> DoctorChangeRequest:
    if user.role != Role.PATIENT:
        raise NotAllowed('only patients may request a doctor change')
    record = patient_record_for(user)
    if record is None:
        raise RowNotFound('no patient record for this account')
    doctor = _doctor(requested_doctor_id)
    if record.assigned_doctor_id == doctor.id:
        raise InvalidInput('this doctor is already assigned to you')
    pending = DoctorChangeRequest.objects.filter(patient=record, status=DoctorChangeRequest.STATUS_PENDING)
    if pending.exists():
        raise InvalidTransition('a doctor change request is already pending')
    req = DoctorChangeRequest.objects.create(
        patient=record,
        current_doctor_id=record.assigned_doctor_id,
        requested_doctor=doctor,
        reason=bleach.clean(reason or '', strip=True).strip(),
    )
    log_action(user=user, action='doctor_change_request', table_name=DoctorChangeRequest.TABLE_NAME,
               record_id=req.id, detail={'requested_doctor_id': str(doctor.id)})
    return req


@transaction.atomic
def review(user: User, request_id, *, approve: bool, doctor_id=None) -> DoctorChangeRequest:
    """Approve or reject a pending request.

    On approval the admin may assign a different doctor than the one
    asked for; the request then records the doctor actually assigned.
    """
    if user.role != Role.ADMIN:
        raise NotAllowed('only admins may review doctor change requests')
    req = DoctorChangeRequest.objects.select_for_update().filter(id=request_id).first()
    if req is None:
        raise RowNotFound('doctor change request not found')
    if req.status != DoctorChangeRequest.STATUS_PENDING:
        raise InvalidTransition(f'request is already {req.status}')

    fields = ['status', 'reviewed_by', 'reviewed_at']
    if approve:
        if doctor_id is not None:
            doctor = _doctor(doctor_id)
        elif req.requested_doctor_id is not None:
            doctor = _doctor(req.requested_doctor_id)
        else:
            raise InvalidInput('doctor_id is required')
        patient = Patient.objects.select_for_update().get(id=req.patient_id)
        patient.assigned_doctor = doctor
        patient.save(update_fields=['assigned_doctor', 'updated_at'])
        req.requested_doctor = doctor
        fields.append('requested_doctor')
        req.status = DoctorChangeRequest.STATUS_APPROVED
    else:
        req.status = DoctorChangeRequest.STATUS_REJECTED
    req.reviewed_by = user
    req.reviewed_at = timezone.now()
    req.save(update_fields=fields)
    detail = {'decision': req.status}
    if approve:
        detail['doctor_id'] = str(req.requested_doctor_id)
    log_action(user=user, action='doctor_change_review', table_name=DoctorChangeRequest.TABLE_NAME,
               record_id=req.id, detail=detail)
    return req
