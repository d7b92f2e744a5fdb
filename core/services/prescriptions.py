import bleach
from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidInput, InvalidTransition, NotAllowed, RowNotFound
from core.models import Patient, Prescription, User
from core.roles import DOCTOR_ROLES, Role
from core.services.audit import log_action


def _clean_medications(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise InvalidInput('at least one medication is required')
    cleaned = []
    for item in items:
        if not isinstance(item, dict) or not str(item.get('name', '')).strip():
            raise InvalidInput('each medication needs a name')
        cleaned.append({
            'name': bleach.clean(str(item['name']).strip(), strip=True),
            'dosage': bleach.clean(str(item.get('dosage', '')).strip(), strip=True),
            'frequency': bleach.clean(str(item.get('frequency', '')).strip(), strip=True),
        })
    return cleaned


def write_prescription(doctor: User, *, patient: Patient, medications, diagnosis: str = '',
                       instructions: str = '', valid_until=None) -> Prescription:
    if doctor.role not in DOCTOR_ROLES:
        raise NotAllowed('only doctors may prescribe')
    rx = Prescription.objects.create(
        patient=patient,
        doctor=doctor,
        medications=_clean_medications(medications),
        diagnosis=bleach.clean(diagnosis or '', strip=True),
        instructions=bleach.clean(instructions or '', strip=True),
        valid_until=valid_until,
    )
    log_action(user=doctor, action='prescription_write', table_name=Prescription.TABLE_NAME, record_id=rx.id)
    return rx


def _locked(prescription_id) -> Prescription:
    rx = Prescription.objects.select_for_update().filter(id=prescription_id).first()
    if rx is None:
        raise RowNotFound('prescription not found')
    return rx


@transaction.atomic
def dispense(pharmacist: User, prescription_id) -> Prescription:
    if pharmacist.role != Role.PHARMACIST:
        raise NotAllowed('only pharmacists may dispense')
    rx = _locked(prescription_id)
    if rx.status != Prescription.STATUS_ACTIVE:
        raise InvalidTransition(f'cannot dispense a {rx.status} prescription')
    rx.status = Prescription.STATUS_DISPENSED
    rx.dispensed_by = pharmacist
    rx.dispensed_at = timezone.now()
    rx.save(update_fields=['status', 'dispensed_by', 'dispensed_at'])
    log_action(user=pharmacist, action='prescription_dispense', table_name=Prescription.TABLE_NAME,
               record_id=rx.id)
    return rx


@transaction.atomic
def cancel(doctor: User, prescription_id) -> Prescription:
    rx = _locked(prescription_id)
    if rx.doctor_id != doctor.id and doctor.role != Role.ADMIN:
        raise NotAllowed('only the prescribing doctor may cancel')
    if rx.status != Prescription.STATUS_ACTIVE:
        raise InvalidTransition(f'cannot cancel a {rx.status} prescription')
    rx.status = Prescription.STATUS_CANCELLED
    rx.save(update_fields=['status'])
    log_action(user=doctor, action='prescription_cancel', table_name=Prescription.TABLE_NAME, record_id=rx.id)
    return rx
