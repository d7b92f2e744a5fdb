import secrets

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction

from core.exceptions import InvalidInput, NotAllowed, RowNotFound
from core.models import Patient
from core.roles import CARE_ROLES, DOCTOR_ROLES, Role
from core.services.audit import log_action

User = get_user_model()

EDITABLE_FIELDS = (
    'room_number', 'blood_type', 'allergies', 'date_of_birth',
    'emergency_contact', 'emergency_phone', 'admission_date',
)


def _doctor_or_none(doctor_id):
    if not doctor_id:
        return None
    doctor = User.objects.filter(id=doctor_id, role__in=DOCTOR_ROLES, is_active=True).first()
    if doctor is None:
        raise RowNotFound('doctor not found')
    return doctor


@transaction.atomic
def admit_patient(current_user, *, full_name, email, password=None, assigned_doctor_id=None, **fields):
    """Create a patient profile and its clinical record.

    Returns ``(user, patient, password)``; when no password is given a
    random one is generated so staff can hand it over.
    """
    if getattr(current_user, 'role', None) not in CARE_ROLES:
        raise NotAllowed('only care staff may admit patients')
    if User.objects.filter(email__iexact=email).exists():
        raise InvalidInput('email already registered')
    if password:
        try:
            validate_password(password)
        except ValidationError as e:
            raise InvalidInput('; '.join(e.messages))
    else:
        password = secrets.token_urlsafe(12)

    user = User.objects.create_user(email=email, password=password, full_name=full_name, role=Role.PATIENT)
    patient = Patient.objects.create(
        user=user,
        assigned_doctor=_doctor_or_none(assigned_doctor_id),
        **{k: v for k, v in fields.items() if k in EDITABLE_FIELDS},
    )
    log_action(user=current_user, action='patient_admit', table_name=Patient.TABLE_NAME, record_id=patient.id)
    return user, patient, password


def update_patient(current_user, patient_id, **changes) -> Patient:
    if getattr(current_user, 'role', None) not in CARE_ROLES:
        raise NotAllowed('only care staff may edit patients')
    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise RowNotFound('patient not found')
    fields = []
    for key, value in changes.items():
        if key in EDITABLE_FIELDS:
            setattr(patient, key, value)
            fields.append(key)
    if 'assigned_doctor_id' in changes:
        patient.assigned_doctor = _doctor_or_none(changes['assigned_doctor_id'])
        fields.append('assigned_doctor')
    if not fields:
        return patient
    patient.save(update_fields=fields + ['updated_at'])
    log_action(user=current_user, action='patient_update', table_name=Patient.TABLE_NAME,
               record_id=patient.id, detail={'fields': fields})
    return patient
