from typing import Optional

from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from rest_framework_simplejwt.tokens import RefreshToken

from core.exceptions import InvalidInput, NotAllowed
from core.models import Patient, User
from core.roles import Role, STAFF_ROLES, UnknownRole, parse_role
from core.services.audit import log_action


def _check_new_account(email: str, password: str) -> None:
    if User.objects.filter(email__iexact=email).exists():
        raise InvalidInput('email already registered')
    try:
        validate_password(password)
    except ValidationError as e:
        raise InvalidInput('; '.join(e.messages))


@transaction.atomic
def sign_up(*, email: str, password: str, full_name: str, role: Optional[str] = None) -> User:
    """Self-service registration.  Only patient accounts can be created this way."""
    if role not in (None, '', Role.PATIENT):
        raise NotAllowed('self sign-up is limited to patient accounts')
    _check_new_account(email, password)
    user = User.objects.create_user(email=email, password=password, full_name=full_name, role=Role.PATIENT)
    Patient.objects.create(user=user)
    log_action(user=user, action='signup', table_name=User.TABLE_NAME, record_id=user.id)
    return user


@transaction.atomic
def create_staff(admin: User, *, email: str, password: str, full_name: str, role: str,
                 phone: str = '', department: str = '', specialization: str = '') -> User:
    if getattr(admin, 'role', None) != Role.ADMIN:
        raise NotAllowed('only administrators may create staff accounts')
    try:
        role = parse_role(role)
    except UnknownRole as e:
        raise InvalidInput(str(e))
    if role not in STAFF_ROLES:
        raise InvalidInput('staff accounts cannot have the patient role')
    _check_new_account(email, password)
    user = User.objects.create_user(
        email=email, password=password, full_name=full_name, role=role,
        phone=phone, department=department, specialization=specialization,
        is_staff=role == Role.ADMIN,
    )
    log_action(user=admin, action='staff_create', table_name=User.TABLE_NAME, record_id=user.id,
               detail={'role': role.value})
    return user


def issue_tokens(user: User) -> dict:
    refresh = RefreshToken.for_user(user)
    return {'access': str(refresh.access_token), 'refresh': str(refresh)}
