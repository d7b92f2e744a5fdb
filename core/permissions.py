"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

from .roles import CARE_ROLES, DOCTOR_ROLES, Role


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Allow access only to administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == Role.ADMIN


class IsCareStaff(BasePermission):
    """Admins, nurses and hospital doctors."""
    def has_permission(self, request, view) -> bool:
        return _role(request) in CARE_ROLES


class IsDoctor(BasePermission):
    def has_permission(self, request, view) -> bool:
        return _role(request) in DOCTOR_ROLES


class IsPharmacist(BasePermission):
    def has_permission(self, request, view) -> bool:
        return _role(request) == Role.PHARMACIST
