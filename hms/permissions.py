"""
Role based permission classes.

Every class checks ``request.user.role`` against a fixed set of roles.
Administrators (``super`` and ``admin``) pass every check.
"""
from rest_framework.permissions import BasePermission

ADMIN_ROLES = {"super", "admin"}
CLINICAL_ROLES = {"doctor", "nurse"}
LAB_ROLES = {"doctor", "lab_technician"}
RADIOLOGY_ROLES = {"doctor", "radiologist"}
PHARMACY_ROLES = {"doctor", "pharmacist"}
BILLING_ROLES = {"accountant", "receptionist"}
FRONT_DESK_ROLES = {"receptionist", "nurse", "doctor"}
STAFF_ROLES = {"doctor", "nurse", "lab_technician", "radiologist", "pharmacist", "receptionist", "accountant"}
# Roles allowed to grant discounts on bills
BILLING_MANAGER_ROLES = ADMIN_ROLES | {"accountant"}


def has_role(user, roles) -> bool:
    if not (user and user.is_authenticated):
        return False
    role = getattr(user, "role", None)
    return role in ADMIN_ROLES or role in roles


class RolePermission(BasePermission):
    """Base class: subclasses set ``roles``."""
    roles: set[str] = set()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), self.roles)


class IsAdminRole(RolePermission):
    """Allow access only to administrators."""
    roles = set()


class IsStaff(RolePermission):
    """Any hospital employee."""
    roles = STAFF_ROLES


class IsClinicalStaff(RolePermission):
    roles = CLINICAL_ROLES


class IsLabStaff(RolePermission):
    roles = LAB_ROLES


class IsRadiologyStaff(RolePermission):
    roles = RADIOLOGY_ROLES


class IsPharmacyStaff(RolePermission):
    roles = PHARMACY_ROLES


class IsBillingStaff(RolePermission):
    roles = BILLING_ROLES


class IsFrontDesk(RolePermission):
    roles = FRONT_DESK_ROLES


class IsPatientRole(BasePermission):
    """Allow access only to users with the patient role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) == "patient")


def require_role(user, roles, message: str = "You do not have permission to perform this action.") -> None:
    """Raise 403 unless ``user`` holds one of ``roles`` (or is an administrator)."""
    from rest_framework.exceptions import PermissionDenied
    if not has_role(user, roles):
        raise PermissionDenied(message)
