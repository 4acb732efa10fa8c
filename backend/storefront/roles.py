"""
Role constants for the storefront.

A user may hold any number of grants from GRANTABLE_ROLES. Holding none means
the implicit "user" level: browse, order, message staff.

STAFF_ROLES drives the multi-role dashboards (orders board, delivery queue).
"""

from .errors import ValidationError
from .validation import clean_text

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLE_DELIVERY = "delivery"
ROLE_USER = "user"

GRANTABLE_ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_DELIVERY)

STAFF_ROLES = frozenset({ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_DELIVERY})

# Roles that may run the kitchen side of the order board
ORDER_MANAGER_ROLES = frozenset({ROLE_ADMIN, ROLE_EMPLOYEE})

# Grants that the standard revoke operation refuses to remove
PROTECTED_ROLES = frozenset({ROLE_ADMIN})


def validate_role(role: str) -> str:
    normalized = clean_text(role, "role", lower=True)
    if normalized not in GRANTABLE_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(GRANTABLE_ROLES)}")
    return normalized
