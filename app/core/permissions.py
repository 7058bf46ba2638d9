"""
Capability table for principal roles.

Every role check in the authentication flows goes through `has_capability`;
no flow compares role names directly.
"""

from enum import Enum
from typing import Dict, Set


class PrincipalType(str, Enum):
    """Kind of authenticated identity"""
    ADMIN = "admin"
    CUSTOMER = "customer"


class PrincipalRole(str, Enum):
    """Roles carried in session tokens"""
    SUPERADMIN = "superadmin"
    MANAGER = "manager"
    STAFF = "staff"
    CUSTOMER = "customer"


class PrincipalStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Capability(str, Enum):
    """Operations a role may be allowed to perform"""
    PASSWORD_LOGIN = "password_login"
    SECOND_FACTOR = "second_factor"          # login must pass an e-mailed OTP
    TRUSTED_DEVICE = "trusted_device"        # may skip the OTP for a bounded period
    SELF_SERVICE_RESET = "self_service_reset"
    VIEW_PROFILE = "view_profile"
    SESSION_HEARTBEAT = "session_heartbeat"


ADMIN_ROLES = frozenset({PrincipalRole.SUPERADMIN, PrincipalRole.MANAGER, PrincipalRole.STAFF})

_ADMIN_CAPABILITIES = {
    Capability.PASSWORD_LOGIN,
    Capability.SECOND_FACTOR,
    Capability.TRUSTED_DEVICE,
    Capability.VIEW_PROFILE,
    Capability.SESSION_HEARTBEAT,
}

ROLE_CAPABILITIES: Dict[PrincipalRole, Set[Capability]] = {
    PrincipalRole.SUPERADMIN: set(_ADMIN_CAPABILITIES),
    PrincipalRole.MANAGER: set(_ADMIN_CAPABILITIES),
    PrincipalRole.STAFF: set(_ADMIN_CAPABILITIES),
    PrincipalRole.CUSTOMER: {
        Capability.PASSWORD_LOGIN,
        Capability.SELF_SERVICE_RESET,
        Capability.VIEW_PROFILE,
    },
}


def has_capability(role: PrincipalRole, capability: Capability) -> bool:
    """
    Check if a role is allowed to perform an operation.

    Args:
        role: Principal role (accepts the raw string value too)
        capability: Operation being attempted

    Returns:
        True if the capability is granted, False otherwise (unknown roles get nothing)
    """
    try:
        role = PrincipalRole(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, set())


def get_role_capabilities(role: PrincipalRole) -> Set[Capability]:
    return set(ROLE_CAPABILITIES.get(role, set()))
