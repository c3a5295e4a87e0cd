# crm/core/role_policy.py

import re

from crm.core.modules import ModuleId, all_modules
from crm.models.user import UserRole


def role_key(role) -> str:
    """
    Normalise a role (UserRole or raw string) for comparison:
    case, whitespace, '_' and '-' are ignored.
    """
    if role is None:
        return ""
    if isinstance(role, UserRole):
        role = role.value
    return re.sub(r"[\s_\-]+", "", str(role)).lower()


SUPER_ADMIN_KEY = role_key(UserRole.SuperAdmin)


# ==========================================================
# ROLE FAMILIES
# ==========================================================
def is_unrestricted(role) -> bool:
    # exact match only: anything unrecognised stays restricted
    return role_key(role) == SUPER_ADMIN_KEY


def is_admin_family(role) -> bool:
    key = role_key(role)
    return key != SUPER_ADMIN_KEY and "admin" in key


def is_teacher_family(role) -> bool:
    return "teacher" in role_key(role)


def is_scope_exempt(role) -> bool:
    return is_unrestricted(role)


# ==========================================================
# MODULE RULES
# ==========================================================
# Modules only the super administrator may ever see
SUPER_ONLY_MODULES = frozenset({ModuleId.users.value})


def forbidden_modules(role) -> frozenset[str]:
    if is_unrestricted(role):
        return frozenset()
    return SUPER_ONLY_MODULES


def default_modules(role) -> frozenset[str]:
    """
    Viewable floor used only when a user has neither a legacy list nor
    grant rows. Never grants mutation rights.
    """
    if is_unrestricted(role):
        return frozenset(all_modules())
    if is_admin_family(role):
        return frozenset(all_modules()) - forbidden_modules(role)
    if is_teacher_family(role):
        return frozenset({ModuleId.teachers.value})
    return frozenset()
