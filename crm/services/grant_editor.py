# crm/services/grant_editor.py
"""
Write path for the administrative permissions screen.

The screen submits one of nine access levels per module. plan_grants()
turns that into the rows and legacy list to persist; save_grants()
replaces everything stored for the user in one transaction. Saves are
full replaces: whatever the previous save stored is discarded.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import InputError
from crm.core.modules import MODULE_DEPENDENCIES, ModuleId, all_modules, canonicalize, is_known_module
from crm.core.role_policy import is_unrestricted
from crm.models.user import User, UserRole
from crm.services.grant_store import replace_grants
from crm.services.permission_resolver import GrantFlags, ModuleAccess


class AccessLevel(str, Enum):
    NONE = "NONE"
    VIEW = "VIEW"
    ADD = "ADD"
    EDIT = "EDIT"
    DELETE = "DELETE"
    ADD_EDIT = "ADD_EDIT"
    ADD_DELETE = "ADD_DELETE"
    EDIT_DELETE = "EDIT_DELETE"
    CRUD = "CRUD"


LEVEL_FLAGS = {
    AccessLevel.NONE: GrantFlags(),
    AccessLevel.VIEW: GrantFlags(),
    AccessLevel.ADD: GrantFlags(can_add=True),
    AccessLevel.EDIT: GrantFlags(can_edit=True),
    AccessLevel.DELETE: GrantFlags(can_delete=True),
    AccessLevel.ADD_EDIT: GrantFlags(can_add=True, can_edit=True),
    AccessLevel.ADD_DELETE: GrantFlags(can_add=True, can_delete=True),
    AccessLevel.EDIT_DELETE: GrantFlags(can_edit=True, can_delete=True),
    AccessLevel.CRUD: GrantFlags(can_add=True, can_edit=True, can_delete=True),
}

_FLAGS_TO_LEVEL = {
    flags: level for level, flags in LEVEL_FLAGS.items() if level is not AccessLevel.NONE
}

FULL_FLAGS = LEVEL_FLAGS[AccessLevel.CRUD]


def level_for(access: ModuleAccess) -> AccessLevel:
    """The level that would reproduce `access` if saved. Used to pre-fill the form."""
    if not access.flags.any():
        return AccessLevel.VIEW if access.viewable else AccessLevel.NONE
    return _FLAGS_TO_LEVEL[access.flags]


@dataclass(frozen=True)
class GrantPlan:
    role: str
    legacy: tuple
    records: dict

    def level_of(self, module_id) -> AccessLevel:
        module = canonicalize(module_id)
        if module in self.records:
            flags = self.records[module]
            return _FLAGS_TO_LEVEL[flags] if flags.any() else AccessLevel.VIEW
        return AccessLevel.VIEW if module in self.legacy else AccessLevel.NONE


def _parse_level(value) -> AccessLevel:
    if isinstance(value, AccessLevel):
        return value
    return AccessLevel(str(value).strip().upper())


def parse_levels(per_module_level: Mapping) -> dict[str, AccessLevel]:
    """
    Validate a module -> level mapping. Aliases are canonicalised; unknown
    modules, unknown levels and alias pairs with different levels are all
    collected and raised together as one InputError.
    """
    levels: dict[str, AccessLevel] = {}
    rejected: list[str] = []

    for module_id, value in (per_module_level or {}).items():
        module = canonicalize(module_id)
        if not is_known_module(module):
            rejected.append(f"unknown module '{module_id}'")
            continue
        try:
            level = _parse_level(value)
        except ValueError:
            rejected.append(f"unknown access level '{value}' for module '{module_id}'")
            continue
        if module in levels and levels[module] is not level:
            rejected.append(f"conflicting levels for module '{module}'")
            continue
        levels[module] = level

    if rejected:
        raise InputError("Invalid permission request: " + "; ".join(rejected), rejected)
    return levels


def plan_grants(role, per_module_level: Mapping) -> GrantPlan:
    role_value = role.value if isinstance(role, UserRole) else str(role or "").strip()
    if not role_value:
        raise InputError("Invalid permission request: role is required", ["role"])

    levels = parse_levels(per_module_level)

    if is_unrestricted(role_value):
        return GrantPlan(
            role=role_value,
            legacy=tuple(all_modules()),
            records={m: FULL_FLAGS for m in all_modules()},
        )

    dashboard = ModuleId.dashboard.value
    records: dict[str, GrantFlags] = {}
    legacy = {dashboard}

    for module in all_modules():
        level = levels.get(module, AccessLevel.NONE)
        if level is AccessLevel.NONE and module != dashboard:
            continue
        records[module] = LEVEL_FLAGS[level]
        legacy.add(module)

    for dependent, required in MODULE_DEPENDENCIES.items():
        if records.get(dependent, GrantFlags()).any() and required not in records:
            records[required] = LEVEL_FLAGS[AccessLevel.VIEW]
            legacy.add(required)

    return GrantPlan(
        role=role_value,
        legacy=tuple(m for m in all_modules() if m in legacy),
        records={m: records[m] for m in all_modules() if m in records},
    )


async def save_grants(
    session: AsyncSession,
    user: User,
    role,
    per_module_level: Mapping,
) -> GrantPlan:
    """
    Replace all stored permissions of `user` (and set its role).
    Raises InputError before touching the store, StoreError if the write fails.
    """
    plan = plan_grants(role, per_module_level)

    await replace_grants(session, user, plan.role, plan.legacy, plan.records)

    logger.info(
        "Permissions saved for {} (role={}, modules={})",
        user.email, plan.role, ",".join(plan.legacy),
    )
    return plan
