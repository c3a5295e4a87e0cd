# crm/services/permission_resolver.py
"""
Effective permission resolution.

resolve() is a pure function of (user, legacy list, grant records): no I/O,
no caching, safe to call from anywhere. Callers re-run it whenever they
learn that a user's grants changed.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional

from crm.core.modules import MODULE_DEPENDENCIES, ModuleId, all_modules, canonicalize
from crm.core.role_policy import default_modules, forbidden_modules, is_unrestricted

OPERATIONS = ("view", "add", "edit", "delete")


@dataclass(frozen=True)
class GrantFlags:
    can_add: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def any(self) -> bool:
        return self.can_add or self.can_edit or self.can_delete

    def __or__(self, other: "GrantFlags") -> "GrantFlags":
        return GrantFlags(
            can_add=self.can_add or other.can_add,
            can_edit=self.can_edit or other.can_edit,
            can_delete=self.can_delete or other.can_delete,
        )


@dataclass(frozen=True)
class ModuleAccess:
    viewable: bool = False
    can_add: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def allows(self, op: str) -> bool:
        if op == "view":
            return self.viewable
        if op in ("add", "edit", "delete"):
            return getattr(self, f"can_{op}")
        raise ValueError(f"Unknown operation '{op}'. Expected one of {OPERATIONS}")

    @property
    def flags(self) -> GrantFlags:
        return GrantFlags(self.can_add, self.can_edit, self.can_delete)


NO_ACCESS = ModuleAccess()
FULL_ACCESS = ModuleAccess(True, True, True, True)


class EffectivePermissionSet:
    """
    Total access map over the module catalog. Lookups canonicalise the
    module id; ids outside the catalog read as no access.
    """

    def __init__(self, access: Mapping[str, ModuleAccess]):
        self._access = {m: access.get(m, NO_ACCESS) for m in all_modules()}

    def __getitem__(self, module_id) -> ModuleAccess:
        return self._access.get(canonicalize(module_id), NO_ACCESS)

    def __iter__(self):
        return iter(self._access)

    def __len__(self):
        return len(self._access)

    def __eq__(self, other):
        if not isinstance(other, EffectivePermissionSet):
            return NotImplemented
        return self._access == other._access

    def __repr__(self):
        return f"EffectivePermissionSet(viewable={self.viewable_modules()})"

    def items(self):
        return self._access.items()

    def can(self, module_id, op: str = "view") -> bool:
        return self[module_id].allows(op)

    def viewable_modules(self) -> list[str]:
        return [m for m, a in self._access.items() if a.viewable]


def _canonical_records(grant_records: Optional[Mapping]) -> dict[str, GrantFlags]:
    records: dict[str, GrantFlags] = {}
    for module_id, flags in (grant_records or {}).items():
        module = canonicalize(module_id)
        # an alias and its canonical id may both have rows; union them
        records[module] = records[module] | flags if module in records else flags
    return records


def resolve(
    principal,
    legacy_list: Optional[Iterable[str]] = None,
    grant_records: Optional[Mapping[str, GrantFlags]] = None,
) -> EffectivePermissionSet:
    role = getattr(principal, "role", None)

    legacy = {canonicalize(m) for m in (legacy_list or ())}
    records = _canonical_records(grant_records)

    if is_unrestricted(role):
        return EffectivePermissionSet({m: FULL_ACCESS for m in all_modules()})

    # role defaults are a floor only for users with nothing stored at all
    floor = default_modules(role) if not legacy and not records else frozenset()

    access: dict[str, ModuleAccess] = {}
    for module in all_modules():
        flags = records.get(module, GrantFlags())
        access[module] = ModuleAccess(
            viewable=module in floor or module in legacy or flags.any(),
            can_add=flags.can_add,
            can_edit=flags.can_edit,
            can_delete=flags.can_delete,
        )

    for dependent, required in MODULE_DEPENDENCIES.items():
        if access[dependent].viewable:
            access[required] = replace(access[required], viewable=True)

    for module in forbidden_modules(role):
        access[module] = NO_ACCESS

    dashboard = ModuleId.dashboard.value
    access[dashboard] = replace(access[dashboard], viewable=True)

    return EffectivePermissionSet(access)
