# crm/services/grant_store.py
"""
Grant store adapter.

Users carry permissions in two shapes: the legacy `users.permissions`
list of viewable module ids, and `user_permissions` rows with per-module
add/edit/delete flags. This module is the only place that knows about
either shape. Everything above it works with a GrantSnapshot.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.core.exceptions import StoreError
from crm.core.modules import all_modules, canonicalize
from crm.models.permission import UserPermission
from crm.models.user import User, utcnow
from crm.services.permission_resolver import EffectivePermissionSet, GrantFlags, resolve


@dataclass(frozen=True)
class GrantSnapshot:
    legacy: frozenset = frozenset()
    records: Mapping[str, GrantFlags] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.legacy and not self.records


def _row_flags(row: UserPermission) -> GrantFlags:
    # rows from before the flag columns existed: access == "CRUD" meant everything
    has_crud = (row.access or "").upper() == "CRUD"

    def pick(value):
        return has_crud if value is None else bool(value)

    return GrantFlags(
        can_add=pick(row.can_add),
        can_edit=pick(row.can_edit),
        can_delete=pick(row.can_delete),
    )


def snapshot_from_rows(legacy_list, rows: Iterable[UserPermission]) -> GrantSnapshot:
    legacy = {canonicalize(m) for m in (legacy_list or []) if m}
    records: dict[str, GrantFlags] = {}

    for row in rows:
        module = canonicalize(row.module)
        flags = _row_flags(row)
        records[module] = records[module] | flags if module in records else flags
        if (row.access or "").upper() == "VIEW":
            legacy.add(module)

    return GrantSnapshot(legacy=frozenset(legacy), records=records)


# ============================================================================
# READ
# ============================================================================
async def get_grant_rows(session: AsyncSession, email: str) -> list[UserPermission]:
    result = await session.execute(
        select(UserPermission).where(UserPermission.user_email == email)
    )
    return list(result.scalars().all())


async def load_grants(session: AsyncSession, user: User) -> GrantSnapshot:
    rows = await get_grant_rows(session, user.email)
    return snapshot_from_rows(user.permissions, rows)


async def resolve_for_user(session: AsyncSession, user: User) -> EffectivePermissionSet:
    snapshot = await load_grants(session, user)
    return resolve(user, snapshot.legacy, snapshot.records)


# ============================================================================
# WRITE (full replace, one transaction)
# ============================================================================
async def replace_grants(
    session: AsyncSession,
    user: User,
    role: str,
    legacy: Iterable[str],
    records: Mapping[str, GrantFlags],
) -> None:
    """
    Delete every grant row of `user`, insert `records`, and overwrite the
    legacy list and role, all under a single commit. On failure nothing
    is applied and StoreError is raised.
    """
    legacy_set = {canonicalize(m) for m in legacy}
    ordered_legacy = [m for m in all_modules() if m in legacy_set]
    ordered_legacy += sorted(legacy_set - set(ordered_legacy))
    # rollback expires `user`; keep the key readable afterwards
    email = user.email

    try:
        await session.execute(
            delete(UserPermission).where(UserPermission.user_email == email)
        )
        for module, flags in records.items():
            session.add(
                UserPermission(
                    user_email=email,
                    module=canonicalize(module),
                    access="CRUD" if flags.any() else "VIEW",
                    can_add=flags.can_add,
                    can_edit=flags.can_edit,
                    can_delete=flags.can_delete,
                )
            )

        user.role = role
        user.permissions = ordered_legacy
        user.updated_at = utcnow()
        session.add(user)

        await session.commit()

    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Grant replace failed for {}", email)
        raise StoreError(f"Could not save permissions for {email}") from exc

    except asyncio.CancelledError:
        # abandoned before commit: drop the half-built transaction
        await session.rollback()
        raise

    await session.refresh(user)
