# crm/api/endpoints/permissions.py

from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from crm.api.deps import get_current_user, get_current_permissions, get_db_session, require_module
from crm.core.exceptions import InputError, StoreError
from crm.core.modules import all_modules, module_label
from crm.models.user import User
from crm.schemas.permission import EffectivePermissionsRead, GrantSaveRequest, ModuleInfo
from crm.services.audit_service import PERMISSIONS_UPDATED, log_activity
from crm.services.grant_editor import AccessLevel, save_grants
from crm.services.grant_store import resolve_for_user
from crm.services.permission_resolver import EffectivePermissionSet
from crm.services.user_service import get_user_by_email

router = APIRouter(prefix="/api/permissions", tags=["Permissions"])


# -------------------------------------------------------------------
# Catalog + levels (for building the admin form)
# -------------------------------------------------------------------
@router.get("/modules", response_model=List[ModuleInfo])
async def list_modules(_: User = Depends(get_current_user)):
    return [ModuleInfo(id=m, label=module_label(m)) for m in all_modules()]


@router.get("/levels", response_model=List[str])
async def list_levels(_: User = Depends(get_current_user)):
    return [level.value for level in AccessLevel]


# -------------------------------------------------------------------
# Own effective permissions (navigation, show/hide controls)
# -------------------------------------------------------------------
@router.get("/me", response_model=EffectivePermissionsRead)
async def my_permissions(
    current_user: User = Depends(get_current_user),
    permissions: EffectivePermissionSet = Depends(get_current_permissions),
):
    return EffectivePermissionsRead.build(current_user, permissions)


# -------------------------------------------------------------------
# Any user's effective permissions (users module)
# -------------------------------------------------------------------
@router.get("/{email}", response_model=EffectivePermissionsRead)
async def user_permissions(
    email: str,
    session: AsyncSession = Depends(get_db_session),
    _: User = Depends(require_module("users")),
):
    user = await get_user_by_email(session, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    permissions = await resolve_for_user(session, user)
    return EffectivePermissionsRead.build(user, permissions)


# -------------------------------------------------------------------
# Replace a user's permissions (full replace)
# -------------------------------------------------------------------
@router.put("/{email}", response_model=EffectivePermissionsRead)
async def replace_user_permissions(
    email: str,
    data: GrantSaveRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("users", "edit")),
):
    user = await get_user_by_email(session, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        plan = await save_grants(session, user, data.role, data.levels)
    except InputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    background_tasks.add_task(
        log_activity,
        action=PERMISSIONS_UPDATED,
        actor_email=current_user.email,
        actor_role=current_user.role,
        target_email=user.email,
        details={
            "role": plan.role,
            "levels": {m: plan.level_of(m).value for m in all_modules()},
        },
    )

    # re-resolve from the store rather than trusting the plan
    permissions = await resolve_for_user(session, user)
    return EffectivePermissionsRead.build(user, permissions)
