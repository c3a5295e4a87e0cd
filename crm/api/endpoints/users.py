# crm/api/endpoints/users.py

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from crm.api.deps import get_db_session, require_module
from crm.core.exceptions import InputError, StoreError
from crm.models.user import User, UserStatus
from crm.schemas.user import ReportingLines, ReportingUpdate, UserCreate, UserRead, UserUpdate
from crm.services import audit_service
from crm.services.grant_editor import plan_grants, save_grants
from crm.services.user_service import (
    check_supervisors,
    create_user,
    deactivate_user,
    get_subordinates,
    get_supervisors,
    get_user_by_email,
    list_users,
    set_supervisors,
    update_user,
)

router = APIRouter(prefix="/api/users", tags=["Users"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, InputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


async def _get_or_404(session: AsyncSession, email: str) -> User:
    user = await get_user_by_email(session, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# -------------------------------------------------------------------
# Create a user (+ optional permissions and reporting lines)
# -------------------------------------------------------------------
@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_new_user(
    data: UserCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("users", "add")),
):
    existing = await get_user_by_email(session, data.email)
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    try:
        # reject bad levels or reporting lines before the user row is committed
        if data.permissions is not None:
            plan_grants(data.role, data.permissions)
        if data.reports_to:
            await check_supervisors(session, data.email, list(data.reports_to))

        user = await create_user(
            session,
            email=data.email,
            full_name=data.full_name,
            role=data.role,
            branch=data.branch,
            status=data.status,
        )
        # no explicit levels: leave grants empty so the role defaults apply
        if data.permissions is not None:
            await save_grants(session, user, user.role, data.permissions)
        if data.reports_to:
            await set_supervisors(session, user, list(data.reports_to), created_by=current_user.email)
    except (InputError, StoreError) as e:
        raise _http_error(e)

    background_tasks.add_task(
        audit_service.log_activity,
        action=audit_service.USER_CREATED,
        actor_email=current_user.email,
        actor_role=current_user.role,
        target_email=user.email,
        details={"role": user.role, "branch": user.branch},
    )
    return user


# -------------------------------------------------------------------
# List / read
# -------------------------------------------------------------------
@router.get("/", response_model=List[UserRead])
async def list_all_users(
    role: Optional[str] = None,
    status: Optional[UserStatus] = None,
    session: AsyncSession = Depends(get_db_session),
    _: User = Depends(require_module("users")),
):
    return await list_users(session, role=role, status=status.value if status else None)


@router.get("/{email}", response_model=UserRead)
async def read_user(
    email: str,
    session: AsyncSession = Depends(get_db_session),
    _: User = Depends(require_module("users")),
):
    return await _get_or_404(session, email)


# -------------------------------------------------------------------
# Update role / branch / status / name
# -------------------------------------------------------------------
@router.patch("/{email}", response_model=UserRead)
async def edit_user(
    email: str,
    data: UserUpdate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("users", "edit")),
):
    user = await _get_or_404(session, email)
    try:
        user = await update_user(
            session,
            user,
            full_name=data.full_name,
            role=data.role,
            branch=data.branch,
            status=data.status,
            clear_branch=data.clear_branch,
        )
    except (InputError, StoreError) as e:
        raise _http_error(e)

    background_tasks.add_task(
        audit_service.log_activity,
        action=audit_service.USER_UPDATED,
        actor_email=current_user.email,
        actor_role=current_user.role,
        target_email=user.email,
        details=data.model_dump(exclude_none=True, mode="json"),
    )
    return user


# -------------------------------------------------------------------
# Deactivate (soft delete)
# -------------------------------------------------------------------
@router.delete("/{email}", response_model=UserRead)
async def remove_user(
    email: str,
    background_tasks: BackgroundTasks,
    status_value: UserStatus = UserStatus.Inactive,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("users", "delete")),
):
    user = await _get_or_404(session, email)
    if user.email == current_user.email:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    try:
        user = await deactivate_user(session, user, status=status_value)
    except (InputError, StoreError) as e:
        raise _http_error(e)

    background_tasks.add_task(
        audit_service.log_activity,
        action=audit_service.USER_DEACTIVATED,
        actor_email=current_user.email,
        actor_role=current_user.role,
        target_email=user.email,
        details={"status": user.status},
    )
    return user


# -------------------------------------------------------------------
# Reporting hierarchy
# -------------------------------------------------------------------
@router.get("/{email}/reporting", response_model=ReportingLines)
async def read_reporting_lines(
    email: str,
    session: AsyncSession = Depends(get_db_session),
    _: User = Depends(require_module("users")),
):
    user = await _get_or_404(session, email)
    return ReportingLines(
        email=user.email,
        reports_to=await get_supervisors(session, user.email),
        subordinates=await get_subordinates(session, user.email),
    )


@router.put("/{email}/reporting", response_model=ReportingLines)
async def replace_reporting_lines(
    email: str,
    data: ReportingUpdate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("users", "edit")),
):
    user = await _get_or_404(session, email)
    try:
        supervisors = await set_supervisors(
            session, user, list(data.reports_to), created_by=current_user.email
        )
    except (InputError, StoreError) as e:
        raise _http_error(e)

    background_tasks.add_task(
        audit_service.log_activity,
        action=audit_service.REPORTING_UPDATED,
        actor_email=current_user.email,
        actor_role=current_user.role,
        target_email=user.email,
        details={"reports_to": supervisors},
    )
    return ReportingLines(
        email=user.email,
        reports_to=supervisors,
        subordinates=await get_subordinates(session, user.email),
    )
