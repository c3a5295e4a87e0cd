# crm/services/user_service.py

from sqlmodel import select
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from loguru import logger

from crm.core.exceptions import InputError, StoreError
from crm.models.reporting import ReportingEdge
from crm.models.user import User, UserRole, UserStatus, utcnow
from crm.services.branch_scope import apply_branch_scope


def _role_value(role) -> str:
    value = role.value if isinstance(role, UserRole) else str(role or "").strip()
    if not value:
        raise InputError("Role is required", ["role"])
    return value


def _status_value(status) -> str:
    try:
        return UserStatus(status).value
    except ValueError:
        allowed = [s.value for s in UserStatus]
        raise InputError(f"Invalid status '{status}'. Allowed: {allowed}", ["status"])


# ============================================================================
# FETCH
# ============================================================================
async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def list_users(
    session: AsyncSession,
    role: str | None = None,
    status: str | None = None,
) -> list[User]:
    query = select(User).order_by(User.created_at.desc())
    if role:
        query = query.where(User.role == role)
    if status:
        query = query.where(User.status == status)
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_branch_roster(
    session: AsyncSession,
    principal: User,
    selected_branch: str | None = None,
    status: str | None = None,
) -> list[User]:
    """Personnel listing narrowed to what `principal` may see."""
    query = select(User).order_by(User.full_name.asc())
    if status:
        query = query.where(User.status == status)
    query = apply_branch_scope(query, principal, User.branch, selected_branch)
    result = await session.execute(query)
    return list(result.scalars().all())


# ============================================================================
# CREATE / UPDATE
# ============================================================================
async def create_user(
    session: AsyncSession,
    email: str,
    full_name: str,
    role,
    branch: str | None = None,
    status=UserStatus.Active,
) -> User:
    user = User(
        email=email,
        full_name=full_name,
        role=_role_value(role),
        branch=branch or None,
        status=_status_value(status),
        permissions=[],
    )
    session.add(user)

    try:
        await session.commit()
        await session.refresh(user)
        logger.info("User created: {} ({})", user.email, user.role)
        return user

    except IntegrityError:
        await session.rollback()
        raise InputError("User with this email already exists", ["email"])


async def update_user(
    session: AsyncSession,
    user: User,
    full_name: str | None = None,
    role=None,
    branch: str | None = None,
    status=None,
    clear_branch: bool = False,
) -> User:
    if full_name is not None:
        user.full_name = full_name
    if role is not None:
        user.role = _role_value(role)
    if clear_branch:
        user.branch = None
    elif branch is not None:
        user.branch = branch or None
    if status is not None:
        user.status = _status_value(status)
    user.updated_at = utcnow()
    email = user.email

    session.add(user)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Updating user {} failed", email)
        raise StoreError(f"Could not update {email}") from exc
    await session.refresh(user)
    return user


async def deactivate_user(session: AsyncSession, user: User, status=UserStatus.Inactive) -> User:
    # users are never deleted; grants and history stay in place
    if _status_value(status) == UserStatus.Active.value:
        raise InputError("Deactivation status must be Inactive or Dormant", ["status"])
    return await update_user(session, user, status=status)


# ============================================================================
# REPORTING HIERARCHY (informational only)
# ============================================================================
async def get_supervisors(session: AsyncSession, email: str) -> list[str]:
    result = await session.execute(
        select(ReportingEdge.reports_to_email)
        .where(ReportingEdge.user_email == email)
        .order_by(ReportingEdge.reports_to_email)
    )
    return list(result.scalars().all())


async def get_subordinates(session: AsyncSession, email: str) -> list[str]:
    result = await session.execute(
        select(ReportingEdge.user_email)
        .where(ReportingEdge.reports_to_email == email)
        .order_by(ReportingEdge.user_email)
    )
    return list(result.scalars().all())


async def check_supervisors(
    session: AsyncSession, email: str, supervisor_emails: list[str]
) -> list[str]:
    """Validate a reporting line for `email` without writing anything."""
    wanted = sorted(set(e for e in supervisor_emails if e))
    if email in wanted:
        raise InputError("A user cannot report to themselves", [email])

    if wanted:
        result = await session.execute(select(User.email).where(User.email.in_(wanted)))
        missing = set(wanted) - set(result.scalars().all())
        if missing:
            raise InputError(
                "Unknown supervisor(s): " + ", ".join(sorted(missing)), sorted(missing)
            )
    return wanted


async def set_supervisors(
    session: AsyncSession,
    user: User,
    supervisor_emails: list[str],
    created_by: str | None = None,
) -> list[str]:
    email = user.email
    wanted = await check_supervisors(session, email, supervisor_emails)

    try:
        await session.execute(delete(ReportingEdge).where(ReportingEdge.user_email == email))
        for supervisor in wanted:
            session.add(
                ReportingEdge(user_email=email, reports_to_email=supervisor, created_by=created_by)
            )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Updating reporting lines for {} failed", email)
        raise StoreError(f"Could not update reporting lines for {email}") from exc

    return wanted
