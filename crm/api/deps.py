# crm/api/deps.py

from typing import AsyncGenerator
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.security import decode_token
from crm.core.database import get_session
from crm.core.modules import canonicalize, is_known_module
from crm.models.user import User, UserStatus
from crm.services.grant_store import resolve_for_user
from crm.services.permission_resolver import OPERATIONS, EffectivePermissionSet
from crm.services.user_service import get_user_by_email


# ------------------------------------------------------------
# HTTP Bearer Authentication
# ------------------------------------------------------------
bearer_scheme = HTTPBearer(auto_error=True)


# ------------------------------------------------------------
# DB Session
# ------------------------------------------------------------
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


# ------------------------------------------------------------
# Current user from the identity provider's JWT
# ------------------------------------------------------------
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> User:

    try:
        payload = decode_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Could not validate credentials")

    email = payload.get("sub")
    if not email:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token payload")

    user = await get_user_by_email(session, email)
    if not user:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User not found")

    if user.status != UserStatus.Active.value:
        raise HTTPException(status.HTTP_403_FORBIDDEN, f"Account is {user.status}")

    return user


# ------------------------------------------------------------
# Effective permissions (re-resolved on every request)
# ------------------------------------------------------------
async def get_current_permissions(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> EffectivePermissionSet:
    return await resolve_for_user(session, current_user)


def require_module(module: str, op: str = "view"):
    """
    Dependency factory gating a route on one module operation.

        current_user: User = Depends(require_module("employees"))
        current_user: User = Depends(require_module("users", "edit"))
    """
    if not is_known_module(module):
        raise RuntimeError(f"require_module(): unknown module '{module}'")
    if op not in OPERATIONS:
        raise RuntimeError(f"require_module(): unknown operation '{op}'")

    canonical = canonicalize(module)

    async def checker(
        current_user: User = Depends(get_current_user),
        permissions: EffectivePermissionSet = Depends(get_current_permissions),
    ) -> User:
        if not permissions.can(canonical, op):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Cannot {op} in {canonical} module"
            )
        return current_user

    return checker
