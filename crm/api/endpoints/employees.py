# crm/api/endpoints/employees.py

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from crm.api.deps import get_db_session, require_module
from crm.models.user import User, UserStatus
from crm.schemas.user import UserRead
from crm.services.user_service import list_branch_roster

router = APIRouter(prefix="/api/employees", tags=["Employees"])


# Super Admin → every branch, optionally narrowed with ?branch=
# Everyone else → their own branch only; no branch assigned → empty list
@router.get("/", response_model=List[UserRead])
async def list_employees(
    branch: Optional[str] = None,
    status: Optional[UserStatus] = None,
    session: AsyncSession = Depends(get_db_session),
    current_user: User = Depends(require_module("employees")),
):
    return await list_branch_roster(
        session,
        current_user,
        selected_branch=branch,
        status=status.value if status else None,
    )
