from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr

from crm.models.user import UserStatus


# ---------------------------------------------------------
# BASE
# ---------------------------------------------------------
class UserBase(BaseModel):
    full_name: str
    email: EmailStr


# ---------------------------------------------------------
# CREATE USER (Super Admin creates any user)
# ---------------------------------------------------------
class UserCreate(UserBase):
    role: str                                   # UserRole value or a custom role
    branch: Optional[str] = None
    status: UserStatus = UserStatus.Active
    # module -> access level; omit to fall back on the role defaults
    permissions: Optional[Dict[str, str]] = None
    reports_to: List[EmailStr] = []

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "full_name": "Counsellor User",
                    "email": "counsellor@example.com",
                    "role": "Counsellor",
                    "branch": "i8",
                    "permissions": {"students": "ADD_EDIT", "cases": "VIEW"},
                    "reports_to": ["manager@example.com"]
                }
            ]
        }


# ---------------------------------------------------------
# UPDATE USER (all fields optional)
# ---------------------------------------------------------
class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = None
    branch: Optional[str] = None
    clear_branch: bool = False
    status: Optional[UserStatus] = None


# ---------------------------------------------------------
# READ USER (response)
# ---------------------------------------------------------
class UserRead(UserBase):
    id: UUID
    role: str
    branch: Optional[str] = None
    status: str
    permissions: List[str] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReportingLines(BaseModel):
    email: EmailStr
    reports_to: List[str] = []
    subordinates: List[str] = []


class ReportingUpdate(BaseModel):
    reports_to: List[EmailStr] = []
