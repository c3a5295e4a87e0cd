# crm/models/user.py

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import DateTime, JSON, String
from datetime import datetime, timezone
import uuid
from enum import Enum
from typing import List, Optional


class UserRole(str, Enum):
    SuperAdmin = "Super Admin"
    Admin = "Admin"
    BranchDirector = "Branch Director"
    Manager = "Manager"
    Counsellor = "Counsellor"
    Staff = "Staff"
    Teacher = "Teacher"
    Director = "Director"
    Reporter = "Reporter"


class UserStatus(str, Enum):
    Active = "Active"
    Inactive = "Inactive"
    Dormant = "Dormant"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A principal: one staff account of the CRM, keyed by email."""

    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    email: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )
    full_name: str = Field(nullable=False)

    # role stays a free string: custom roles are allowed next to UserRole
    role: str = Field(sa_column=Column(String(64), nullable=False))

    # branch scope tag; None means the user is not attached to a branch yet
    branch: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True)
    )

    status: str = Field(
        default=UserStatus.Active.value,
        sa_column=Column(String(16), nullable=False, default=UserStatus.Active.value)
    )

    # legacy permission list: module ids visible (view-only) to this user
    permissions: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False)
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
