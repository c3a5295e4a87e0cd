# crm/models/permission.py

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Boolean, UniqueConstraint
from typing import Optional
import uuid


class UserPermission(SQLModel, table=True):
    """One grant row per (user, module)."""

    __tablename__ = "user_permissions"
    __table_args__ = (
        UniqueConstraint("user_email", "module", name="uq_user_permissions_user_module"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    user_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    module: str = Field(sa_column=Column(String(64), nullable=False, index=True))

    # pre-flag rows only carried this ("VIEW" or "CRUD")
    access: str = Field(default="VIEW", sa_column=Column(String(8), nullable=False, default="VIEW"))

    # nullable: rows written before these columns existed have NULL here
    can_add: Optional[bool] = Field(default=False, sa_column=Column(Boolean, nullable=True))
    can_edit: Optional[bool] = Field(default=False, sa_column=Column(Boolean, nullable=True))
    can_delete: Optional[bool] = Field(default=False, sa_column=Column(Boolean, nullable=True))
