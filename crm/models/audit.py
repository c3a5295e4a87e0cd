# crm/models/audit.py

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional, Dict, Any
from uuid import UUID, uuid4
from datetime import datetime

from crm.models.user import utcnow


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None

    action: str
    target_email: Optional[str] = None

    # e.g. {"role": "...", "levels": {"cases": "CRUD", ...}}
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    timestamp: datetime = Field(default_factory=utcnow)
