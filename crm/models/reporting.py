# crm/models/reporting.py

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, String, UniqueConstraint
from datetime import datetime
from typing import Optional
import uuid

from crm.models.user import utcnow


class ReportingEdge(SQLModel, table=True):
    """Informational supervisor link. Never read by authorization code."""

    __tablename__ = "user_reporting_hierarchy"
    __table_args__ = (
        UniqueConstraint("user_email", "reports_to_email", name="uq_reporting_pair"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    reports_to_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))

    created_by: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
