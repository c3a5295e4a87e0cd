# crm/services/audit_service.py

from typing import Optional, Dict, Any
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from crm.models.audit import AuditLog
from crm.core.database import AsyncSessionLocal

PERMISSIONS_UPDATED = "PERMISSIONS_UPDATED"
USER_CREATED = "USER_CREATED"
USER_UPDATED = "USER_UPDATED"
USER_DEACTIVATED = "USER_DEACTIVATED"
REPORTING_UPDATED = "REPORTING_UPDATED"


async def log_activity(
    action: str,
    actor_email: Optional[str] = None,
    actor_role: Optional[str] = None,
    target_email: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
):
    """
    Creates an audit log entry in its own DB session.
    Safe for use in BackgroundTasks; a failed write is logged, never raised.
    """
    async with AsyncSessionLocal() as session:
        try:
            session.add(
                AuditLog(
                    actor_email=actor_email,
                    actor_role=actor_role,
                    action=action,
                    target_email=target_email,
                    details=details or {},
                )
            )
            await session.commit()

        except SQLAlchemyError:
            logger.exception("Audit log write failed ({})", action)
            await session.rollback()
