# crm/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import sys

from crm.core.database import test_connection, init_db, AsyncSessionLocal
from crm.core.config import settings
from crm.models.user import UserRole
from crm.services.grant_editor import save_grants
from crm.services.user_service import create_user, get_user_by_email

# Table models must be imported before init_db() creates the schema
from crm.models import audit, permission, reporting, user  # noqa: F401

# Routers
from crm.api.endpoints import (
    employees as employees_router,
    permissions as permissions_router,
    users as users_router,
)

# ------------------------------------------------------------
# LOGURU CONFIGURATION
# ------------------------------------------------------------
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
           "<level>{level}</level> | "
           "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
           "<level>{message}</level>",
    colorize=True,
    backtrace=True,
    diagnose=settings.ENV != "prod",
)

# ------------------------------------------------------------
# FASTAPI APP INIT
# ------------------------------------------------------------
app = FastAPI(
    title="Consultancy CRM Access Service",
    version="1.0.0",
    description="Module permissions, user administration and branch scoping for the CRM.",
)

# ------------------------------------------------------------
# CORS CONFIGURATION
# ------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ------------------------------------------------------------
# REGISTER ROUTERS
# ------------------------------------------------------------
app.include_router(permissions_router.router)
app.include_router(users_router.router)
app.include_router(employees_router.router)


# ------------------------------------------------------------
# APPLICATION STARTUP EVENTS
# ------------------------------------------------------------
@app.on_event("startup")
async def on_startup():
    logger.info("Starting CRM access service...")

    try:
        await test_connection()
        await init_db()
        logger.success("Database tables ready.")
    except Exception:
        logger.exception("Startup aborted: database not reachable.")
        return

    if not settings.SUPER_ADMIN_EMAIL:
        logger.warning("SUPER_ADMIN_EMAIL not set, skipping super admin seeding.")
        return

    try:
        async with AsyncSessionLocal() as session:
            existing = await get_user_by_email(session, settings.SUPER_ADMIN_EMAIL)
            if existing:
                logger.info("Super Admin already exists. Skipping.")
            else:
                logger.info("Seeding Super Admin: {}", settings.SUPER_ADMIN_EMAIL)
                admin = await create_user(
                    session,
                    email=settings.SUPER_ADMIN_EMAIL,
                    full_name=settings.SUPER_ADMIN_NAME or "Super Admin",
                    role=UserRole.SuperAdmin,
                )
                await save_grants(session, admin, UserRole.SuperAdmin, {})
                logger.success("Super Admin created successfully.")
    except Exception:
        logger.exception("Super Admin seeding failed.")

    logger.success("Startup completed.")


# ------------------------------------------------------------
# ROOT HEALTH CHECK
# ------------------------------------------------------------
@app.get("/", tags=["System"])
async def root():
    return {
        "status": "ok",
        "service": app.title,
        "version": app.version,
    }
