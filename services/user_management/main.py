# uvicorn services.user_management.main:app --host 0.0.0.0 --port 20011 --reload

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Literal, Optional

import validators
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

load_dotenv()

from common.complaint_types import Category, Role
from common.constants import AUDIT_EVENT_USER_MANAGEMENT, IDENTITY_WEBHOOK_HEADER
from common.errors import (
    AuthenticationError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from libs.audit_logger import write_audit
from libs.auth.jwt_verify import Actor, ensure_role, get_current_actor
from libs.config import config
from libs.db import get_database_factory, get_db
from libs.fastapi_service import CORSMiddlewareConfig, FastAPIServiceFactory, ServiceAppConfig
from models.audit import Base as AuditBase
from models.user_models import Base as UserBase
from models.user_models import User

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "user_management"


@asynccontextmanager
async def lifespan(app: FastAPI):
    factory = get_database_factory()
    factory.initialize()
    if config.DB_CREATE_TABLES:
        await factory.create_tables([UserBase, AuditBase])
    yield
    await factory.dispose()


service_config = ServiceAppConfig(
    title="User Management Service",
    description="Citizen and staff profiles synced from the identity provider.",
    service_name=SERVICE_NAME,
    cors_config=CORSMiddlewareConfig(allow_origins=config.cors_origins()),
    lifespan=lifespan,
)
service_factory = FastAPIServiceFactory(service_config)
app = service_factory.create_app()

# Business metric: profiles created through the identity webhook
USER_REGISTRATION_TOTAL = service_factory.add_business_metric(
    "user_registrations_total",
    "Total user profiles created from the identity provider",
)


# ========= Models =========


class SyncUserRequest(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: str
    name: Optional[str] = None
    role: Role
    department: Optional[Category] = None
    created_at: datetime
    updated_at: datetime


class SyncUserResponse(BaseModel):
    status: Literal["created", "updated"]
    user: UserResponse


class UpdateUserRequest(BaseModel):
    role: Role
    department: Optional[Category] = None


# ========= Helpers =========


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_webhook_secret(secret: Optional[str]) -> None:
    expected = config.IDENTITY_WEBHOOK_SECRET
    if not expected:
        logger.error("IDENTITY_WEBHOOK_SECRET is not configured")
        raise DependencyError("Identity webhook is not configured")
    if not secret or not hmac.compare_digest(secret, expected):
        raise AuthenticationError("Invalid webhook secret")


async def _load_user(db: AsyncSession, user_id: str) -> Optional[User]:
    try:
        result = await db.execute(select(User).where(User.user_id == user_id))
    except SQLAlchemyError as e:
        logger.exception("Failed to load user %s", user_id)
        raise DependencyError("Failed to load user") from e
    return result.scalar_one_or_none()


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Integrity error saving %s: %s", what, e)
        raise ValidationError(f"Could not save {what}") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Database error saving %s", what)
        raise DependencyError(f"Database error while saving {what}") from e


# ========= Routes =========


@app.get("/")
async def root():
    return {"service": SERVICE_NAME, "status": "running"}


@app.post(
    "/v1/webhooks/identity/sync-user",
    response_model=SyncUserResponse,
    tags=["Webhooks"],
)
async def sync_user(
    payload: SyncUserRequest,
    webhook_secret: Optional[str] = Header(None, alias=IDENTITY_WEBHOOK_HEADER),
    db: AsyncSession = Depends(get_db),
):
    """
    Called by the identity provider after sign-up or login.

    Creates a citizen profile on first sight, otherwise refreshes email and
    name. Role and department are never changed here.
    """
    _check_webhook_secret(webhook_secret)
    if validators.email(payload.email) is not True:
        raise ValidationError("Invalid email address")

    now = _utcnow()
    user = await _load_user(db, payload.user_id)
    if user is None:
        user = User(
            user_id=payload.user_id,
            email=payload.email,
            name=payload.name,
            role=Role.CITIZEN.value,
            department=None,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        status = "created"
    else:
        user.email = payload.email
        if payload.name:
            user.name = payload.name
        user.updated_at = now
        status = "updated"

    await _commit(db, "user")
    if status == "created":
        USER_REGISTRATION_TOTAL.inc()
    logger.info("Identity sync %s user %s", status, payload.user_id)

    return SyncUserResponse(status=status, user=UserResponse.model_validate(user))


@app.get("/v1/users", response_model=List[UserResponse], tags=["User Management"])
async def list_users(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    ensure_role(actor, {Role.SUPERADMIN})
    try:
        result = await db.execute(select(User).order_by(User.created_at.desc()))
    except SQLAlchemyError as e:
        logger.exception("Failed to list users")
        raise DependencyError("Failed to list users") from e
    return list(result.scalars().all())


@app.get("/v1/users/me", response_model=UserResponse, tags=["User Management"])
async def get_me(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await _load_user(db, actor.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@app.put("/v1/users/{user_id}", response_model=UserResponse, tags=["User Management"])
async def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's role; only admins belong to a department."""
    ensure_role(actor, {Role.SUPERADMIN})

    department = None
    if payload.role == Role.ADMIN:
        if payload.department is None:
            raise ValidationError("Department is required for admins")
        department = payload.department.value

    user = await _load_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")

    previous = user.role
    user.role = payload.role.value
    user.department = department
    user.updated_at = _utcnow()

    await write_audit(
        db=db,
        event_type=AUDIT_EVENT_USER_MANAGEMENT,
        message=f"role {previous} -> {user.role}, department {department or '-'}",
        user_id=actor.user_id,
    )
    await _commit(db, "user")
    logger.info("User %s updated by %s: role=%s department=%s", user_id, actor.user_id, user.role, department)
    return user
