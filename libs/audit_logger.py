# libs/audit_logger.py
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import common.storage as _storage
from common.constants import AUDIT_EVENT_COMPLAINT, AUDIT_EVENT_USER_MANAGEMENT
from models.audit import Audit

logger = logging.getLogger(__name__)

ALLOWED_EVENT_TYPES = {AUDIT_EVENT_COMPLAINT, AUDIT_EVENT_USER_MANAGEMENT}


def _normalize_event_type(event_type: str) -> str:
    et = (event_type or "").strip()
    if len(et) > 50:
        et = et[:50]
    return et


async def write_audit(
    *,
    db: AsyncSession,
    event_type: str,
    message: str,
    user_id: Optional[str] = None,
    event_id: Optional[uuid.UUID] = None,
    commit: bool = False,
) -> Optional[uuid.UUID]:
    """
    Write an audit record into the caller's unit of work.

    Args:
        db: AsyncSession of the current request
        event_type: complaint / user_management / ...
        message: human-readable message (NOT NULL)
        user_id: who triggered the event (nullable)
        event_id: affected entity id (complaint_id, ...)
        commit: commit here instead of leaving it to the caller (default False)

    Returns:
        log_id (UUID) on success, None on failure
    """
    if db is None:
        raise ValueError("write_audit requires an AsyncSession")

    et = _normalize_event_type(event_type)
    if et not in ALLOWED_EVENT_TYPES:
        logger.warning("Unknown audit event_type '%s', still logging.", et)

    msg = (message or "").strip() or "(no message)"

    audit_row = Audit(
        log_id=uuid.uuid4(),
        user_id=user_id,
        event_type=et,
        event_id=event_id,
        message=msg,
    )

    try:
        # Savepoint so a failed audit insert does not poison the main transaction
        async with db.begin_nested():
            db.add(audit_row)

        if commit:
            await db.commit()

        return audit_row.log_id

    except Exception as exc:
        logger.exception(
            "Audit write failed: event_type=%s user_id=%s event_id=%s error=%s",
            et,
            user_id,
            str(event_id) if event_id else None,
            repr(exc),
        )
        # Keep the audit in memory so it is not lost while the DB is down
        _storage.audit_logs.append(
            {
                "event_type": et,
                "user_id": user_id,
                "event_id": str(event_id) if event_id else None,
                "message": msg,
                "error": repr(exc),
            }
        )
        return None


async def list_audit(
    *,
    db: AsyncSession,
    event_id: uuid.UUID,
    event_type: Optional[str] = None,
) -> List[Audit]:
    """Return audit rows for one entity, oldest first."""
    stmt = select(Audit).where(Audit.event_id == event_id)
    if event_type:
        stmt = stmt.where(Audit.event_type == _normalize_event_type(event_type))
    result = await db.execute(stmt.order_by(Audit.created_at.asc()))
    return list(result.scalars().all())
