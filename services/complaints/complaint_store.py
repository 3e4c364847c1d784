"""
Complaint Store - Database operations for complaints.

Wraps one request-scoped AsyncSession. Every lifecycle mutation ends in
``commit`` which flushes the complaint (optimistic version check), records the
audit event and commits both together.
"""

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from common.constants import AUDIT_EVENT_COMPLAINT
from common.errors import ConflictError, DependencyError
from libs.audit_logger import list_audit, write_audit
from models.audit import Audit
from models.complaint import Complaint

logger = logging.getLogger(__name__)


class ComplaintStore:
    """Record store for Complaint rows backed by PostgreSQL."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def add(self, complaint: Complaint) -> None:
        self.db.add(complaint)

    async def get(self, complaint_id: uuid.UUID) -> Optional[Complaint]:
        """
        Retrieve a complaint with its feedback history.

        Returns:
            Complaint if found, None otherwise
        """
        try:
            result = await self.db.execute(select(Complaint).where(Complaint.id == complaint_id))
        except SQLAlchemyError as e:
            logger.exception("Failed to load complaint %s", complaint_id)
            raise DependencyError("Failed to load complaint") from e
        return result.scalar_one_or_none()

    async def find(
        self,
        *,
        department: Optional[str] = None,
        reporter_id: Optional[str] = None,
    ) -> List[Complaint]:
        """
        List complaints newest-first.

        Args:
            department: Only complaints routed to this department (forwarded
                department, else category)
            reporter_id: Only complaints reported by this user
        """
        stmt = select(Complaint)
        if department is not None:
            stmt = stmt.where(
                or_(
                    Complaint.department == department,
                    (Complaint.department.is_(None)) & (Complaint.category == department),
                )
            )
        if reporter_id is not None:
            stmt = stmt.where(Complaint.reporter_id == reporter_id)
        stmt = stmt.order_by(Complaint.created_at.desc())

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.exception("Failed to list complaints")
            raise DependencyError("Failed to list complaints") from e
        return list(result.scalars().all())

    async def count_by(self, field: str) -> Dict[str, int]:
        """Count complaints grouped by one column (status, category, priority)."""
        column = getattr(Complaint, field)
        try:
            result = await self.db.execute(select(column, func.count()).group_by(column))
        except SQLAlchemyError as e:
            logger.exception("Failed to count complaints by %s", field)
            raise DependencyError("Failed to compute statistics") from e
        return {str(key): int(count) for key, count in result.all()}

    async def history(self, complaint_id: uuid.UUID) -> List[Audit]:
        try:
            return await list_audit(
                db=self.db, event_id=complaint_id, event_type=AUDIT_EVENT_COMPLAINT
            )
        except SQLAlchemyError as e:
            logger.exception("Failed to load history for complaint %s", complaint_id)
            raise DependencyError("Failed to load complaint history") from e

    async def commit(self, complaint: Complaint, *, user_id: str, message: str) -> None:
        """
        Persist pending changes to ``complaint`` together with an audit event.

        Raises:
            ConflictError: If another request updated the complaint first
            DependencyError: On any other database failure
        """
        try:
            await self.db.flush()
            await write_audit(
                db=self.db,
                event_type=AUDIT_EVENT_COMPLAINT,
                message=message,
                user_id=user_id,
                event_id=complaint.id,
            )
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Concurrent update on complaint %s", complaint.id)
            raise ConflictError() from e
        except IntegrityError as e:
            await self.db.rollback()
            logger.exception("Integrity error saving complaint %s", complaint.id)
            raise DependencyError("Could not save complaint", status_code=400) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Database error saving complaint %s", complaint.id)
            raise DependencyError("Database error while saving complaint") from e
