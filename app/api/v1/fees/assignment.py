"""Fee configuration by quota: one management student, or a whole government cohort."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import BatchOutcome, FeeType, Quota
from app.core.exceptions import InvalidAmount, ServiceError
from app.core.models import Student

from .store import get_student_by_usn, upsert_record

logger = logging.getLogger(__name__)


@dataclass
class StudentOutcome:
    student_id: UUID
    usn: str
    record_id: Optional[UUID] = None
    error: Optional[str] = None


@dataclass
class AssignmentResult:
    outcome: BatchOutcome
    succeeded: List[StudentOutcome] = field(default_factory=list)
    failed: List[StudentOutcome] = field(default_factory=list)


def _batch_outcome(succeeded: list, failed: list) -> BatchOutcome:
    if not succeeded and not failed:
        return BatchOutcome.EMPTY
    if not failed:
        return BatchOutcome.COMPLETED
    if not succeeded:
        return BatchOutcome.FAILED
    return BatchOutcome.PARTIAL_FAILURE


async def configure_fee(
    db: AsyncSession,
    quota: Quota,
    year: int,
    amount: int,
    usn: Optional[str] = None,
    fee_type: FeeType = FeeType.COLLEGE,
    semester: Optional[int] = None,
    changed_by: Optional[UUID] = None,
) -> AssignmentResult:
    """
    Set amount_due for (year, semester, fee_type). Re-running with the same values is a no-op.

    Management quota targets the single student identified by usn and raises on failure.
    Government quota targets every government student currently in ``year``; each student is
    committed separately and failures are reported in the result instead of raised.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmount("Fee amount must be a non-negative whole number")
    if year not in (1, 2, 3, 4):
        raise ServiceError("Year must be between 1 and 4", status.HTTP_400_BAD_REQUEST)
    quota = Quota(quota)
    fee_type = FeeType(fee_type).value

    if quota == Quota.MANAGEMENT:
        if not (usn or "").strip():
            raise ServiceError("USN is required for management quota", status.HTTP_400_BAD_REQUEST)
        student = await get_student_by_usn(db, usn)
        try:
            record = await upsert_record(db, student.id, year, semester, fee_type, amount, changed_by)
            await db.commit()
        except (ServiceError, SQLAlchemyError):
            await db.rollback()
            raise
        logger.info("Configured %s fee %d for %s (year %d)", fee_type, amount, student.usn, year)
        return AssignmentResult(
            outcome=BatchOutcome.COMPLETED,
            succeeded=[StudentOutcome(student_id=student.id, usn=student.usn, record_id=record.id)],
        )

    rows = await db.execute(
        select(Student.id, Student.usn)
        .where(Student.quota == Quota.GOVERNMENT.value, Student.current_year == year)
        .order_by(Student.usn)
    )
    targets = [(sid, susn) for sid, susn in rows.all()]

    succeeded: List[StudentOutcome] = []
    failed: List[StudentOutcome] = []
    for student_id, student_usn in targets:
        try:
            record = await upsert_record(db, student_id, year, semester, fee_type, amount, changed_by)
            record_id = record.id
            await db.commit()
        except ServiceError as e:
            await db.rollback()
            failed.append(StudentOutcome(student_id=student_id, usn=student_usn, error=e.message))
            logger.warning("Fee configuration skipped for %s: %s", student_usn, e.message)
            continue
        except SQLAlchemyError:
            await db.rollback()
            failed.append(StudentOutcome(student_id=student_id, usn=student_usn, error="Fee store unavailable"))
            logger.exception("Fee configuration failed for %s", student_usn)
            continue
        succeeded.append(StudentOutcome(student_id=student_id, usn=student_usn, record_id=record_id))

    outcome = _batch_outcome(succeeded, failed)
    logger.info(
        "Bulk %s fee %d for government year %d: %d ok, %d failed (%s)",
        fee_type, amount, year, len(succeeded), len(failed), outcome.value,
    )
    return AssignmentResult(outcome=outcome, succeeded=succeeded, failed=failed)
