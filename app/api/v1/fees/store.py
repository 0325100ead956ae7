"""Fee record store: reads and configuration upserts of fee records. Caller must commit."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidAmount, NotFound, OverpaymentRejected, StudentNotFound
from app.core.models import FeeAuditLog, FeeRecord, Student

logger = logging.getLogger(__name__)


def _record_order():
    return (
        FeeRecord.year,
        FeeRecord.semester.asc().nullslast(),
        FeeRecord.fee_type,
    )


async def log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    db.add(
        FeeAuditLog(
            reference_table=reference_table,
            reference_id=reference_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
        )
    )


async def get_student(db: AsyncSession, student_id: UUID) -> Student:
    student = await db.get(Student, student_id)
    if not student:
        raise NotFound("Student not found")
    return student


async def get_student_by_usn(db: AsyncSession, usn: str) -> Student:
    key = (usn or "").strip().upper()
    student = (
        await db.execute(select(Student).where(func.upper(Student.usn) == key))
    ).scalar_one_or_none()
    if not student:
        raise StudentNotFound(usn)
    return student


async def get_records(db: AsyncSession, student_id: UUID) -> List[FeeRecord]:
    """All fee records of a student ordered by year, then semester (nulls last)."""
    await get_student(db, student_id)
    result = await db.execute(
        select(FeeRecord).where(FeeRecord.student_id == student_id).order_by(*_record_order())
    )
    return list(result.scalars().all())


async def find_record(db: AsyncSession, record_id: UUID, *, for_update: bool = False) -> FeeRecord:
    stmt = select(FeeRecord).where(FeeRecord.id == record_id)
    if for_update:
        # Reload even if the identity map holds a copy; the locked row is the one we mutate.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    record = (await db.execute(stmt)).scalar_one_or_none()
    if not record:
        raise NotFound("Fee record not found")
    return record


async def find_record_for(
    db: AsyncSession,
    student_id: UUID,
    year: int,
    semester: Optional[int],
    fee_type: str,
    *,
    for_update: bool = False,
) -> Optional[FeeRecord]:
    stmt = select(FeeRecord).where(
        FeeRecord.student_id == student_id,
        FeeRecord.year == year,
        FeeRecord.fee_type == fee_type,
        FeeRecord.semester.is_(None) if semester is None else FeeRecord.semester == semester,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalars().first()


async def find_records_of_type(
    db: AsyncSession,
    student_id: UUID,
    year: int,
    fee_type: str,
    *,
    for_update: bool = False,
) -> List[FeeRecord]:
    """Every record of one fee type for a year, any semester, in ledger order."""
    stmt = (
        select(FeeRecord)
        .where(FeeRecord.student_id == student_id, FeeRecord.year == year, FeeRecord.fee_type == fee_type)
        .order_by(*_record_order())
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return list((await db.execute(stmt)).scalars().all())


async def upsert_record(
    db: AsyncSession,
    student_id: UUID,
    year: int,
    semester: Optional[int],
    fee_type: str,
    amount_due: int,
    changed_by: Optional[UUID] = None,
) -> FeeRecord:
    """Create the (student, year, semester, fee_type) record, or overwrite its amount_due."""
    if amount_due is None or amount_due < 0:
        raise InvalidAmount("Fee amount cannot be negative")

    record = await find_record_for(db, student_id, year, semester, fee_type, for_update=True)
    if record is None:
        record = FeeRecord(
            student_id=student_id,
            year=year,
            semester=semester,
            fee_type=fee_type,
            amount_paid=0,
        )
        record.set_amounts(amount_due=amount_due)
        db.add(record)
        await db.flush()
        await log_fee_audit(db, "fee_records", record.id, "CREATE", None, record.snapshot(), changed_by)
        logger.info("Created %s fee record %s for student %s: due %d", fee_type, record.id, student_id, amount_due)
        return record

    if record.amount_paid > amount_due:
        raise OverpaymentRejected(
            amount_due,
            record.amount_paid,
            0,
            message=f"Amount due {amount_due} is below the {record.amount_paid} already paid",
        )
    old = record.snapshot()
    record.set_amounts(amount_due=amount_due)
    await db.flush()
    await log_fee_audit(db, "fee_records", record.id, "UPDATE", old, record.snapshot(), changed_by)
    return record
