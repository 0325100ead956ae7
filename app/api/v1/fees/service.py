"""Fees service: student lookup, fee counter edits and ledger views."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import FeeType, Quota
from app.core.exceptions import NotFound
from app.core.models import PaymentTransaction, Student

from .assignment import configure_fee
from .eligibility import evaluate_eligibility
from .ledger import DirectSet, IncrementalPayment, apply_corrections, apply_payment
from .schemas import (
    ConfigureFeeRequest,
    ConfigureFeeResponse,
    EligibilityResponse,
    FeeRecordResponse,
    StudentFeesUpdate,
    StudentFeeView,
    TransactionResponse,
)
from .store import get_records, get_student_by_usn


def _current_year_due(student: Student, records, fee_type: FeeType) -> int:
    return sum(
        r.amount_due - r.amount_paid
        for r in records
        if r.fee_type == fee_type.value and r.year == student.current_year
    )


def eligibility_response(student: Student, records, semester: Optional[int] = None) -> EligibilityResponse:
    result = evaluate_eligibility(student, records, semester=semester)
    return EligibilityResponse(
        is_eligible=result.is_eligible,
        eligible_for_odd_sem=result.eligible_for_odd_sem,
        eligible_for_even_sem=result.eligible_for_even_sem,
        reasons=result.reasons,
        total_due=result.total_due,
        total_paid=result.total_paid,
        paid_ratio=result.paid_ratio,
    )


async def build_student_view(db: AsyncSession, student: Student) -> StudentFeeView:
    records = await get_records(db, student.id)
    return StudentFeeView(
        id=student.id,
        usn=student.usn,
        name=student.name,
        department=student.department,
        current_year=student.current_year,
        quota=student.quota,
        entry_type=student.entry_type,
        college_fee_due=_current_year_due(student, records, FeeType.COLLEGE),
        transport_fee_due=_current_year_due(student, records, FeeType.TRANSPORT),
        fee_records=[FeeRecordResponse.model_validate(r) for r in records],
        eligibility=eligibility_response(student, records),
    )


async def search_student(db: AsyncSession, query: str) -> StudentFeeView:
    student = await get_student_by_usn(db, query)
    return await build_student_view(db, student)


async def configure(
    db: AsyncSession,
    payload: ConfigureFeeRequest,
    changed_by: Optional[UUID] = None,
) -> ConfigureFeeResponse:
    result = await configure_fee(
        db,
        quota=payload.quota,
        year=payload.current_year,
        amount=payload.amount,
        usn=payload.usn if payload.quota == Quota.MANAGEMENT else None,
        fee_type=payload.fee_type,
        semester=payload.semester,
        changed_by=changed_by,
    )
    return ConfigureFeeResponse.model_validate(result)


async def update_student_fees(
    db: AsyncSession,
    usn: str,
    payload: StudentFeesUpdate,
    changed_by: Optional[UUID] = None,
) -> StudentFeeView:
    student = await get_student_by_usn(db, usn)
    student_id = student.id

    if payload.fee_record_id is not None:
        await apply_payment(
            db,
            IncrementalPayment(
                record_id=payload.fee_record_id,
                amount=payload.amount,
                mode=payload.mode,
                reference=payload.reference,
                student_id=student_id,
            ),
            recorded_by=changed_by,
        )
    else:
        # Both balances change together or not at all.
        corrections = [
            DirectSet(student_id=student_id, fee_type=fee_type, new_balance=balance)
            for fee_type, balance in (
                (FeeType.COLLEGE, payload.college_fee_due),
                (FeeType.TRANSPORT, payload.transport_fee_due),
            )
            if balance is not None
        ]
        await apply_corrections(db, corrections, recorded_by=changed_by)

    # The ledger commits; reload so the view reflects the stored row versions.
    student = await db.get(Student, student_id, populate_existing=True)
    return await build_student_view(db, student)


async def get_student_for_user(db: AsyncSession, user_id: UUID) -> Student:
    student = (await db.execute(select(Student).where(Student.user_id == user_id))).scalar_one_or_none()
    if not student:
        raise NotFound("No student profile is linked to this account")
    return student


async def get_eligibility(db: AsyncSession, student: Student, semester: Optional[int] = None) -> EligibilityResponse:
    records = await get_records(db, student.id)
    return eligibility_response(student, records, semester=semester)


async def list_transactions(db: AsyncSession, student_id: UUID) -> List[TransactionResponse]:
    result = await db.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.student_id == student_id)
        .order_by(PaymentTransaction.created_at.desc())
    )
    return [TransactionResponse.model_validate(t) for t in result.scalars().all()]


async def list_transactions_for_usn(db: AsyncSession, usn: str) -> List[TransactionResponse]:
    student = await get_student_by_usn(db, usn)
    return await list_transactions(db, student.id)
