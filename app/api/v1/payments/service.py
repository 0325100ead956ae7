"""Student payments: gateway orders, verification, exam fees and history."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.eligibility import evaluate_eligibility
from app.api.v1.fees.ledger import settle_gateway_payment
from app.api.v1.fees.schemas import TransactionResponse
from app.api.v1.fees.service import list_transactions
from app.api.v1.fees.store import find_record, get_records
from app.core.config import settings
from app.core.enums import PaymentMode, PaymentType, TransactionKind, TransactionStatus
from app.core.exceptions import InvalidAmount, NotFound, OverpaymentRejected, ServiceError
from app.core.models import ExamNotification, FeeRecord, PaymentTransaction, Student

from .gateway import PaymentGateway
from .schemas import CreateOrderRequest, ExamNotificationStatus, OrderResponse, VerifyPaymentRequest

logger = logging.getLogger(__name__)


async def _paid_notification_ids(db: AsyncSession, student_id: UUID) -> set:
    result = await db.execute(
        select(PaymentTransaction.exam_notification_id).where(
            PaymentTransaction.student_id == student_id,
            PaymentTransaction.exam_notification_id.is_not(None),
            PaymentTransaction.status == TransactionStatus.completed.value,
        )
    )
    return set(result.scalars().all())


def _notification_status(
    n: ExamNotification,
    records,
    student: Student,
    paid_ids: set,
    today: date,
) -> ExamNotificationStatus:
    eligibility = evaluate_eligibility(student, records, semester=n.semester)
    is_open = n.is_open_on(today)
    is_paid = n.id in paid_ids
    return ExamNotificationStatus(
        id=n.id,
        year=n.year,
        semester=n.semester,
        exam_fee_amount=n.exam_fee_amount,
        late_fee=n.late_fee,
        late_fee_applied=n.late_fee_applied,
        total_amount=n.total_amount,
        start_date=n.start_date,
        end_date=n.end_date,
        description=n.description,
        is_open=is_open,
        is_paid=is_paid,
        is_exam_eligible=eligibility.is_eligible,
        can_pay=is_open and not is_paid and eligibility.is_eligible,
    )


async def list_exam_notifications(
    db: AsyncSession,
    student: Student,
    today: Optional[date] = None,
) -> List[ExamNotificationStatus]:
    """Active exam notices for the student's current year, with per-student payable status."""
    today = today or date.today()
    result = await db.execute(
        select(ExamNotification)
        .where(ExamNotification.is_active.is_(True), ExamNotification.year == student.current_year)
        .order_by(ExamNotification.semester, ExamNotification.start_date)
    )
    records = await get_records(db, student.id)
    paid_ids = await _paid_notification_ids(db, student.id)
    return [_notification_status(n, records, student, paid_ids, today) for n in result.scalars().all()]


async def _exam_fee_target(
    db: AsyncSession,
    student: Student,
    payload: CreateOrderRequest,
    today: date,
) -> ExamNotification:
    n = await db.get(ExamNotification, payload.exam_notification_id)
    if not n or not n.is_active or n.year != student.current_year:
        raise NotFound("Exam notification not found")
    records = await get_records(db, student.id)
    paid_ids = await _paid_notification_ids(db, student.id)
    st = _notification_status(n, records, student, paid_ids, today)
    if st.is_paid:
        raise ServiceError("Exam fee already paid", status.HTTP_409_CONFLICT)
    if not st.is_open:
        raise ServiceError(
            "Exam fee payment has not started" if today < n.start_date else "Exam fee payment window has closed",
            status.HTTP_400_BAD_REQUEST,
        )
    if not st.is_exam_eligible:
        need = "50%" if n.is_odd_semester else "100%"
        raise ServiceError(f"Not eligible: {need} of this year's fees must be paid", status.HTTP_403_FORBIDDEN)
    if payload.amount != n.total_amount:
        raise InvalidAmount(f"Exam fee amount must be {n.total_amount}")
    return n


async def _fee_record_target(db: AsyncSession, student: Student, payload: CreateOrderRequest) -> FeeRecord:
    fee_type = payload.payment_type.fee_type.value
    if payload.fee_record_id is not None:
        record = await find_record(db, payload.fee_record_id)
        if record.student_id != student.id or record.fee_type != fee_type:
            raise NotFound("Fee record not found")
    else:
        # Oldest outstanding record of this type is settled first.
        candidates = [r for r in await get_records(db, student.id) if r.fee_type == fee_type and r.balance > 0]
        if not candidates:
            raise NotFound(f"No outstanding {fee_type} fee")
        record = candidates[0]
    if payload.amount > record.balance:
        raise OverpaymentRejected(record.amount_due, record.amount_paid, payload.amount)
    return record


async def create_order(
    db: AsyncSession,
    student: Student,
    payload: CreateOrderRequest,
    gateway: PaymentGateway,
    today: Optional[date] = None,
) -> OrderResponse:
    """Open a gateway order and log it as a pending transaction. The ledger is not touched."""
    today = today or date.today()
    record_id = None
    notification_id = None
    if payload.payment_type == PaymentType.EXAM_FEE:
        notification_id = (await _exam_fee_target(db, student, payload, today)).id
    else:
        record_id = (await _fee_record_target(db, student, payload)).id

    order = await gateway.create_order(
        payload.amount,
        settings.payment_currency,
        {
            "receipt": f"{student.usn}-{payload.payment_type.value}",
            "usn": student.usn,
            "payment_type": payload.payment_type.value,
            "fee_record_id": record_id,
            "exam_notification_id": notification_id,
        },
    )
    txn = PaymentTransaction(
        student_id=student.id,
        fee_record_id=record_id,
        exam_notification_id=notification_id,
        kind=TransactionKind.PAYMENT.value,
        payment_type=payload.payment_type.value,
        amount=payload.amount,
        mode=PaymentMode.RAZORPAY.value,
        reference=order.order_id,
        gateway_order_id=order.order_id,
        status=TransactionStatus.pending.value,
        recorded_by=student.user_id,
    )
    db.add(txn)
    await db.commit()
    logger.info("Created %s order %s for %s, amount %d", payload.payment_type.value, order.order_id, student.usn, payload.amount)
    return OrderResponse(
        order_id=order.order_id,
        amount=payload.amount,
        currency=order.currency,
        transaction_id=txn.id,
        key=gateway.public_key(),
    )


async def verify_payment(
    db: AsyncSession,
    student: Student,
    payload: VerifyPaymentRequest,
    gateway: PaymentGateway,
) -> TransactionResponse:
    """
    Settle a gateway confirmation. The stored order decides what is credited; the
    client-echoed type/amount/notification must match it or the request is refused.
    """
    order_txn = (
        await db.execute(
            select(PaymentTransaction).where(
                PaymentTransaction.gateway_order_id == payload.gateway_order_id,
                PaymentTransaction.student_id == student.id,
            )
        )
    ).scalar_one_or_none()
    if not order_txn:
        raise NotFound("Payment order not found")
    if (
        order_txn.payment_type != payload.payment_type.value
        or order_txn.amount != payload.amount
        or order_txn.exam_notification_id != payload.exam_notification_id
    ):
        raise InvalidAmount("Payment details do not match the order")

    txn = await settle_gateway_payment(
        db,
        order_id=payload.gateway_order_id,
        payment_id=payload.gateway_payment_id,
        signature=payload.signature,
        student_id=student.id,
        gateway=gateway,
    )
    return TransactionResponse.model_validate(txn)


async def payment_history(db: AsyncSession, student: Student) -> List[TransactionResponse]:
    return await list_transactions(db, student.id)
