"""Student gateway payments: order creation, verification and exam fees."""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.store import find_record, upsert_record
from app.api.v1.payments import service
from app.api.v1.payments.schemas import CreateOrderRequest, VerifyPaymentRequest
from app.core.enums import PaymentType
from app.core.exceptions import InvalidAmount, NotFound, OverpaymentRejected, ServiceError, VerificationFailed
from app.core.models import ExamNotification, PaymentTransaction

from conftest import make_student, sign

TODAY = date(2026, 10, 15)


async def _student_with_fee(db: AsyncSession, usn: str, due: int = 15000, paid: int = 0):
    student = make_student(usn, user_id=uuid4())
    db.add(student)
    await db.flush()
    record = await upsert_record(db, student.id, student.current_year, None, "college", due)
    if paid:
        record.set_amounts(amount_paid=paid)
    await db.commit()
    return student, record


async def _exam_notice(db: AsyncSession, semester: int = 3, late_fee: int = 0, **dates) -> ExamNotification:
    notice = ExamNotification(
        year=2,
        semester=semester,
        exam_fee_amount=1500,
        late_fee=late_fee,
        start_date=dates.get("start_date", date(2026, 10, 1)),
        end_date=dates.get("end_date", date(2026, 10, 31)),
        description="Semester end examinations",
    )
    db.add(notice)
    await db.commit()
    return notice


def _verify_request(order, payment_type=PaymentType.COLLEGE_FEE, payment_id="pay_001", **overrides):
    data = dict(
        gateway_order_id=order.order_id,
        gateway_payment_id=payment_id,
        signature=sign(order.order_id, payment_id),
        payment_type=payment_type,
        amount=order.amount,
    )
    data.update(overrides)
    return VerifyPaymentRequest(**data)


@pytest.mark.asyncio
async def test_order_then_verify_credits_record(db_session: AsyncSession, gateway) -> None:
    student, record = await _student_with_fee(db_session, "1AB22CS101")

    order = await service.create_order(
        db_session, student, CreateOrderRequest(amount=6000, payment_type=PaymentType.COLLEGE_FEE), gateway
    )
    assert order.key == "rzp_test_key"
    pending = await db_session.get(PaymentTransaction, order.transaction_id)
    assert (pending.status, pending.fee_record_id, pending.amount) == ("pending", record.id, 6000)
    assert (await find_record(db_session, record.id, for_update=True)).amount_paid == 0

    txn = await service.verify_payment(db_session, student, _verify_request(order), gateway)
    assert txn.status == "completed"
    assert txn.gateway_payment_id == "pay_001"

    fresh = await find_record(db_session, record.id, for_update=True)
    assert (fresh.amount_paid, fresh.status) == (6000, "partial")


@pytest.mark.asyncio
async def test_duplicate_confirmation_credits_once(db_session: AsyncSession, gateway) -> None:
    student, record = await _student_with_fee(db_session, "1AB22CS102")
    order = await service.create_order(
        db_session, student, CreateOrderRequest(amount=15000, payment_type=PaymentType.COLLEGE_FEE), gateway
    )

    first = await service.verify_payment(db_session, student, _verify_request(order), gateway)
    second = await service.verify_payment(db_session, student, _verify_request(order), gateway)

    assert first.id == second.id
    fresh = await find_record(db_session, record.id, for_update=True)
    assert (fresh.amount_paid, fresh.status) == (15000, "paid")

    with pytest.raises(ServiceError) as exc:
        await service.verify_payment(db_session, student, _verify_request(order, payment_id="pay_other"), gateway)
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_bad_signature_fails_transaction_and_leaves_record(db_session: AsyncSession, gateway) -> None:
    student, record = await _student_with_fee(db_session, "1AB22CS103")
    record_id = record.id
    order = await service.create_order(
        db_session, student, CreateOrderRequest(amount=5000, payment_type=PaymentType.COLLEGE_FEE), gateway
    )

    with pytest.raises(VerificationFailed):
        await service.verify_payment(
            db_session, student, _verify_request(order, signature="0" * 64), gateway
        )

    txn = await db_session.get(PaymentTransaction, order.transaction_id, populate_existing=True)
    assert txn.status == "failed"
    assert txn.failure_reason == "Invalid payment signature"
    assert (await find_record(db_session, record_id, for_update=True)).amount_paid == 0

    # A failed attempt is terminal even if a valid signature shows up later.
    with pytest.raises(VerificationFailed):
        await service.verify_payment(db_session, student, _verify_request(order), gateway)
    assert (await find_record(db_session, record_id, for_update=True)).amount_paid == 0


@pytest.mark.asyncio
async def test_verify_rejects_details_that_differ_from_order(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS104")
    order = await service.create_order(
        db_session, student, CreateOrderRequest(amount=5000, payment_type=PaymentType.COLLEGE_FEE), gateway
    )

    with pytest.raises(InvalidAmount):
        await service.verify_payment(db_session, student, _verify_request(order, amount=15000), gateway)
    with pytest.raises(InvalidAmount):
        await service.verify_payment(
            db_session, student, _verify_request(order, payment_type=PaymentType.TRANSPORT_FEE), gateway
        )


@pytest.mark.asyncio
async def test_verify_unknown_order(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS105")
    request = VerifyPaymentRequest(
        gateway_order_id="order_missing",
        gateway_payment_id="pay_1",
        signature=sign("order_missing", "pay_1"),
        payment_type=PaymentType.COLLEGE_FEE,
        amount=100,
    )
    with pytest.raises(NotFound):
        await service.verify_payment(db_session, student, request, gateway)


@pytest.mark.asyncio
async def test_order_above_balance_rejected(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS106", due=15000, paid=10000)
    with pytest.raises(OverpaymentRejected):
        await service.create_order(
            db_session, student, CreateOrderRequest(amount=6000, payment_type=PaymentType.COLLEGE_FEE), gateway
        )
    with pytest.raises(NotFound):
        await service.create_order(
            db_session, student, CreateOrderRequest(amount=100, payment_type=PaymentType.TRANSPORT_FEE), gateway
        )


@pytest.mark.asyncio
async def test_exam_fee_requires_open_window(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS107", paid=15000)
    closed = await _exam_notice(db_session, start_date=date(2026, 9, 1), end_date=date(2026, 9, 30))
    upcoming = await _exam_notice(db_session, start_date=date(2026, 11, 1), end_date=date(2026, 11, 30))

    for notice, message in ((closed, "closed"), (upcoming, "not started")):
        request = CreateOrderRequest(amount=1500, payment_type=PaymentType.EXAM_FEE, exam_notification_id=notice.id)
        with pytest.raises(ServiceError, match=message) as exc:
            await service.create_order(db_session, student, request, gateway, today=TODAY)
        assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_exam_fee_requires_eligibility(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS108", paid=7500)
    odd = await _exam_notice(db_session, semester=3)
    even = await _exam_notice(db_session, semester=4)

    order = await service.create_order(
        db_session,
        student,
        CreateOrderRequest(amount=1500, payment_type=PaymentType.EXAM_FEE, exam_notification_id=odd.id),
        gateway,
        today=TODAY,
    )
    assert order.amount == 1500

    with pytest.raises(ServiceError, match="100%") as exc:
        await service.create_order(
            db_session,
            student,
            CreateOrderRequest(amount=1500, payment_type=PaymentType.EXAM_FEE, exam_notification_id=even.id),
            gateway,
            today=TODAY,
        )
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_exam_fee_with_late_fee_then_already_paid(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS109", paid=15000)
    notice = await _exam_notice(db_session, late_fee=200)

    def request(amount):
        return CreateOrderRequest(amount=amount, payment_type=PaymentType.EXAM_FEE, exam_notification_id=notice.id)

    with pytest.raises(InvalidAmount):
        await service.create_order(db_session, student, request(1500), gateway, today=TODAY)

    order = await service.create_order(db_session, student, request(1700), gateway, today=TODAY)
    txn = await service.verify_payment(
        db_session,
        student,
        _verify_request(order, payment_type=PaymentType.EXAM_FEE, exam_notification_id=notice.id),
        gateway,
    )
    assert (txn.status, txn.fee_record_id, txn.exam_notification_id) == ("completed", None, notice.id)

    statuses = await service.list_exam_notifications(db_session, student, today=TODAY)
    assert [(s.id, s.is_paid, s.can_pay, s.total_amount) for s in statuses] == [(notice.id, True, False, 1700)]

    with pytest.raises(ServiceError) as exc:
        await service.create_order(db_session, student, request(1700), gateway, today=TODAY)
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_payment_history_lists_own_transactions(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS110")
    other, _ = await _student_with_fee(db_session, "1AB22CS111")
    await service.create_order(
        db_session, student, CreateOrderRequest(amount=100, payment_type=PaymentType.COLLEGE_FEE), gateway
    )
    await service.create_order(
        db_session, other, CreateOrderRequest(amount=100, payment_type=PaymentType.COLLEGE_FEE), gateway
    )

    history = await service.payment_history(db_session, student)
    assert [(t.student_id, t.status, t.mode) for t in history] == [(student.id, "pending", "razorpay")]


@pytest.mark.asyncio
async def test_second_order_for_same_exam_fee_is_not_settled(db_session: AsyncSession, gateway) -> None:
    student, _ = await _student_with_fee(db_session, "1AB22CS112", paid=15000)
    student_id = student.id
    notice = await _exam_notice(db_session)
    notice_id = notice.id
    request = CreateOrderRequest(amount=1500, payment_type=PaymentType.EXAM_FEE, exam_notification_id=notice_id)

    # Both orders open before either is paid.
    first = await service.create_order(db_session, student, request, gateway, today=TODAY)
    second = await service.create_order(db_session, student, request, gateway, today=TODAY)

    await service.verify_payment(
        db_session,
        student,
        _verify_request(first, payment_type=PaymentType.EXAM_FEE, payment_id="pay_a", exam_notification_id=notice_id),
        gateway,
    )
    with pytest.raises(ServiceError, match="already paid") as exc:
        await service.verify_payment(
            db_session,
            student,
            _verify_request(second, payment_type=PaymentType.EXAM_FEE, payment_id="pay_b", exam_notification_id=notice_id),
            gateway,
        )
    assert exc.value.status_code == 409

    rejected = await db_session.get(PaymentTransaction, second.transaction_id, populate_existing=True)
    assert (rejected.status, rejected.failure_reason) == ("failed", "Exam fee already paid")
    completed = await db_session.scalar(
        select(func.count())
        .select_from(PaymentTransaction)
        .where(
            PaymentTransaction.student_id == student_id,
            PaymentTransaction.exam_notification_id == notice_id,
            PaymentTransaction.status == "completed",
        )
    )
    assert completed == 1
