"""
Ledger reconciliation: the only code path that changes amount_paid.

Two contracts, kept apart so the transaction log never mixes corrections with money:
- DirectSet: administrative overwrite of due/paid (logged as an ``adjustment``).
- IncrementalPayment: money received at the office or through the gateway (logged as a ``payment``).

Every mutation locks the fee record row and relies on the mapper's version column;
a concurrent writer surfaces as StaleDataError and the whole unit is retried.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.enums import (
    OFFICE_PAYMENT_MODES,
    FeeType,
    PaymentMode,
    TransactionKind,
    TransactionStatus,
)
from app.core.exceptions import (
    InvalidAmount,
    LedgerConflict,
    NotFound,
    OverpaymentRejected,
    ServiceError,
    VerificationFailed,
)
from app.core.models import FeeRecord, PaymentTransaction, Student

from .store import find_record, find_records_of_type, get_student, log_fee_audit

logger = logging.getLogger(__name__)

T = TypeVar("T")

_REFERENCE_RE = re.compile(r"^[A-Za-z0-9 /_.\-]{1,100}$")


@dataclass(frozen=True)
class DirectSet:
    """
    Administrative overwrite. Target either record_id, or (student_id, fee_type) which
    resolves to the student's current-year records of that type, whatever their semester.
    new_balance is a convenience for "set outstanding to X": 0 marks every targeted record
    paid, a positive value sets amount_due to amount_paid + X on the single target.
    """

    record_id: Optional[UUID] = None
    student_id: Optional[UUID] = None
    fee_type: Optional[FeeType] = None
    new_amount_due: Optional[int] = None
    new_amount_paid: Optional[int] = None
    new_balance: Optional[int] = None


@dataclass(frozen=True)
class IncrementalPayment:
    record_id: UUID
    amount: int
    mode: PaymentMode
    reference: str
    student_id: Optional[UUID] = None


LedgerInput = Union[DirectSet, IncrementalPayment]


async def run_serialized(db: AsyncSession, operation: Callable[[], Awaitable[T]], label: str) -> T:
    """Run operation and commit; retry on version conflicts, roll back on anything else."""
    attempts = max(1, settings.ledger_max_retries)
    for attempt in range(1, attempts + 1):
        try:
            result = await operation()
            await db.commit()
            return result
        except StaleDataError:
            await db.rollback()
            logger.warning("Version conflict on %s (attempt %d/%d)", label, attempt, attempts)
        except ServiceError:
            await db.rollback()
            raise
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Ledger write failed for %s", label)
            raise
    raise LedgerConflict()


def _validate_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount("Amount must be a whole number")
    if amount <= 0:
        raise InvalidAmount("Amount must be greater than zero")
    return amount


def _validate_reference(reference: Optional[str]) -> str:
    ref = (reference or "").strip()
    if not _REFERENCE_RE.match(ref):
        raise ServiceError(
            "Reference must be 1-100 characters of letters, digits, space, '/', '_', '.' or '-'",
            status.HTTP_400_BAD_REQUEST,
        )
    return ref


def _validate_direct_set(cmd: DirectSet) -> None:
    if cmd.record_id is None and (cmd.student_id is None or cmd.fee_type is None):
        raise ServiceError("A fee record id or student and fee type is required", status.HTTP_400_BAD_REQUEST)
    if cmd.record_id is None and FeeType(cmd.fee_type) not in (FeeType.COLLEGE, FeeType.TRANSPORT):
        raise ServiceError("Only college or transport fees can be set by type", status.HTTP_400_BAD_REQUEST)
    values = (cmd.new_amount_due, cmd.new_amount_paid, cmd.new_balance)
    if all(v is None for v in values):
        raise InvalidAmount("Nothing to update: provide a new amount due, amount paid or balance")
    if cmd.new_balance is not None and (cmd.new_amount_due is not None or cmd.new_amount_paid is not None):
        raise ServiceError("new_balance cannot be combined with explicit amounts", status.HTTP_400_BAD_REQUEST)
    for v in values:
        if v is not None and (isinstance(v, bool) or not isinstance(v, int) or v < 0):
            raise InvalidAmount("Amounts must be non-negative whole numbers")


def credit_record(record: FeeRecord, amount: int) -> None:
    if record.amount_paid + amount > record.amount_due:
        raise OverpaymentRejected(record.amount_due, record.amount_paid, amount)
    record.set_amounts(amount_paid=record.amount_paid + amount)


async def _resolve_direct_targets(db: AsyncSession, cmd: DirectSet) -> List[FeeRecord]:
    """
    By type, the targets are all current-year records of that type (the ones the fee
    counter adds up). A zero balance settles each of them; anything else needs exactly one.
    """
    if cmd.record_id is not None:
        record = await find_record(db, cmd.record_id, for_update=True)
        if cmd.student_id is not None and record.student_id != cmd.student_id:
            raise NotFound("Fee record not found")
        return [record]
    student = await get_student(db, cmd.student_id)
    fee_type = FeeType(cmd.fee_type).value
    records = await find_records_of_type(db, student.id, student.current_year, fee_type, for_update=True)
    if not records:
        # No record yet means nothing was due; materialize it so the correction has a target.
        record = FeeRecord(
            student_id=student.id,
            year=student.current_year,
            semester=None,
            fee_type=fee_type,
            amount_paid=0,
        )
        record.set_amounts(amount_due=0)
        db.add(record)
        await db.flush()
        return [record]
    if len(records) > 1 and cmd.new_balance != 0:
        raise ServiceError(
            f"{student.usn} has {len(records)} year {student.current_year} {fee_type} fee records; "
            "only a zero balance can be set across them, correct the others per record",
            status.HTTP_409_CONFLICT,
        )
    return records


async def _direct_set(db: AsyncSession, cmd: DirectSet, recorded_by: Optional[UUID]) -> FeeRecord:
    records = await _resolve_direct_targets(db, cmd)
    for record in records:
        if len(records) > 1 and record.balance == 0:
            continue
        await _set_record(db, record, cmd, recorded_by)
    return records[0]


async def _set_record(
    db: AsyncSession,
    record: FeeRecord,
    cmd: DirectSet,
    recorded_by: Optional[UUID],
) -> None:
    new_due = record.amount_due if cmd.new_amount_due is None else cmd.new_amount_due
    new_paid = record.amount_paid if cmd.new_amount_paid is None else cmd.new_amount_paid
    if cmd.new_balance is not None:
        if cmd.new_balance == 0:
            new_paid = record.amount_due
        else:
            new_due = record.amount_paid + cmd.new_balance
    if new_paid > new_due:
        raise OverpaymentRejected(
            new_due,
            record.amount_paid,
            new_paid,
            message=f"Amount paid {new_paid} cannot exceed amount due {new_due}",
        )

    old = record.snapshot()
    record.set_amounts(amount_due=new_due, amount_paid=new_paid)
    db.add(
        PaymentTransaction(
            student_id=record.student_id,
            fee_record_id=record.id,
            kind=TransactionKind.ADJUSTMENT.value,
            amount=abs(new_paid - old["amount_paid"]),
            mode=PaymentMode.ADJUSTMENT.value,
            reference=f"due {old['amount_due']}->{new_due}; paid {old['amount_paid']}->{new_paid}",
            status=TransactionStatus.completed.value,
            recorded_by=recorded_by,
            completed_at=datetime.utcnow(),
        )
    )
    await db.flush()
    await log_fee_audit(db, "fee_records", record.id, "ADJUST", old, record.snapshot(), recorded_by)


async def _incremental(db: AsyncSession, cmd: IncrementalPayment, recorded_by: Optional[UUID]) -> FeeRecord:
    record = await find_record(db, cmd.record_id, for_update=True)
    if cmd.student_id is not None and record.student_id != cmd.student_id:
        raise NotFound("Fee record not found")
    old = record.snapshot()
    credit_record(record, cmd.amount)
    db.add(
        PaymentTransaction(
            student_id=record.student_id,
            fee_record_id=record.id,
            kind=TransactionKind.PAYMENT.value,
            amount=cmd.amount,
            mode=PaymentMode(cmd.mode).value,
            reference=cmd.reference,
            status=TransactionStatus.completed.value,
            recorded_by=recorded_by,
            completed_at=datetime.utcnow(),
        )
    )
    await db.flush()
    await log_fee_audit(db, "fee_records", record.id, "UPDATE", old, record.snapshot(), recorded_by)
    return record


async def apply_corrections(
    db: AsyncSession,
    corrections: Sequence[DirectSet],
    recorded_by: Optional[UUID] = None,
) -> List[FeeRecord]:
    """Apply several direct-set corrections as one unit: all of them commit, or none."""
    for cmd in corrections:
        _validate_direct_set(cmd)

    async def _apply_all() -> List[FeeRecord]:
        return [await _direct_set(db, cmd, recorded_by) for cmd in corrections]

    records = await run_serialized(db, _apply_all, f"direct-set x{len(corrections)}")
    for record in records:
        logger.info(
            "Direct-set on fee record %s by %s: due=%d paid=%d status=%s",
            record.id, recorded_by, record.amount_due, record.amount_paid, record.status,
        )
    return records


async def apply_payment(
    db: AsyncSession,
    ledger_input: LedgerInput,
    recorded_by: Optional[UUID] = None,
) -> FeeRecord:
    """Apply a direct-set correction or an office payment to a fee record and commit."""
    if isinstance(ledger_input, DirectSet):
        return (await apply_corrections(db, [ledger_input], recorded_by))[0]

    if isinstance(ledger_input, IncrementalPayment):
        _validate_amount(ledger_input.amount)
        mode = PaymentMode(ledger_input.mode)
        if mode not in OFFICE_PAYMENT_MODES:
            raise ServiceError("Payment mode must be cash, dd or online", status.HTTP_400_BAD_REQUEST)
        cmd = IncrementalPayment(
            record_id=ledger_input.record_id,
            amount=ledger_input.amount,
            mode=mode,
            reference=_validate_reference(ledger_input.reference),
            student_id=ledger_input.student_id,
        )
        record = await run_serialized(db, lambda: _incremental(db, cmd, recorded_by), f"payment {cmd.record_id}")
        logger.info(
            "Recorded %s payment of %d on fee record %s: paid=%d/%d status=%s",
            mode.value, cmd.amount, record.id, record.amount_paid, record.amount_due, record.status,
        )
        return record

    raise TypeError(f"Unsupported ledger input: {type(ledger_input).__name__}")


# --- Gateway settlement ---
async def _load_order_transaction(
    db: AsyncSession,
    order_id: str,
    student_id: UUID,
) -> PaymentTransaction:
    txn = (
        await db.execute(
            select(PaymentTransaction)
            .where(
                PaymentTransaction.gateway_order_id == order_id,
                PaymentTransaction.student_id == student_id,
                PaymentTransaction.kind == TransactionKind.PAYMENT.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not txn:
        raise NotFound("Payment order not found")
    return txn


async def _exam_fee_settled_elsewhere(db: AsyncSession, txn: PaymentTransaction) -> bool:
    """True when another order already paid this student's exam notification."""
    # Lock the student row so two orders for one notification settle one at a time.
    await db.execute(select(Student.id).where(Student.id == txn.student_id).with_for_update())
    other = await db.execute(
        select(PaymentTransaction.id)
        .where(
            PaymentTransaction.student_id == txn.student_id,
            PaymentTransaction.exam_notification_id == txn.exam_notification_id,
            PaymentTransaction.status == TransactionStatus.completed.value,
            PaymentTransaction.id != txn.id,
        )
        .limit(1)
    )
    return other.first() is not None


def _fail(txn: PaymentTransaction, payment_id: str, signature: str, error: ServiceError) -> ServiceError:
    txn.status = TransactionStatus.failed.value
    txn.gateway_payment_id = payment_id
    txn.gateway_signature = signature
    txn.failure_reason = error.message[:255]
    return error


async def settle_gateway_payment(
    db: AsyncSession,
    *,
    order_id: str,
    payment_id: str,
    signature: str,
    student_id: UUID,
    gateway,
) -> PaymentTransaction:
    """
    Complete the pending transaction for a gateway order. Verification is the gate:
    nothing reaches the fee record unless the adapter accepts the signature. A repeat
    confirmation of an already completed (order, payment) pair returns the stored
    transaction without crediting again.
    """

    async def _settle():
        txn = await _load_order_transaction(db, order_id, student_id)
        if txn.status == TransactionStatus.completed.value:
            if txn.gateway_payment_id == payment_id:
                return txn, None
            raise ServiceError("Order already settled by a different payment", status.HTTP_409_CONFLICT)
        if txn.status == TransactionStatus.failed.value:
            raise VerificationFailed("This payment attempt has already failed; please start a new payment")

        try:
            await gateway.verify(order_id, payment_id, signature)
        except VerificationFailed as exc:
            return txn, _fail(txn, payment_id, signature, exc)

        if txn.exam_notification_id is not None and await _exam_fee_settled_elsewhere(db, txn):
            return txn, _fail(
                txn, payment_id, signature, ServiceError("Exam fee already paid", status.HTTP_409_CONFLICT)
            )

        if txn.fee_record_id is not None:
            record = await find_record(db, txn.fee_record_id, for_update=True)
            old = record.snapshot()
            try:
                credit_record(record, txn.amount)
            except OverpaymentRejected as exc:
                return txn, _fail(txn, payment_id, signature, exc)
            await log_fee_audit(db, "fee_records", record.id, "UPDATE", old, record.snapshot(), student_id)

        txn.status = TransactionStatus.completed.value
        txn.gateway_payment_id = payment_id
        txn.gateway_signature = signature
        txn.completed_at = datetime.utcnow()
        await db.flush()
        return txn, None

    txn, error = await run_serialized(db, _settle, f"gateway order {order_id}")
    if error is not None:
        logger.warning("Gateway payment %s for order %s rejected: %s", payment_id, order_id, error.message)
        raise error
    logger.info(
        "Gateway payment %s settled order %s (%s, amount %d)",
        payment_id, order_id, txn.payment_type, txn.amount,
    )
    return txn
