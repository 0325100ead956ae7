"""Fee record store: ordering, upsert semantics and the status invariant."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.store import find_record, get_records, upsert_record
from app.core.exceptions import InvalidAmount, NotFound, OverpaymentRejected
from app.core.models import FeeAuditLog, FeeRecord, compute_status

from conftest import make_student


@pytest.mark.parametrize(
    "due,paid,expected",
    [
        (1000, 0, "pending"),
        (1000, 1, "partial"),
        (1000, 999, "partial"),
        (1000, 1000, "paid"),
        (0, 0, "paid"),
    ],
)
def test_status_follows_amounts(due: int, paid: int, expected: str) -> None:
    assert compute_status(due, paid) == expected
    record = FeeRecord(amount_due=0, amount_paid=0)
    record.set_amounts(amount_due=due, amount_paid=paid)
    assert record.status == expected


@pytest.mark.asyncio
async def test_upsert_creates_pending_record(db_session: AsyncSession) -> None:
    student = make_student("1AB22CS001")
    db_session.add(student)
    await db_session.flush()

    record = await upsert_record(db_session, student.id, 2, None, "college", 15000)
    await db_session.commit()

    assert record.amount_due == 15000
    assert record.amount_paid == 0
    assert record.status == "pending"
    assert record.version == 1

    logs = (await db_session.execute(select(FeeAuditLog))).scalars().all()
    assert [log.action_type for log in logs] == ["CREATE"]


@pytest.mark.asyncio
async def test_upsert_overwrites_due_not_additive(db_session: AsyncSession) -> None:
    student = make_student("1AB22CS002")
    db_session.add(student)
    await db_session.flush()

    first = await upsert_record(db_session, student.id, 2, None, "college", 15000)
    await db_session.commit()
    second = await upsert_record(db_session, student.id, 2, None, "college", 12000)
    await db_session.commit()

    assert second.id == first.id
    assert second.amount_due == 12000
    records = await get_records(db_session, student.id)
    assert len(records) == 1


@pytest.mark.asyncio
async def test_upsert_rejects_due_below_paid(db_session: AsyncSession) -> None:
    student = make_student("1AB22CS003")
    db_session.add(student)
    await db_session.flush()
    record = await upsert_record(db_session, student.id, 2, None, "college", 10000)
    record.set_amounts(amount_paid=6000)
    await db_session.commit()

    with pytest.raises(OverpaymentRejected):
        await upsert_record(db_session, student.id, 2, None, "college", 5000)

    with pytest.raises(InvalidAmount):
        await upsert_record(db_session, student.id, 2, None, "college", -1)


@pytest.mark.asyncio
async def test_records_ordered_by_year_then_semester_nulls_last(db_session: AsyncSession) -> None:
    student = make_student("1AB22CS004", year=2)
    db_session.add(student)
    await db_session.flush()
    await upsert_record(db_session, student.id, 2, None, "college", 100)
    await upsert_record(db_session, student.id, 2, 4, "exam", 100)
    await upsert_record(db_session, student.id, 1, 2, "college", 100)
    await upsert_record(db_session, student.id, 2, 3, "transport", 100)
    await upsert_record(db_session, student.id, 1, 1, "college", 100)
    await db_session.commit()

    records = await get_records(db_session, student.id)
    assert [(r.year, r.semester) for r in records] == [(1, 1), (1, 2), (2, 3), (2, 4), (2, None)]


@pytest.mark.asyncio
async def test_missing_ids_raise_not_found(db_session: AsyncSession) -> None:
    with pytest.raises(NotFound):
        await find_record(db_session, uuid4())
    with pytest.raises(NotFound):
        await get_records(db_session, uuid4())
