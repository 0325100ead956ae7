"""Fee record: one ledger row per (student, year, semester, fee type). Never deleted."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import FeeStatus
from app.db.session import Base


def compute_status(amount_due: int, amount_paid: int) -> str:
    if amount_paid >= amount_due:
        return FeeStatus.paid.value
    if amount_paid > 0:
        return FeeStatus.partial.value
    return FeeStatus.pending.value


class FeeRecord(Base):
    """
    Due/paid ledger row. status is always derived from the two amounts via set_amounts();
    version is bumped on every UPDATE so concurrent writers detect each other.
    """

    __tablename__ = "fee_records"
    __table_args__ = (
        CheckConstraint("amount_due >= 0", name="chk_fee_record_amount_due"),
        CheckConstraint("amount_paid >= 0", name="chk_fee_record_amount_paid"),
        CheckConstraint("amount_paid <= amount_due", name="chk_fee_record_not_overpaid"),
        CheckConstraint("status IN ('pending','partial','paid')", name="chk_fee_record_status"),
        CheckConstraint("year BETWEEN 1 AND 4", name="chk_fee_record_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    semester = Column(Integer, nullable=True)
    fee_type = Column(String(30), nullable=False)  # college, transport, exam
    amount_due = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=FeeStatus.paid.value)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    student = relationship("Student", back_populates="fee_records")

    @property
    def balance(self) -> int:
        return (self.amount_due or 0) - (self.amount_paid or 0)

    def set_amounts(self, amount_due: Optional[int] = None, amount_paid: Optional[int] = None) -> None:
        if amount_due is not None:
            self.amount_due = amount_due
        if amount_paid is not None:
            self.amount_paid = amount_paid
        self.status = compute_status(self.amount_due or 0, self.amount_paid or 0)

    def snapshot(self) -> dict:
        return {
            "amount_due": self.amount_due,
            "amount_paid": self.amount_paid,
            "status": self.status,
        }
