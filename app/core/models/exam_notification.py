import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, Uuid

from app.db.session import Base


class ExamNotification(Base):
    """
    Exam fee notice published by the examination cell. Read-only here:
    the ledger only reads it to price and accept exam-fee payments.
    """

    __tablename__ = "exam_notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    year = Column(Integer, nullable=False, index=True)
    semester = Column(Integer, nullable=False)
    exam_fee_amount = Column(Integer, nullable=False)
    late_fee = Column(Integer, nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    @property
    def late_fee_applied(self) -> bool:
        # Static surcharge flag: any configured late fee is charged, regardless of payment date.
        return (self.late_fee or 0) > 0

    @property
    def total_amount(self) -> int:
        return self.exam_fee_amount + (self.late_fee if self.late_fee_applied else 0)

    @property
    def is_odd_semester(self) -> bool:
        return self.semester % 2 != 0

    def is_open_on(self, day: Optional[date] = None) -> bool:
        day = day or date.today()
        return self.start_date <= day <= self.end_date
