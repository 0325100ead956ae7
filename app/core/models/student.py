import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import EntryType
from app.db.session import Base


class Student(Base):
    """
    Enrolled student. USN is the human-facing unique key used by the office;
    user_id links the record to the identity carried in the bearer token.
    """

    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint("current_year BETWEEN 1 AND 4", name="chk_student_current_year"),
        CheckConstraint("quota IN ('government','management')", name="chk_student_quota"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    usn = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, unique=True, nullable=True)
    name = Column(String(255), nullable=False)
    department = Column(String(100), nullable=False)
    current_year = Column(Integer, nullable=False)
    quota = Column(String(20), nullable=False, index=True)  # government | management
    entry_type = Column(String(20), nullable=False, default=EntryType.REGULAR.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    fee_records = relationship("FeeRecord", back_populates="student")
