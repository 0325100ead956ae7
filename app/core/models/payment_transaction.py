"""Payment transaction: append-only log of payments and administrative adjustments."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import TransactionKind, TransactionStatus
from app.db.session import Base


class PaymentTransaction(Base):
    """
    One payment attempt or ledger adjustment. Rows are never deleted; only status moves
    pending -> completed | failed. (gateway_order_id, gateway_payment_id) is the
    idempotency key for gateway confirmations.
    """

    __tablename__ = "payment_transactions"
    __table_args__ = (
        UniqueConstraint("gateway_order_id", "gateway_payment_id", name="uq_payment_transaction_gateway_ids"),
        CheckConstraint("amount >= 0", name="chk_payment_transaction_amount"),
        CheckConstraint("status IN ('pending','completed','failed')", name="chk_payment_transaction_status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    fee_record_id = Column(Uuid, ForeignKey("fee_records.id", ondelete="RESTRICT"), nullable=True, index=True)
    exam_notification_id = Column(
        Uuid,
        ForeignKey("exam_notifications.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    kind = Column(String(20), nullable=False, default=TransactionKind.PAYMENT.value)  # payment, adjustment
    payment_type = Column(String(30), nullable=True)  # college_fee, transport_fee, exam_fee
    amount = Column(Integer, nullable=False)
    mode = Column(String(30), nullable=False)  # cash, dd, online, razorpay, adjustment
    reference = Column(String(255), nullable=True)
    gateway_order_id = Column(String(100), nullable=True, index=True)
    gateway_payment_id = Column(String(100), nullable=True)
    gateway_signature = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=TransactionStatus.pending.value)
    failure_reason = Column(String(255), nullable=True)
    recorded_by = Column(Uuid, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    student = relationship("Student")
    fee_record = relationship("FeeRecord", backref="transactions")
    exam_notification = relationship("ExamNotification")
