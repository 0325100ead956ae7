from app.core.models.student import Student
from app.core.models.fee_record import FeeRecord, compute_status
from app.core.models.exam_notification import ExamNotification
from app.core.models.payment_transaction import PaymentTransaction
from app.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Student",
    "FeeRecord",
    "compute_status",
    "ExamNotification",
    "PaymentTransaction",
    "FeeAuditLog",
]
