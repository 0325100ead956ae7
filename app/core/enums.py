from enum import Enum


class Quota(str, Enum):
    GOVERNMENT = "government"
    MANAGEMENT = "management"


class EntryType(str, Enum):
    REGULAR = "regular"
    LATERAL = "lateral"


class FeeType(str, Enum):
    COLLEGE = "college"
    TRANSPORT = "transport"
    EXAM = "exam"


# Fee types that count toward exam eligibility.
ELIGIBILITY_FEE_TYPES = (FeeType.COLLEGE.value, FeeType.TRANSPORT.value)


class FeeStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"


class TransactionKind(str, Enum):
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class PaymentMode(str, Enum):
    CASH = "cash"
    DD = "dd"
    ONLINE = "online"
    RAZORPAY = "razorpay"
    ADJUSTMENT = "adjustment"


# Modes an administrator may record at the counter.
OFFICE_PAYMENT_MODES = (PaymentMode.CASH, PaymentMode.DD, PaymentMode.ONLINE)


class PaymentType(str, Enum):
    COLLEGE_FEE = "college_fee"
    TRANSPORT_FEE = "transport_fee"
    EXAM_FEE = "exam_fee"

    @property
    def fee_type(self) -> FeeType:
        return {
            PaymentType.COLLEGE_FEE: FeeType.COLLEGE,
            PaymentType.TRANSPORT_FEE: FeeType.TRANSPORT,
            PaymentType.EXAM_FEE: FeeType.EXAM,
        }[self]


class BatchOutcome(str, Enum):
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    EMPTY = "empty"
