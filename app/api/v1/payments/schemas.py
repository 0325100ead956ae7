"""Payment schemas."""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import PaymentType


class PaymentKeyResponse(BaseModel):
    key: str


class CreateOrderRequest(BaseModel):
    amount: int = Field(..., gt=0)
    payment_type: PaymentType
    fee_record_id: Optional[UUID] = None
    exam_notification_id: Optional[UUID] = None

    @model_validator(mode="after")
    def validate_target(self) -> "CreateOrderRequest":
        if self.payment_type == PaymentType.EXAM_FEE:
            if self.exam_notification_id is None:
                raise ValueError("exam_notification_id is required for exam fee payments")
            if self.fee_record_id is not None:
                raise ValueError("fee_record_id cannot be used with exam fee payments")
        elif self.exam_notification_id is not None:
            raise ValueError("exam_notification_id is only valid for exam fee payments")
        return self


class OrderResponse(BaseModel):
    order_id: str
    amount: int
    currency: str
    transaction_id: UUID
    key: str


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: str = Field(..., min_length=1, max_length=100)
    gateway_payment_id: str = Field(..., min_length=1, max_length=100)
    signature: str = Field(..., min_length=1, max_length=255)
    payment_type: PaymentType
    amount: int = Field(..., gt=0)
    exam_notification_id: Optional[UUID] = None


class ExamNotificationStatus(BaseModel):
    """Exam notice as seen by one student: price, window and whether they can pay now."""

    id: UUID
    year: int
    semester: int
    exam_fee_amount: int
    late_fee: int
    late_fee_applied: bool
    total_amount: int
    start_date: date
    end_date: date
    description: Optional[str] = None
    is_open: bool
    is_paid: bool
    is_exam_eligible: bool
    can_pay: bool
