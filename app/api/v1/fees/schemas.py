"""Fee ledger schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import BatchOutcome, EntryType, FeeStatus, FeeType, PaymentMode, Quota


# --- Fee records ---
class FeeRecordResponse(BaseModel):
    id: UUID
    student_id: UUID
    year: int
    semester: Optional[int] = None
    fee_type: str
    amount_due: int
    amount_paid: int
    balance: int
    status: FeeStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EligibilityResponse(BaseModel):
    is_eligible: bool
    eligible_for_odd_sem: bool
    eligible_for_even_sem: bool
    reasons: List[str]
    total_due: int
    total_paid: int
    paid_ratio: float

    class Config:
        from_attributes = True


class StudentResponse(BaseModel):
    id: UUID
    usn: str
    name: str
    department: str
    current_year: int
    quota: Quota
    entry_type: EntryType

    class Config:
        from_attributes = True


class StudentFeeView(StudentResponse):
    """Student with ledger and the computed current-year dues shown at the fee counter."""

    college_fee_due: int
    transport_fee_due: int
    fee_records: List[FeeRecordResponse]
    eligibility: EligibilityResponse


# --- Configuration ---
class ConfigureFeeRequest(BaseModel):
    quota: Quota
    current_year: int = Field(..., ge=1, le=4)
    amount: int = Field(..., ge=0)
    usn: Optional[str] = Field(None, max_length=20)
    fee_type: FeeType = FeeType.COLLEGE
    semester: Optional[int] = Field(None, ge=1, le=8)


class StudentOutcomeResponse(BaseModel):
    student_id: UUID
    usn: str
    record_id: Optional[UUID] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ConfigureFeeResponse(BaseModel):
    outcome: BatchOutcome
    succeeded: List[StudentOutcomeResponse]
    failed: List[StudentOutcomeResponse]

    class Config:
        from_attributes = True


# --- Student fee edits ---
class StudentFeesUpdate(BaseModel):
    """
    Either balance corrections (college_fee_due / transport_fee_due, the outstanding amount
    to leave on the current-year record; 0 marks it paid) or one office payment
    (fee_record_id + amount + mode + reference). Not both.
    """

    college_fee_due: Optional[int] = Field(None, ge=0)
    transport_fee_due: Optional[int] = Field(None, ge=0)

    fee_record_id: Optional[UUID] = None
    amount: Optional[int] = None
    mode: Optional[PaymentMode] = None
    reference: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def validate_shape(self) -> "StudentFeesUpdate":
        corrections = self.college_fee_due is not None or self.transport_fee_due is not None
        payment = self.fee_record_id is not None
        if corrections and payment:
            raise ValueError("Send either fee due corrections or a payment, not both")
        if not corrections and not payment:
            raise ValueError("Nothing to update")
        if payment and (self.amount is None or self.mode is None or not self.reference):
            raise ValueError("amount, mode and reference are required with fee_record_id")
        return self


# --- Transactions ---
class TransactionResponse(BaseModel):
    id: UUID
    student_id: UUID
    fee_record_id: Optional[UUID] = None
    exam_notification_id: Optional[UUID] = None
    kind: str
    payment_type: Optional[str] = None
    amount: int
    mode: str
    reference: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    status: str
    failure_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
