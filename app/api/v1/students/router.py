"""Student self-service router: profile, eligibility, exam notifications."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fees_service
from app.api.v1.fees.schemas import EligibilityResponse, StudentFeeView
from app.api.v1.payments import service as payments_service
from app.api.v1.payments.schemas import ExamNotificationStatus
from app.auth.rbac import require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.get("/profile", response_model=StudentFeeView)
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> StudentFeeView:
    try:
        student = await fees_service.get_student_for_user(db, current_user.id)
        return await fees_service.build_student_view(db, student)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/eligibility", response_model=EligibilityResponse)
async def get_eligibility(
    semester: Optional[int] = Query(None, ge=1, le=8, description="Target exam semester; parity selects the rule"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> EligibilityResponse:
    try:
        student = await fees_service.get_student_for_user(db, current_user.id)
        return await fees_service.get_eligibility(db, student, semester=semester)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/exam-notifications", response_model=List[ExamNotificationStatus])
async def list_exam_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> List[ExamNotificationStatus]:
    try:
        student = await fees_service.get_student_for_user(db, current_user.id)
        return await payments_service.list_exam_notifications(db, student)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
