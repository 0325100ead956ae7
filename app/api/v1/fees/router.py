"""Admin fee router: fee configuration, student search, fee counter edits."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    ConfigureFeeRequest,
    ConfigureFeeResponse,
    StudentFeesUpdate,
    StudentFeeView,
    TransactionResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/admin", tags=["fees"])


@router.post(
    "/config/fee",
    response_model=ConfigureFeeResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def configure_fee(
    payload: ConfigureFeeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ConfigureFeeResponse:
    try:
        return await service.configure(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/students/search",
    response_model=StudentFeeView,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def search_student(
    query: str = Query(..., min_length=1, description="Student USN"),
    db: AsyncSession = Depends(get_db),
) -> StudentFeeView:
    try:
        return await service.search_student(db, query)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/students/{usn}/fees",
    response_model=StudentFeeView,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def update_student_fees(
    usn: str,
    payload: StudentFeesUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeView:
    try:
        return await service.update_student_fees(db, usn, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/students/{usn}/transactions",
    response_model=List[TransactionResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_student_transactions(
    usn: str,
    db: AsyncSession = Depends(get_db),
) -> List[TransactionResponse]:
    try:
        return await service.list_transactions_for_usn(db, usn)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
