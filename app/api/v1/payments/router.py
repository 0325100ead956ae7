"""Student payment router: gateway key, order creation, verification, history."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees.schemas import TransactionResponse
from app.api.v1.fees.service import get_student_for_user
from app.auth.rbac import require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .gateway import PaymentGateway, get_gateway
from .schemas import CreateOrderRequest, OrderResponse, PaymentKeyResponse, VerifyPaymentRequest
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.get("/key", response_model=PaymentKeyResponse)
async def get_payment_key(
    current_user: CurrentUser = Depends(require_student),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentKeyResponse:
    return PaymentKeyResponse(key=gateway.public_key())


@router.post("/create-order", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
    gateway: PaymentGateway = Depends(get_gateway),
) -> OrderResponse:
    try:
        student = await get_student_for_user(db, current_user.id)
        return await service.create_order(db, student, payload, gateway)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/verify", response_model=TransactionResponse)
async def verify_payment(
    payload: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
    gateway: PaymentGateway = Depends(get_gateway),
) -> TransactionResponse:
    try:
        student = await get_student_for_user(db, current_user.id)
        return await service.verify_payment(db, student, payload, gateway)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/my-history", response_model=List[TransactionResponse])
async def my_payment_history(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> List[TransactionResponse]:
    try:
        student = await get_student_for_user(db, current_user.id)
        return await service.payment_history(db, student)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
