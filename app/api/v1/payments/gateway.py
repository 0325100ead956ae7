"""
Payment gateway adapter. The ledger only ever sees two calls: create an order (no money
moves) and verify a signed confirmation (the single gate before crediting a fee record).
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Protocol

import razorpay
from fastapi import HTTPException, status
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import GatewayUnavailable, VerificationFailed

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    order_id: str
    amount: int
    currency: str


class PaymentGateway(Protocol):
    async def create_order(self, amount: int, currency: str, metadata: Dict[str, Any]) -> GatewayOrder:
        ...

    async def verify(self, order_id: str, payment_id: str, signature: str) -> None:
        """Return on success; raise VerificationFailed otherwise (including timeouts)."""
        ...

    def public_key(self) -> str:
        ...


class RazorpayGateway:
    """Razorpay orders are in paise; the ledger works in whole rupees."""

    def __init__(self, key_id: str, key_secret: str, timeout_seconds: float = 10.0) -> None:
        self.key_id = key_id
        self._key_secret = key_secret
        self.timeout_seconds = timeout_seconds
        self.client = razorpay.Client(auth=(key_id, key_secret))

    async def create_order(self, amount: int, currency: str, metadata: Dict[str, Any]) -> GatewayOrder:
        data = {
            "amount": amount * 100,
            "currency": currency,
            "receipt": str(metadata.get("receipt", ""))[:40] or None,
            "notes": {k: str(v) for k, v in metadata.items() if v is not None},
        }
        try:
            order = await asyncio.wait_for(
                run_in_threadpool(self.client.order.create, data=data),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("Razorpay order creation timed out after %.1fs", self.timeout_seconds)
            raise GatewayUnavailable("Payment gateway timed out")
        except (razorpay.errors.BadRequestError, razorpay.errors.ServerError, razorpay.errors.GatewayError) as e:
            logger.error("Razorpay rejected order creation: %s", e)
            raise GatewayUnavailable("Payment gateway rejected the order")
        except OSError as e:
            logger.error("Razorpay unreachable: %s", e)
            raise GatewayUnavailable()
        return GatewayOrder(order_id=order["id"], amount=order["amount"] // 100, currency=order["currency"])

    async def verify(self, order_id: str, payment_id: str, signature: str) -> None:
        params = {
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
            "secret": self._key_secret,
        }
        try:
            ok = await asyncio.wait_for(
                run_in_threadpool(self.client.utility.verify_payment_signature, params),
                timeout=self.timeout_seconds,
            )
        except razorpay.errors.SignatureVerificationError:
            raise VerificationFailed("Invalid payment signature")
        except asyncio.TimeoutError:
            # Fail closed: an unverifiable payment is never credited.
            raise VerificationFailed("Payment verification timed out")
        if not ok:
            raise VerificationFailed("Invalid payment signature")

    def public_key(self) -> str:
        return self.key_id


@lru_cache
def _razorpay_gateway(key_id: str, key_secret: str, timeout_seconds: float) -> RazorpayGateway:
    return RazorpayGateway(key_id, key_secret, timeout_seconds)


def get_gateway() -> PaymentGateway:
    """FastAPI dependency. Overridden in tests."""
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway is not configured",
        )
    return _razorpay_gateway(
        settings.razorpay_key_id,
        settings.razorpay_key_secret,
        settings.gateway_timeout_seconds,
    )
