"""
Payment Service - Razorpay Integration

Reverses captured payments for completed refund-type returns.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict

import razorpay
from pydantic import BaseModel

from returndesk.config import settings
from returndesk.services.errors import ConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)


class RefundRequest(BaseModel):
    """Request to reverse (part of) a captured payment."""
    payment_id: str
    amount: int  # Minor units
    notes: Dict[str, str] = {}


class RefundSummary(BaseModel):
    """Gateway-side summary of a reversal."""
    id: str
    amount: int  # Minor units
    status: str
    currency: str


class PaymentGateway(ABC):
    """Reverses captured payments."""

    @abstractmethod
    async def refund(self, payment_id: str, amount: int, notes: Dict[str, str]) -> RefundSummary:
        """
        Refund `amount` (minor units) of a captured payment.

        Raises:
            PaymentGatewayError: gateway rejected the refund or was unreachable
        """


class RazorpayPaymentGateway(PaymentGateway):
    """
    Razorpay refunds.

    The razorpay SDK is synchronous, so calls run in a worker thread.
    """

    def __init__(self, client: Optional[razorpay.Client] = None):
        if client is None:
            if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
                raise ConfigurationError("Razorpay credentials are not configured")
            client = razorpay.Client(
                auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
            )
        self.client = client

    def _initiate_refund(self, request: RefundRequest) -> RefundSummary:
        refund = self.client.payment.refund(
            request.payment_id,
            {"amount": request.amount, "notes": request.notes},
        )

        logger.info(
            f"Refund initiated: {refund['id']} for payment {request.payment_id}"
        )

        return RefundSummary(
            id=refund["id"],
            amount=int(refund.get("amount", request.amount)),
            status=refund.get("status", "processed"),
            currency=(refund.get("currency") or settings.CURRENCY).lower(),
        )

    async def refund(self, payment_id: str, amount: int, notes: Dict[str, str]) -> RefundSummary:
        request = RefundRequest(
            payment_id=payment_id,
            amount=amount,
            notes={k: str(v) for k, v in notes.items()},
        )
        try:
            return await asyncio.to_thread(self._initiate_refund, request)
        except Exception as e:
            # SDK raises BadRequestError/ServerError/GatewayError as well as transport errors
            logger.error(f"Refund initiation failed for payment {payment_id}: {e}")
            raise PaymentGatewayError(str(e), {"payment_id": payment_id}) from e
