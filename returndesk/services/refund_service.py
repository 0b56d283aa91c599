"""
Refund Service.

Reverses the customer's payment for a completed refund-type return, then
adjusts their loyalty points. The payment reversal is the step that matters:
points are best effort and never undo a refund.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from returndesk.config import settings
from returndesk.models import ReturnRequest
from returndesk.services.collaborators import OrderRecord, OrderStore, Payment, PointsAdjustment, PointsLedger
from returndesk.services.errors import (
    NoCapturedPayment,
    PaymentGatewayError,
    RefundNotAllowed,
    ReturnNotFound,
)
from returndesk.services.payment_service import PaymentGateway
from returndesk.services.repositories import ReturnRepository
from returndesk.services.return_state_machine import ReturnStatus, ensure_version

logger = logging.getLogger(__name__)


class RefundStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def find_captured_payment(order: OrderRecord, provider_id: str) -> Optional[Payment]:
    """First captured payment made through `provider_id`, across all collections."""
    for collection in order.payment_collections:
        for payment in collection.payments:
            if payment.provider_id == provider_id and payment.captured_at is not None:
                return payment
    return None


class RefundService:

    def __init__(
        self,
        returns: ReturnRepository,
        orders: OrderStore,
        gateway: PaymentGateway,
        points: PointsLedger,
    ):
        self.returns = returns
        self.orders = orders
        self.gateway = gateway
        self.points = points

    async def _set_refund_status(self, return_request: ReturnRequest, status: str) -> None:
        return_request.refund_status = status
        return_request.updated_at = datetime.now(timezone.utc)
        await self.returns.save(return_request)
        await self.returns.commit()

    async def _mark_failed(self, return_request: ReturnRequest) -> None:
        try:
            await self._set_refund_status(return_request, RefundStatus.FAILED)
        except Exception as e:
            # The original failure is what the caller needs to see
            logger.exception(f"Could not record failed refund for return {return_request.id}: {e}")

    async def process_refund(self, return_id: str, expected_version: Optional[int] = None) -> Dict[str, Any]:
        """
        Refund a completed return through the payment gateway.

        Returns:
            {"return": ReturnRequest, "refund": RefundSummary dict, "points": dict | None}

        Raises:
            ReturnNotFound, RefundNotAllowed, ConcurrentModification: nothing changed
            NoCapturedPayment, PaymentGatewayError: refund_status is left as failed
        """
        return_request = await self.returns.get(return_id)
        if not return_request:
            raise ReturnNotFound(return_id)

        ensure_version(return_request, expected_version)

        if return_request.status != ReturnStatus.COMPLETED:
            raise RefundNotAllowed(
                "Return must be completed before processing refund",
                {"return_id": return_id, "status": return_request.status},
            )
        if return_request.refund_status == RefundStatus.COMPLETED:
            raise RefundNotAllowed(
                "Refund has already been processed",
                {"return_id": return_id, "refund_reference": return_request.refund_reference},
            )
        if return_request.return_type != "refund":
            raise RefundNotAllowed(
                "This return is for replacement, not refund",
                {"return_id": return_id, "return_type": return_request.return_type},
            )

        await self._set_refund_status(return_request, RefundStatus.PROCESSING)

        try:
            order = await self.orders.get_order(return_request.order_id)
        except Exception:
            await self._mark_failed(return_request)
            raise

        payment = find_captured_payment(order, settings.REFUND_PAYMENT_PROVIDER_ID) if order else None
        if not payment:
            await self._mark_failed(return_request)
            raise NoCapturedPayment(
                "No captured payment found for this order",
                {"order_id": return_request.order_id, "provider_id": settings.REFUND_PAYMENT_PROVIDER_ID},
            )

        payment_id = payment.gateway_payment_id
        if not payment_id:
            await self._mark_failed(return_request)
            raise PaymentGatewayError(
                "Could not find gateway payment id",
                {"payment_id": payment.id},
            )

        amount = int(return_request.refund_amount) + int(return_request.shipping_refund or 0)
        try:
            refund = await self.gateway.refund(
                payment_id,
                amount,
                {
                    "return_id": return_request.id,
                    "order_id": return_request.order_id,
                    "return_reason": return_request.reason,
                },
            )
        except Exception as e:
            await self._mark_failed(return_request)
            if isinstance(e, PaymentGatewayError):
                raise
            raise PaymentGatewayError(f"Refund failed: {e}", {"payment_id": payment_id}) from e

        now = datetime.now(timezone.utc)
        return_request.refund_status = RefundStatus.COMPLETED
        return_request.refund_reference = refund.id
        return_request.refunded_at = now
        return_request.updated_at = now
        await self.returns.save(return_request)
        await self.returns.commit()

        logger.info(f"Refund {refund.id} of {amount} issued for return {return_id}")

        points = await self._adjust_points(return_request)

        return {
            "return": return_request,
            "refund": refund.model_dump(),
            "points": points.to_dict() if points else None,
        }

    async def _adjust_points(self, return_request: ReturnRequest) -> Optional[PointsAdjustment]:
        """
        Take back the points earned on the order and give back the points
        redeemed on it. Failures are logged; the refund stands.
        """
        try:
            earned = await self.points.points_earned(return_request.customer_id, return_request.order_id)
            redeemed = await self.points.points_redeemed(return_request.customer_id, return_request.order_id)

            if earned <= 0 and redeemed <= 0:
                return None

            adjustment = await self.points.apply_return_adjustment(
                customer_id=return_request.customer_id,
                order_id=return_request.order_id,
                return_id=return_request.id,
                points_to_deduct=earned,
                points_to_restore=redeemed,
            )
            logger.info(
                f"Points adjusted for return {return_request.id}: "
                f"deducted={adjustment.points_deducted}, restored={adjustment.points_restored}, "
                f"new_balance={adjustment.new_balance}"
            )
            return adjustment
        except Exception as e:
            logger.error(f"Error adjusting points for return {return_request.id}: {e}")
            return None
