"""
Return Service.

Operations the admin tooling calls on return requests. Each one loads the
return, checks the caller's version, applies one lifecycle event through the
state machine and persists the result.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from returndesk.models import ReturnRequest, new_return_id
from returndesk.schemas.return_request import ReturnCreate
from returndesk.services.collaborators import OrderRecord, OrderStore
from returndesk.services.eligibility import EligibilityValidator
from returndesk.services.errors import OrderNotFound, ReturnNotFound, ValidationFailed
from returndesk.services.refund_service import RefundStatus
from returndesk.services.repositories import ReturnRepository
from returndesk.services.return_state_machine import ReturnEvent, ReturnStatus, apply_event, ensure_version

logger = logging.getLogger(__name__)


def snapshot_discounts(order: OrderRecord) -> Dict[str, Any]:
    """
    Discounts applied to the order, captured when the return is opened.

    Coupon discount comes from line adjustments when there are any, else from
    the order metadata.
    """
    metadata = order.metadata or {}

    original_order_total = sum(line.unit_price * line.quantity for line in order.items)

    pwp_discount = 0
    for line in order.items:
        if line.metadata.get("is_pwp_item") and line.metadata.get("pwp_discount_amount"):
            pwp_discount += int(line.metadata["pwp_discount_amount"]) * (line.quantity or 1)

    adjustment_discount = sum(
        int(adjustment.get("amount") or 0)
        for line in order.items
        for adjustment in line.adjustments
    )

    return {
        "original_order_total": original_order_total,
        "coupon_code": metadata.get("coupon_code") or metadata.get("applied_coupon_code"),
        "coupon_discount": adjustment_discount if adjustment_discount > 0
        else int(metadata.get("applied_coupon_discount") or 0),
        "points_redeemed": int(metadata.get("points_to_redeem") or 0),
        "points_discount": int(metadata.get("points_discount_amount") or 0),
        "pwp_discount": pwp_discount,
    }


class ReturnService:
    """Orchestration facade for return requests."""

    def __init__(
        self,
        returns: ReturnRepository,
        orders: OrderStore,
        eligibility: Optional[EligibilityValidator] = None,
    ):
        self.returns = returns
        self.orders = orders
        self.eligibility = eligibility or EligibilityValidator(returns)

    # ==================== CREATE ====================

    async def create_return(self, data: ReturnCreate) -> ReturnRequest:
        """
        Open a return request for a delivered order.

        Raises:
            ValidationFailed, OrderNotFound, NotEligible (and subclasses)
        """
        if not data.order_id:
            raise ValidationFailed("Order ID is required", {"field": "order_id"})
        if not data.items:
            raise ValidationFailed("At least one item is required", {"field": "items"})
        if not data.reason:
            raise ValidationFailed("Reason is required", {"field": "reason"})
        if data.refund_amount < 0 or data.shipping_refund < 0:
            raise ValidationFailed("Refund amounts cannot be negative")

        order = await self.orders.get_order(data.order_id)
        if not order:
            raise OrderNotFound(data.order_id)

        await self.eligibility.ensure_eligible(order)

        return_type = data.return_type.value
        now = datetime.now(timezone.utc)
        return_request = ReturnRequest(
            id=new_return_id(),
            order_id=data.order_id,
            customer_id=order.customer_id or "",
            status=ReturnStatus.REQUESTED,
            return_type=return_type,
            reason=data.reason.value,
            reason_details=data.reason_details,
            items=[item.model_dump() for item in data.items],
            refund_amount=data.refund_amount,
            shipping_refund=data.shipping_refund,
            total_refund=data.refund_amount + data.shipping_refund,
            admin_notes=data.admin_notes,
            refund_status=RefundStatus.PENDING if return_type == "refund" else None,
            requested_at=now,
            version=1,
            created_at=now,
            updated_at=now,
            **snapshot_discounts(order),
        )

        await self.returns.add(return_request)
        await self.returns.commit()

        logger.info(
            f"Return {return_request.id} requested for order {data.order_id} "
            f"({return_type}, total_refund={return_request.total_refund})"
        )
        return return_request

    # ==================== READ ====================

    async def get_return(self, return_id: str) -> ReturnRequest:
        return_request = await self.returns.get(return_id)
        if not return_request:
            raise ReturnNotFound(return_id)
        return return_request

    async def list_returns(
        self,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        sort_by: str = "newest",
    ) -> Tuple[List[ReturnRequest], int]:
        if status == "all":
            status = None
        return await self.returns.list(
            status=status,
            order_id=order_id,
            limit=limit,
            offset=offset,
            newest_first=sort_by != "oldest",
        )

    async def get_stats(self) -> Dict[str, int]:
        counts = await self.returns.count_by_status()
        stats = {status: counts.get(status, 0) for status in ReturnStatus.all()}
        stats["total_refunded"] = await self.returns.total_refunded()
        return stats

    # ==================== LIFECYCLE ====================

    async def _transition(
        self,
        return_id: str,
        event: str,
        expected_version: Optional[int] = None,
        **payload,
    ) -> ReturnRequest:
        return_request = await self.get_return(return_id)
        ensure_version(return_request, expected_version)

        apply_event(return_request, event, **payload)
        return_request.updated_at = datetime.now(timezone.utc)

        await self.returns.save(return_request)
        await self.returns.commit()
        return return_request

    async def approve(
        self, return_id: str, admin_notes: Optional[str] = None, expected_version: Optional[int] = None
    ) -> ReturnRequest:
        return await self._transition(
            return_id, ReturnEvent.APPROVE, expected_version, admin_notes=admin_notes
        )

    async def reject(
        self, return_id: str, reason: str, expected_version: Optional[int] = None
    ) -> ReturnRequest:
        return await self._transition(return_id, ReturnEvent.REJECT, expected_version, reason=reason)

    async def mark_in_transit(
        self,
        return_id: str,
        courier: str,
        tracking_number: str,
        expected_version: Optional[int] = None,
    ) -> ReturnRequest:
        return await self._transition(
            return_id,
            ReturnEvent.SHIP,
            expected_version,
            courier=courier,
            tracking_number=tracking_number,
        )

    async def mark_received(self, return_id: str, expected_version: Optional[int] = None) -> ReturnRequest:
        return await self._transition(return_id, ReturnEvent.RECEIVE, expected_version)

    async def start_inspection(self, return_id: str, expected_version: Optional[int] = None) -> ReturnRequest:
        return await self._transition(return_id, ReturnEvent.INSPECT, expected_version)

    async def complete(
        self, return_id: str, admin_notes: Optional[str] = None, expected_version: Optional[int] = None
    ) -> ReturnRequest:
        return await self._transition(
            return_id, ReturnEvent.COMPLETE, expected_version, admin_notes=admin_notes
        )

    async def cancel(
        self, return_id: str, reason: Optional[str] = None, expected_version: Optional[int] = None
    ) -> ReturnRequest:
        return await self._transition(return_id, ReturnEvent.CANCEL, expected_version, reason=reason)

    # ==================== ELIGIBILITY ====================

    async def can_return(self, order_id: str) -> Dict[str, Any]:
        """Eligibility answer for the admin return form."""
        order = await self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)

        result = await self.eligibility.check(order)
        response = {
            "can_return": result.ok,
            "reason": result.reason,
            "order_id": order_id,
            "days_remaining": result.days_remaining,
            "delivered_at": order.delivered_at,
            "returnable_items": [],
            "discount_info": None,
        }
        if result.ok:
            response["returnable_items"] = await self.eligibility.returnable_items(order)
            response["discount_info"] = snapshot_discounts(order)
        return response
