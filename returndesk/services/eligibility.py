"""
Return eligibility rules.

A return may be opened when the order was delivered, the return window has
not closed, and no other return for the order is still in progress.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from returndesk.config import settings
from returndesk.services.collaborators import OrderRecord
from returndesk.services.errors import DuplicatePending, NotEligible, WindowExpired
from returndesk.services.repositories import ReturnRepository
from returndesk.services.return_state_machine import PENDING_STATUSES, ReturnStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EligibilityResult:
    ok: bool
    reason: Optional[str] = None
    days_since_delivery: Optional[int] = None
    days_remaining: Optional[int] = None
    error: Optional[NotEligible] = None


class EligibilityValidator:
    """Decides whether a return may be opened for an order. Read only."""

    def __init__(
        self,
        returns: ReturnRepository,
        clock: Callable[[], datetime] = utcnow,
        window_days: Optional[int] = None,
    ):
        self.returns = returns
        self.clock = clock
        self.window_days = window_days if window_days is not None else settings.RETURN_WINDOW_DAYS

    def _days_since(self, delivered_at: datetime) -> int:
        if delivered_at.tzinfo is None:
            delivered_at = delivered_at.replace(tzinfo=timezone.utc)
        return (self.clock() - delivered_at).days

    async def check(self, order: OrderRecord) -> EligibilityResult:
        if order.fulfillment_status != "delivered":
            return EligibilityResult(
                ok=False,
                reason="Only delivered orders can be returned",
                error=NotEligible(
                    "Only delivered orders can be returned",
                    {"order_id": order.id, "fulfillment_status": order.fulfillment_status},
                ),
            )

        days_since = days_remaining = None
        if order.delivered_at:
            days_since = self._days_since(order.delivered_at)
            days_remaining = max(0, self.window_days - days_since)
            if days_since > self.window_days:
                reason = f"Return window of {self.window_days} days has expired"
                return EligibilityResult(
                    ok=False,
                    reason=reason,
                    days_since_delivery=days_since,
                    days_remaining=0,
                    error=WindowExpired(reason, {"order_id": order.id, "days_since_delivery": days_since}),
                )

        existing = await self.returns.list_for_order(order.id)
        pending = next((r for r in existing if r.status in PENDING_STATUSES), None)
        if pending:
            reason = "A return request is already pending for this order"
            return EligibilityResult(
                ok=False,
                reason=reason,
                days_since_delivery=days_since,
                days_remaining=days_remaining,
                error=DuplicatePending(
                    reason,
                    {"order_id": order.id, "return_id": pending.id, "status": pending.status},
                ),
            )

        return EligibilityResult(ok=True, days_since_delivery=days_since, days_remaining=days_remaining)

    async def ensure_eligible(self, order: OrderRecord) -> EligibilityResult:
        """Like check(), but raises the failing rule's error."""
        result = await self.check(order)
        if not result.ok:
            logger.info(f"Order {order.id} not eligible for return: {result.reason}")
            raise result.error
        return result

    async def returnable_items(self, order: OrderRecord) -> List[Dict]:
        """
        Order lines with the quantity still available for return. Quantities
        on rejected or cancelled returns are released again.
        """
        claimed: Dict[str, int] = {}
        for existing in await self.returns.list_for_order(order.id):
            if existing.status in (ReturnStatus.REJECTED, ReturnStatus.CANCELLED):
                continue
            for item in existing.items or []:
                item_id = item.get("item_id")
                claimed[item_id] = claimed.get(item_id, 0) + int(item.get("quantity") or 0)

        items = []
        for line in order.items:
            available = line.quantity - claimed.get(line.id, 0)
            if available > 0:
                items.append({
                    "item_id": line.id,
                    "variant_id": line.variant_id,
                    "product_name": line.title,
                    "quantity": available,
                    "unit_price": line.unit_price,
                })
        return items
