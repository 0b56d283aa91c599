"""
Replacement Service.

Creates the zero-priced replacement order for a completed replacement-type
return and links it back to the return request.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from returndesk.models import ReturnRequest
from returndesk.services.collaborators import Address, OrderRecord, OrderStore
from returndesk.services.errors import OrderNotFound, ReplacementNotAllowed, ReturnNotFound
from returndesk.services.repositories import ReturnRepository
from returndesk.services.return_state_machine import ReturnStatus, ensure_version

logger = logging.getLogger(__name__)


def _merge_address(primary: Optional[Address], fallback: Optional[Address]) -> Dict[str, str]:
    primary = primary or Address()
    fallback = fallback or Address()
    return {
        key: getattr(primary, key) or getattr(fallback, key)
        for key in Address.__dataclass_fields__
    }


def build_replacement_payload(
    return_request: ReturnRequest,
    order: OrderRecord,
    shipping_address: Optional[Address] = None,
) -> Dict[str, Any]:
    """Order payload with the returned items at no charge."""
    lines_by_id = {line.id: line for line in order.items}
    lines_by_variant = {line.variant_id: line for line in order.items if line.variant_id}

    items = []
    for item in return_request.items or []:
        original = lines_by_id.get(item.get("item_id")) or lines_by_variant.get(item.get("variant_id"))
        items.append({
            "variant_id": item.get("variant_id"),
            "title": item.get("product_name"),
            "quantity": item.get("quantity"),
            "unit_price": 0,
            "metadata": {
                **(original.metadata if original else {}),
                "is_replacement_item": True,
                "original_unit_price": item.get("unit_price"),
            },
        })

    shipping = shipping_address or order.shipping_address
    metadata = order.metadata or {}

    return {
        "customer_id": order.customer_id,
        "email": order.email,
        "currency_code": order.currency_code,
        "items": items,
        "shipping_address": _merge_address(shipping, None),
        "billing_address": _merge_address(order.billing_address, shipping),
        "payment_status": "paid",
        "payment_method": "replacement",
        "metadata": {
            "is_replacement_order": True,
            "original_order_id": order.id,
            "original_order_display_id": order.display_id,
            "return_request_id": return_request.id,
            "replacement_reason": return_request.reason,
            "replacement_reason_details": return_request.reason_details,
            "original_coupon_code": metadata.get("applied_coupon_code") or metadata.get("coupon_code"),
            "original_coupon_discount": metadata.get("applied_coupon_discount") or 0,
            "original_points_redeemed": metadata.get("points_to_redeem") or 0,
            "original_points_discount": metadata.get("points_discount_amount") or 0,
        },
    }


class ReplacementService:

    def __init__(self, returns: ReturnRepository, orders: OrderStore):
        self.returns = returns
        self.orders = orders

    async def create_replacement(
        self,
        return_id: str,
        shipping_address: Optional[Dict[str, Any]] = None,
        admin_notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Returns:
            {"return": ReturnRequest, "replacement_order": dict}
        """
        return_request = await self.returns.get(return_id)
        if not return_request:
            raise ReturnNotFound(return_id)

        ensure_version(return_request, expected_version)

        if return_request.return_type != "replacement":
            raise ReplacementNotAllowed(
                "This return is for refund, not replacement",
                {"return_id": return_id, "return_type": return_request.return_type},
            )
        if return_request.status != ReturnStatus.COMPLETED:
            raise ReplacementNotAllowed(
                "Return must be completed before creating replacement order",
                {"return_id": return_id, "status": return_request.status},
            )
        if return_request.replacement_order_id:
            raise ReplacementNotAllowed(
                f"Replacement order already created: {return_request.replacement_order_id}",
                {"return_id": return_id, "replacement_order_id": return_request.replacement_order_id},
            )

        order = await self.orders.get_order(return_request.order_id)
        if not order:
            raise OrderNotFound(return_request.order_id)

        payload = build_replacement_payload(
            return_request,
            order,
            Address.from_dict(shipping_address) if shipping_address else None,
        )

        logger.info(f"Creating replacement order for return {return_id}, original order {order.id}")
        replacement_order = await self.orders.create_replacement_order(payload)

        now = datetime.now(timezone.utc)
        return_request.replacement_order_id = replacement_order["id"]
        return_request.replacement_created_at = now
        return_request.admin_notes = admin_notes or return_request.admin_notes
        return_request.updated_at = now
        await self.returns.save(return_request)
        await self.returns.commit()

        logger.info(f"Replacement order {replacement_order['id']} linked to return {return_id}")

        return {"return": return_request, "replacement_order": replacement_order}
