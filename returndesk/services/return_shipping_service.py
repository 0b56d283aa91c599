"""
Return Shipping Service.

Books the reverse leg of a return through EasyParcel:

    rates -> submit (order_no) -> pay (AWB) -> return marked in_transit

The customer is the pickup (sender) and the warehouse is the receiver.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from returndesk.config import settings
from returndesk.models import CarrierShipment, ReturnRequest, new_shipment_id
from returndesk.services.carrier_payment import CarrierPaymentGateway
from returndesk.services.collaborators import (
    Address,
    OrderRecord,
    OrderStore,
    ProductCatalog,
    WarehouseAddress,
    get_warehouse_address,
)
from returndesk.services.easyparcel_service import (
    EasyParcelParty,
    EasyParcelService,
    EasyParcelSubmitRequest,
    format_singapore_phone,
)
from returndesk.services.errors import (
    AlreadySubmitted,
    ConcurrentModification,
    ConfigurationError,
    InvalidPhone,
    InvalidTransition,
    NotSubmitted,
    OrderNotFound,
    ReturnNotFound,
    ShipmentNotFound,
    ValidationFailed,
)
from returndesk.services.repositories import CarrierShipmentRepository, ReturnRepository
from returndesk.services.return_state_machine import ReturnEvent, apply_event

logger = logging.getLogger(__name__)


class ShipmentStatus:
    RATE_CHECKED = "rate_checked"
    ORDER_CREATED = "order_created"
    PAID = "paid"


class ReturnShippingService:
    """Carrier shipment sub-workflow for return requests."""

    def __init__(
        self,
        returns: ReturnRepository,
        shipments: CarrierShipmentRepository,
        orders: OrderStore,
        catalog: ProductCatalog,
        easyparcel: EasyParcelService,
        payment_gateway: CarrierPaymentGateway,
        warehouse: Optional[WarehouseAddress] = None,
    ):
        self.returns = returns
        self.shipments = shipments
        self.orders = orders
        self.catalog = catalog
        self.easyparcel = easyparcel
        self.payment_gateway = payment_gateway
        self.warehouse = warehouse or get_warehouse_address()

    # ==================== HELPERS ====================

    async def _get_return(self, return_id: str) -> ReturnRequest:
        return_request = await self.returns.get(return_id)
        if not return_request:
            raise ReturnNotFound(return_id)
        return return_request

    async def _get_customer_address(self, return_request: ReturnRequest) -> Tuple[OrderRecord, Address]:
        order = await self.orders.get_order(return_request.order_id)
        if not order:
            raise OrderNotFound(return_request.order_id)
        if not order.shipping_address:
            raise ValidationFailed(
                "Customer shipping address not found",
                {"order_id": order.id},
            )
        return order, order.shipping_address

    def _ensure_warehouse(self) -> WarehouseAddress:
        if not self.warehouse.is_configured:
            raise ConfigurationError("Warehouse address not configured")
        return self.warehouse

    async def calculate_weight(self, return_request: ReturnRequest) -> float:
        """Total weight in kg of the returned items. Unknown variants weigh 0."""
        items = return_request.items or []
        variant_ids = [item["variant_id"] for item in items if item.get("variant_id")]
        if not variant_ids:
            return 0.0

        weights = await self.catalog.get_variant_weights(variant_ids)
        total = sum(
            weights.get(item.get("variant_id"), 0) / 1000 * int(item.get("quantity") or 0)
            for item in items
        )
        # Avoid float noise such as 0.6000000000000001 reaching the carrier
        return round(total, 3)

    # ==================== RATES ====================

    async def fetch_rates(self, return_id: str, weight: Optional[float] = None) -> Dict[str, Any]:
        """
        Rates for collecting the return from the customer.

        A caller-supplied weight overrides the calculated one; otherwise the
        calculated weight is floored at MIN_RETURN_WEIGHT_KG.
        """
        return_request = await self._get_return(return_id)
        _, customer = await self._get_customer_address(return_request)
        warehouse = self._ensure_warehouse()

        calculated_weight = await self.calculate_weight(return_request)
        parcel_weight = weight or max(calculated_weight, settings.MIN_RETURN_WEIGHT_KG)

        result = await self.easyparcel.check_rates(
            pickup_postcode=customer.postal_code,
            delivery_postcode=warehouse.postcode,
            weight=parcel_weight,
            pickup_country=settings.EASYPARCEL_COUNTRY,
            delivery_country=warehouse.country,
        )

        response = {
            "return_id": return_id,
            "rates": [rate.to_dict() for rate in result.rates],
            "count": len(result.rates),
            "weight": parcel_weight,
            "calculated_weight": calculated_weight,
            "customer_address": {
                "name": customer.full_name,
                "address": customer.address_1,
                "postcode": customer.postal_code,
                "phone": customer.phone,
            },
            "warehouse_address": {
                "name": warehouse.name,
                "address": warehouse.address,
                "postcode": warehouse.postcode,
                "phone": warehouse.phone,
            },
            "environment": self.easyparcel.environment,
        }
        if result.message:
            response["message"] = result.message
        return response

    # ==================== SUBMIT ====================

    async def submit_shipment(
        self,
        return_id: str,
        service_id: str,
        courier_id: str,
        pickup_date: str,
        service_name: str = "",
        courier_name: str = "",
        weight: Optional[float] = None,
        rate: int = 0,
        pickup_time: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create the EasyParcel order for a return.

        Nothing is persisted unless the carrier accepted the order.
        """
        if not service_id or not courier_id or not pickup_date:
            raise ValidationFailed("service_id, courier_id, and pickup_date are required")

        return_request = await self._get_return(return_id)

        existing = await self.shipments.get_by_return_id(return_id)
        if existing and existing.order_no:
            raise AlreadySubmitted(existing.order_no)

        _, customer = await self._get_customer_address(return_request)
        warehouse = self._ensure_warehouse()

        customer_phone = format_singapore_phone(customer.phone)
        if not customer_phone:
            raise InvalidPhone(
                f"Invalid customer phone number: {customer.phone}. Must be valid Singapore "
                f"number (8 digits starting with 6, 8, or 9).",
                {"phone": customer.phone},
            )
        warehouse_phone = format_singapore_phone(warehouse.phone)
        if not warehouse_phone:
            raise InvalidPhone(
                f"Invalid warehouse phone number: {warehouse.phone}. Please update the warehouse settings.",
                {"phone": warehouse.phone},
            )

        customer_name = customer.full_name or "Customer"
        parcel_weight = weight or 1.0
        request = EasyParcelSubmitRequest(
            sender=EasyParcelParty(
                name=customer_name,
                phone=customer_phone,
                address_1=customer.address_1,
                address_2=customer.address_2,
                postcode=customer.postal_code,
                state=settings.EASYPARCEL_STATE,
                country=settings.EASYPARCEL_COUNTRY,
            ),
            receiver=EasyParcelParty(
                name=warehouse.name,
                company=warehouse.name,
                phone=warehouse_phone,
                address_1=warehouse.address,
                postcode=warehouse.postcode,
                unit=warehouse.unit,
                state=settings.EASYPARCEL_STATE,
                country=warehouse.country,
            ),
            service_id=service_id,
            collect_date=pickup_date,
            weight=parcel_weight,
            content=content or "Return Items",
            value=(rate or 0) / 100,
            reference=f"RETURN-{return_id}",
            sms=True,
        )

        result = await self.easyparcel.submit_order(request)
        order_no = result["order_number"]

        fields = dict(
            order_id=return_request.order_id,
            order_no=order_no,
            parcel_no=result.get("parcel_number"),
            service_id=service_id,
            service_name=service_name or "",
            courier_id=courier_id,
            courier_name=courier_name or "",
            weight=parcel_weight,
            rate=rate or 0,
            pickup_date=pickup_date,
            pickup_time=pickup_time,
            sender_name=customer_name,
            sender_phone=customer_phone,
            sender_address=customer.address_1,
            sender_postcode=customer.postal_code,
            sender_country=settings.EASYPARCEL_COUNTRY,
            receiver_name=warehouse.name,
            receiver_phone=warehouse_phone,
            receiver_address=warehouse.address,
            receiver_postcode=warehouse.postcode,
            receiver_country=warehouse.country,
            status=ShipmentStatus.ORDER_CREATED,
        )

        if existing:
            # Leftover row without an order number, reuse it
            for key, value in fields.items():
                setattr(existing, key, value)
            existing.updated_at = datetime.now(timezone.utc)
            shipment = await self.shipments.save(existing)
        else:
            now = datetime.now(timezone.utc)
            shipment = await self.shipments.add(CarrierShipment(
                id=new_shipment_id(),
                return_id=return_id,
                extra_data={},
                created_at=now,
                updated_at=now,
                **fields,
            ))
        await self.shipments.commit()

        logger.info(f"Return {return_id}: EasyParcel order {order_no} created")

        return {
            "return_id": return_id,
            "order_no": order_no,
            "easyparcel_return_id": shipment.id,
            "environment": self.easyparcel.environment,
        }

    # ==================== PAY ====================

    def _pay_response(
        self,
        shipment: CarrierShipment,
        already_paid: bool,
        lifecycle_synced: bool,
    ) -> Dict[str, Any]:
        return {
            "return_id": shipment.return_id,
            "order_no": shipment.order_no,
            "parcel_no": shipment.parcel_no,
            "awb": shipment.awb,
            "tracking_url": shipment.tracking_url,
            "environment": self.easyparcel.environment,
            "mock_mode": bool((shipment.extra_data or {}).get("mock_mode", False)),
            "already_paid": already_paid,
            "lifecycle_synced": lifecycle_synced,
        }

    async def pay_shipment(self, return_id: str) -> Dict[str, Any]:
        """
        Pay for the submitted order and move the return to in_transit.

        The paid shipment is committed as soon as the carrier has been paid,
        before the return is touched, so a failed lifecycle update never
        loses the AWB. Paying twice returns the stored AWB without calling
        the carrier again.
        """
        return_request = await self._get_return(return_id)

        shipment = await self.shipments.get_by_return_id(return_id)
        if not shipment:
            raise ShipmentNotFound(
                "No EasyParcel shipment found for this return. Please submit first.",
                {"return_id": return_id},
            )
        if not shipment.order_no:
            raise NotSubmitted(
                "Return shipment has not been submitted to EasyParcel yet",
                {"return_id": return_id},
            )

        if shipment.awb:
            return self._pay_response(
                shipment,
                already_paid=True,
                lifecycle_synced=return_request.return_tracking_number == shipment.awb,
            )

        paid = await self.payment_gateway.pay(shipment.order_no)

        shipment.parcel_no = paid.parcel_no or shipment.parcel_no
        shipment.awb = paid.awb
        shipment.tracking_url = paid.tracking_url
        shipment.status = ShipmentStatus.PAID
        shipment.extra_data = {**(shipment.extra_data or {}), "mock_mode": paid.mock_mode}
        shipment.updated_at = datetime.now(timezone.utc)
        await self.shipments.save(shipment)
        await self.shipments.commit()
        logger.info(f"Return {return_id}: shipment paid, AWB {paid.awb}")

        # A failed return write rolls the session back and expires the shipment
        response = self._pay_response(shipment, already_paid=False, lifecycle_synced=True)

        try:
            apply_event(
                return_request,
                ReturnEvent.SHIP,
                courier=shipment.courier_name,
                tracking_number=paid.awb,
            )
            return_request.updated_at = datetime.now(timezone.utc)
            await self.returns.save(return_request)
            await self.returns.commit()
        except (ConcurrentModification, InvalidTransition, ValidationFailed) as e:
            # Carrier has been paid; keep the AWB and let an operator fix the lifecycle
            response["lifecycle_synced"] = False
            logger.error(
                f"Return {return_id}: shipment paid (AWB {paid.awb}) but lifecycle not updated: {e}"
            )

        return response

    # ==================== STATUS ====================

    async def get_shipping_status(self, return_id: str) -> Dict[str, Any]:
        await self._get_return(return_id)
        shipment = await self.shipments.get_by_return_id(return_id)
        return {
            "has_easyparcel_shipping": shipment is not None,
            "shipping": shipment,
        }
