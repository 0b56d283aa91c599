"""
Return Shipping API Endpoints

EasyParcel booking for the return leg: rates, submit, pay and status.
"""

import logging
from typing import Optional

from fastapi import APIRouter

from returndesk.api.deps import ReturnShippingServiceDep
from returndesk.schemas.shipping import (
    CarrierShipmentResponse,
    RateCheckRequest,
    RateCheckResponse,
    ShipmentPayResponse,
    ShipmentSubmitRequest,
    ShipmentSubmitResponse,
    ShippingStatusResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/return-requests", tags=["Return Shipping"])


@router.post("/{return_id}/shipping/rates", response_model=RateCheckResponse)
async def get_return_shipping_rates(
    return_id: str,
    service: ReturnShippingServiceDep,
    data: Optional[RateCheckRequest] = None,
):
    """
    Rates for collecting the return from the customer's address.
    Weight is calculated from the returned items unless given.
    """
    weight = data.weight if data else None
    return RateCheckResponse(**await service.fetch_rates(return_id, weight))


@router.post("/{return_id}/shipping/submit", response_model=ShipmentSubmitResponse)
async def submit_return_shipment(
    return_id: str,
    data: ShipmentSubmitRequest,
    service: ReturnShippingServiceDep,
):
    """Create the EasyParcel order. Fails if one was already created."""
    result = await service.submit_shipment(return_id, **data.model_dump())
    return ShipmentSubmitResponse(**result)


@router.post("/{return_id}/shipping/pay", response_model=ShipmentPayResponse)
async def pay_return_shipment(return_id: str, service: ReturnShippingServiceDep):
    """
    Pay for the submitted order, store the AWB and mark the return in transit.
    Paying again returns the stored AWB.
    """
    return ShipmentPayResponse(**await service.pay_shipment(return_id))


@router.get("/{return_id}/shipping/status", response_model=ShippingStatusResponse)
async def get_return_shipping_status(return_id: str, service: ReturnShippingServiceDep):
    result = await service.get_shipping_status(return_id)
    shipment = result["shipping"]
    return ShippingStatusResponse(
        has_easyparcel_shipping=result["has_easyparcel_shipping"],
        shipping=CarrierShipmentResponse.model_validate(shipment) if shipment else None,
    )
