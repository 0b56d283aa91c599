"""
Pydantic schemas for return shipping through EasyParcel.
"""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from returndesk.schemas.base import BaseResponseSchema, BaseCreateSchema


class RateCheckRequest(BaseCreateSchema):
    weight: Optional[float] = Field(None, gt=0, description="Parcel weight in kg, overrides the calculated weight")


class RateOption(BaseModel):
    service_id: str
    service_name: str
    courier_id: str
    courier_name: str
    courier_logo: str = ""
    price: float
    price_display: str
    pickup_date: str = ""
    delivery_eta: str = ""
    has_cod: bool = False
    has_insurance: bool = False


class PartyAddress(BaseModel):
    name: str
    address: str
    postcode: str
    phone: str


class RateCheckResponse(BaseModel):
    return_id: str
    rates: List[RateOption]
    count: int
    weight: float
    calculated_weight: float
    customer_address: PartyAddress
    warehouse_address: PartyAddress
    environment: str
    message: Optional[str] = None


class ShipmentSubmitRequest(BaseCreateSchema):
    service_id: str
    service_name: str = ""
    courier_id: str
    courier_name: str = ""
    weight: Optional[float] = Field(None, gt=0)
    rate: int = Field(0, ge=0, description="Minor units")
    pickup_date: str = Field(..., description="YYYY-MM-DD")
    pickup_time: Optional[str] = None
    content: Optional[str] = None


class ShipmentSubmitResponse(BaseModel):
    return_id: str
    order_no: str
    easyparcel_return_id: str
    environment: str


class ShipmentPayResponse(BaseModel):
    return_id: str
    order_no: str
    parcel_no: Optional[str] = None
    awb: str
    tracking_url: Optional[str] = None
    environment: str
    mock_mode: bool = False
    already_paid: bool = False
    lifecycle_synced: bool = True


class CarrierShipmentResponse(BaseResponseSchema):
    id: str
    return_id: str
    order_id: str
    order_no: Optional[str] = None
    parcel_no: Optional[str] = None
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    service_id: str
    service_name: str
    courier_id: str
    courier_name: str
    weight: float
    rate: int
    pickup_date: Optional[str] = None
    pickup_time: Optional[str] = None
    sender_name: str
    sender_phone: str
    sender_address: str
    sender_postcode: str
    sender_country: str
    receiver_name: str
    receiver_phone: str
    receiver_address: str
    receiver_postcode: str
    receiver_country: str
    status: str
    created_at: datetime
    updated_at: datetime


class ShippingStatusResponse(BaseModel):
    has_easyparcel_shipping: bool
    shipping: Optional[CarrierShipmentResponse] = None
