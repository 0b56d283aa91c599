"""
Carrier Shipment Model

Booking record for the reverse leg of a return (customer -> warehouse) made
through EasyParcel. At most one row per return request.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Float, BigInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from returndesk.database import Base
from returndesk.db_types import JSONType


def new_shipment_id() -> str:
    return f"eprt_{uuid.uuid4().hex}"


class CarrierShipment(Base):
    """
    Return-leg shipment.

    Status moves rate_checked -> order_created -> paid. Sender is the customer
    and receiver is the warehouse, the reverse of an outbound delivery.
    """
    __tablename__ = "carrier_shipments"
    __table_args__ = (
        UniqueConstraint("return_id", name="uq_carrier_shipments_return_id"),
    )

    id: Mapped[str] = mapped_column(
        String(40),
        primary_key=True,
        default=new_shipment_id
    )
    return_id: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Carrier identifiers
    order_no: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="EasyParcel order number, set on submission"
    )
    parcel_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    awb: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Air waybill, set once the shipment is paid"
    )
    tracking_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Service selection
    service_id: Mapped[str] = mapped_column(String(50), nullable=False)
    service_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    courier_id: Mapped[str] = mapped_column(String(50), nullable=False)
    courier_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    rate: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, comment="Minor units")

    # Pickup scheduling
    pickup_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, comment="YYYY-MM-DD")
    pickup_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Sender (customer)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_address: Mapped[str] = mapped_column(String(500), nullable=False)
    sender_postcode: Mapped[str] = mapped_column(String(20), nullable=False)
    sender_country: Mapped[str] = mapped_column(String(2), nullable=False, default="SG")

    # Receiver (warehouse)
    receiver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    receiver_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    receiver_address: Mapped[str] = mapped_column(String(500), nullable=False)
    receiver_postcode: Mapped[str] = mapped_column(String(20), nullable=False)
    receiver_country: Mapped[str] = mapped_column(String(2), nullable=False, default="SG")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="rate_checked",
        comment="rate_checked, order_created, paid"
    )
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CarrierShipment(return='{self.return_id}', order_no='{self.order_no}', status='{self.status}')>"
