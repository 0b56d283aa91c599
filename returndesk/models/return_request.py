"""
Return Request Model

The aggregate root of a product return: request, approval, return shipping,
warehouse receipt, inspection and resolution (refund or replacement).
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import String, DateTime, Integer, BigInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from returndesk.database import Base
from returndesk.db_types import JSONType


def new_return_id() -> str:
    """Generate an opaque return request id."""
    return f"ret_{uuid.uuid4().hex}"


class ReturnRequest(Base):
    """
    Return request tracked from creation to completion.

    Items and the discount snapshot are written once at creation. Only status,
    lifecycle timestamps, carrier fields, refund fields and replacement fields
    change afterwards.
    """
    __tablename__ = "return_requests"

    id: Mapped[str] = mapped_column(
        String(40),
        primary_key=True,
        default=new_return_id
    )

    # References owned by the order/customer systems
    order_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True
    )
    customer_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="requested",
        index=True,
        comment="requested, approved, rejected, in_transit, received, inspecting, completed, cancelled"
    )
    return_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="refund",
        comment="refund, replacement"
    )
    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="defective, wrong_item, not_as_described, changed_mind, other"
    )
    reason_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Snapshot: [{item_id, variant_id, product_name, quantity, unit_price}]
    items: Mapped[List[dict]] = mapped_column(JSONType, nullable=False)

    # Money, integer minor currency units
    refund_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    shipping_refund: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_refund: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="refund_amount + shipping_refund, fixed at creation"
    )

    # Original order discount snapshot (display/audit only)
    original_order_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    coupon_discount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_redeemed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_discount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    pwp_discount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Return shipping (customer -> warehouse)
    return_tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    return_courier: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lifecycle timestamps
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Refund processing
    refund_status: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="pending, processing, completed, failed"
    )
    refund_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Payment gateway refund id"
    )
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Replacement (return_type == replacement)
    replacement_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    replacement_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

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

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ReturnRequest(id='{self.id}', order='{self.order_id}', status='{self.status}')>"
