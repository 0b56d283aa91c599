"""
Pydantic schemas for Return Requests, refunds and replacements.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field

from returndesk.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== Enums ====================

class ReturnType(str, Enum):
    REFUND = "refund"
    REPLACEMENT = "replacement"


class ReturnReason(str, Enum):
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    CHANGED_MIND = "changed_mind"
    OTHER = "other"


class ReturnStatus(str, Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    INSPECTING = "inspecting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"


# ==================== Item Schemas ====================

class ReturnItem(BaseModel):
    """Line item being returned, snapshotted from the order."""
    item_id: str
    variant_id: Optional[str] = None
    product_name: str = ""
    quantity: int = Field(..., ge=1)
    unit_price: int = Field(0, ge=0, description="Minor units")


# ==================== Request Bodies ====================

class ReturnCreate(BaseCreateSchema):
    """Schema for opening a return request (admin)."""
    order_id: str = Field(..., min_length=1)
    return_type: ReturnType = ReturnType.REFUND
    reason: ReturnReason
    reason_details: Optional[str] = None
    items: List[ReturnItem] = Field(..., min_length=1)
    refund_amount: int = Field(0, ge=0, description="Minor units")
    shipping_refund: int = Field(0, ge=0, description="Minor units")
    admin_notes: Optional[str] = None


class VersionedRequest(BaseCreateSchema):
    """Carries the version the caller last read, for optimistic locking."""
    version: Optional[int] = Field(None, ge=1)


class ApproveRequest(VersionedRequest):
    admin_notes: Optional[str] = None


class RejectRequest(VersionedRequest):
    reason: str


class InTransitRequest(VersionedRequest):
    courier: str
    tracking_number: str


class CompleteRequest(VersionedRequest):
    admin_notes: Optional[str] = None


class CancelRequest(VersionedRequest):
    reason: Optional[str] = None


class RefundProcessRequest(VersionedRequest):
    pass


class AddressInput(BaseModel):
    """Shipping address override for a replacement order."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address_1: Optional[str] = None
    address_2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country_code: Optional[str] = None
    phone: Optional[str] = None


class ReplacementRequest(VersionedRequest):
    shipping_address: Optional[AddressInput] = None
    admin_notes: Optional[str] = None


# ==================== Responses ====================

class ReturnRequestResponse(BaseResponseSchema):
    """Schema for a return request."""
    id: str
    order_id: str
    customer_id: str
    status: str
    return_type: str
    reason: str
    reason_details: Optional[str] = None
    items: List[ReturnItem] = []
    refund_amount: int
    shipping_refund: int
    total_refund: int
    original_order_total: int = 0
    coupon_code: Optional[str] = None
    coupon_discount: int = 0
    points_redeemed: int = 0
    points_discount: int = 0
    pwp_discount: int = 0
    return_tracking_number: Optional[str] = None
    return_courier: Optional[str] = None
    requested_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    refund_status: Optional[str] = None
    refund_reference: Optional[str] = None
    refunded_at: Optional[datetime] = None
    replacement_order_id: Optional[str] = None
    replacement_created_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime


class ReturnEnvelope(BaseResponseSchema):
    """{"return": ...}"""
    return_request: ReturnRequestResponse = Field(..., alias="return")


class ReturnListResponse(BaseModel):
    returns: List[ReturnRequestResponse]
    count: int
    limit: int
    offset: int


class ReturnStatsResponse(BaseModel):
    requested: int = 0
    approved: int = 0
    in_transit: int = 0
    received: int = 0
    inspecting: int = 0
    completed: int = 0
    rejected: int = 0
    cancelled: int = 0
    total_refunded: int = 0


class RefundSummaryResponse(BaseModel):
    id: str
    amount: int
    status: str
    currency: str


class PointsAdjustmentResponse(BaseModel):
    points_deducted: int
    points_restored: int
    new_balance: int


class RefundResultResponse(BaseResponseSchema):
    return_request: ReturnRequestResponse = Field(..., alias="return")
    refund: RefundSummaryResponse
    points: Optional[PointsAdjustmentResponse] = None


class ReplacementResultResponse(BaseResponseSchema):
    return_request: ReturnRequestResponse = Field(..., alias="return")
    replacement_order: Dict[str, Any]


# ==================== Eligibility ====================

class DiscountInfo(BaseModel):
    original_order_total: int = 0
    coupon_code: Optional[str] = None
    coupon_discount: int = 0
    points_redeemed: int = 0
    points_discount: int = 0
    pwp_discount: int = 0


class CanReturnResponse(BaseModel):
    can_return: bool
    reason: Optional[str] = None
    order_id: str
    days_remaining: Optional[int] = None
    delivered_at: Optional[datetime] = None
    returnable_items: List[ReturnItem] = []
    discount_info: Optional[DiscountInfo] = None
