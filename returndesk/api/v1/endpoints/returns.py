"""
Return Request API Endpoints

Admin operations on return requests: create, list, lifecycle transitions,
refund and replacement.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status

from returndesk.api.deps import RefundServiceDep, ReplacementServiceDep, ReturnServiceDep
from returndesk.schemas.return_request import (
    ApproveRequest,
    CancelRequest,
    CompleteRequest,
    InTransitRequest,
    RefundProcessRequest,
    RefundResultResponse,
    RejectRequest,
    ReplacementRequest,
    ReplacementResultResponse,
    ReturnCreate,
    ReturnEnvelope,
    ReturnListResponse,
    ReturnRequestResponse,
    ReturnStatsResponse,
    SortOrder,
    VersionedRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/returns", tags=["Returns"])


def _envelope(return_request) -> ReturnEnvelope:
    return ReturnEnvelope(return_request=ReturnRequestResponse.model_validate(return_request))


# ==================== Create / Read ====================

@router.post("", response_model=ReturnEnvelope, status_code=status.HTTP_201_CREATED)
async def create_return(data: ReturnCreate, service: ReturnServiceDep):
    """
    Open a return request for a delivered order.
    The order must be within the return window and have no pending return.
    """
    return_request = await service.create_return(data)
    return _envelope(return_request)


@router.get("", response_model=ReturnListResponse)
async def list_returns(
    service: ReturnServiceDep,
    status: Optional[str] = None,
    order_id: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: SortOrder = SortOrder.NEWEST,
):
    """List return requests (admin)."""
    returns, total = await service.list_returns(
        status=status,
        order_id=order_id,
        limit=limit,
        offset=offset,
        sort_by=sort_by.value,
    )
    return ReturnListResponse(
        returns=[ReturnRequestResponse.model_validate(r) for r in returns],
        count=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ReturnStatsResponse)
async def get_return_stats(service: ReturnServiceDep):
    """Return counts per status and total refunded."""
    return ReturnStatsResponse(**await service.get_stats())


@router.get("/{return_id}", response_model=ReturnEnvelope)
async def get_return(return_id: str, service: ReturnServiceDep):
    return _envelope(await service.get_return(return_id))


# ==================== Lifecycle ====================

@router.post("/{return_id}/approve", response_model=ReturnEnvelope)
async def approve_return(return_id: str, service: ReturnServiceDep, data: Optional[ApproveRequest] = None):
    data = data or ApproveRequest()
    return _envelope(await service.approve(return_id, data.admin_notes, data.version))


@router.post("/{return_id}/reject", response_model=ReturnEnvelope)
async def reject_return(return_id: str, data: RejectRequest, service: ReturnServiceDep):
    return _envelope(await service.reject(return_id, data.reason, data.version))


@router.post("/{return_id}/in-transit", response_model=ReturnEnvelope)
async def mark_return_in_transit(return_id: str, data: InTransitRequest, service: ReturnServiceDep):
    """Record the courier and tracking number for a manually booked return."""
    return _envelope(
        await service.mark_in_transit(return_id, data.courier, data.tracking_number, data.version)
    )


@router.post("/{return_id}/received", response_model=ReturnEnvelope)
async def mark_return_received(return_id: str, service: ReturnServiceDep, data: Optional[VersionedRequest] = None):
    data = data or VersionedRequest()
    return _envelope(await service.mark_received(return_id, data.version))


@router.post("/{return_id}/inspect", response_model=ReturnEnvelope)
async def start_return_inspection(return_id: str, service: ReturnServiceDep, data: Optional[VersionedRequest] = None):
    data = data or VersionedRequest()
    return _envelope(await service.start_inspection(return_id, data.version))


@router.post("/{return_id}/complete", response_model=ReturnEnvelope)
async def complete_return(return_id: str, service: ReturnServiceDep, data: Optional[CompleteRequest] = None):
    data = data or CompleteRequest()
    return _envelope(await service.complete(return_id, data.admin_notes, data.version))


@router.post("/{return_id}/cancel", response_model=ReturnEnvelope)
async def cancel_return(return_id: str, service: ReturnServiceDep, data: Optional[CancelRequest] = None):
    data = data or CancelRequest()
    return _envelope(await service.cancel(return_id, data.reason, data.version))


# ==================== Resolution ====================

@router.post("/{return_id}/refund", response_model=RefundResultResponse)
async def process_refund(
    return_id: str,
    service: RefundServiceDep,
    data: Optional[RefundProcessRequest] = None,
):
    """
    Refund a completed return through the payment gateway, then adjust the
    customer's points. A points failure does not fail the refund.
    """
    data = data or RefundProcessRequest()
    result = await service.process_refund(return_id, data.version)
    return RefundResultResponse(
        return_request=ReturnRequestResponse.model_validate(result["return"]),
        refund=result["refund"],
        points=result["points"],
    )


@router.post("/{return_id}/replacement", response_model=ReplacementResultResponse)
async def create_replacement(
    return_id: str,
    service: ReplacementServiceDep,
    data: Optional[ReplacementRequest] = None,
):
    """Create a zero-priced replacement order for a completed replacement return."""
    data = data or ReplacementRequest()
    result = await service.create_replacement(
        return_id,
        shipping_address=data.shipping_address.model_dump() if data.shipping_address else None,
        admin_notes=data.admin_notes,
        expected_version=data.version,
    )
    return ReplacementResultResponse(
        return_request=ReturnRequestResponse.model_validate(result["return"]),
        replacement_order=result["replacement_order"],
    )
