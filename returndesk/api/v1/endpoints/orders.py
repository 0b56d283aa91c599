"""
Order API Endpoints

Return eligibility lookups for the admin return form.
"""

from fastapi import APIRouter

from returndesk.api.deps import ReturnServiceDep
from returndesk.schemas.return_request import CanReturnResponse

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/{order_id}/can-return", response_model=CanReturnResponse)
async def can_return(order_id: str, service: ReturnServiceDep):
    """
    Check whether a return can be opened for an order.
    Returnable items exclude quantities already claimed by open or completed returns.
    """
    return CanReturnResponse(**await service.can_return(order_id))
