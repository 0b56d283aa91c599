from fastapi import APIRouter

from returndesk.api.v1.endpoints import (
    returns,
    return_shipping,
    orders,
)


api_router = APIRouter(prefix="/api/v1")

# Return lifecycle, refund and replacement
api_router.include_router(returns.router)
# EasyParcel return shipping
api_router.include_router(return_shipping.router)
# Eligibility
api_router.include_router(orders.router)
