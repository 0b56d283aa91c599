"""
Dependency wiring for the API.

Every service gets repositories bound to the request's database session, so
writes made by one request share one transaction. External collaborators are
built here; tests replace them through app.dependency_overrides.
"""
import logging
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from returndesk.config import settings
from returndesk.database import get_db
from returndesk.services.carrier_payment import (
    CarrierPaymentGateway,
    EasyParcelPaymentGateway,
    SimulatedCarrierPaymentGateway,
)
from returndesk.services.collaborators import (
    HttpOrderStore,
    HttpPointsLedger,
    HttpProductCatalog,
    OrderStore,
    PointsLedger,
    ProductCatalog,
)
from returndesk.services.easyparcel_service import EasyParcelService
from returndesk.services.payment_service import PaymentGateway, RazorpayPaymentGateway
from returndesk.services.refund_service import RefundService
from returndesk.services.replacement_service import ReplacementService
from returndesk.services.repositories import (
    CarrierShipmentRepository,
    ReturnRepository,
    SqlAlchemyCarrierShipmentRepository,
    SqlAlchemyReturnRepository,
)
from returndesk.services.return_service import ReturnService
from returndesk.services.return_shipping_service import ReturnShippingService

logger = logging.getLogger(__name__)


# ==================== PERSISTENCE ====================

def get_return_repository(db: AsyncSession = Depends(get_db)) -> ReturnRepository:
    return SqlAlchemyReturnRepository(db)


def get_shipment_repository(db: AsyncSession = Depends(get_db)) -> CarrierShipmentRepository:
    return SqlAlchemyCarrierShipmentRepository(db)


# ==================== COLLABORATORS ====================

def get_order_store() -> OrderStore:
    return HttpOrderStore()


def get_product_catalog() -> ProductCatalog:
    return HttpProductCatalog()


def get_points_ledger() -> PointsLedger:
    return HttpPointsLedger()


def get_payment_gateway() -> PaymentGateway:
    return RazorpayPaymentGateway()


def get_easyparcel_service() -> EasyParcelService:
    return EasyParcelService()


def get_carrier_payment_gateway(
    easyparcel: EasyParcelService = Depends(get_easyparcel_service),
) -> CarrierPaymentGateway:
    if settings.EASYPARCEL_MOCK_PAYMENT:
        logger.debug("EasyParcel payments are simulated")
        return SimulatedCarrierPaymentGateway()
    return EasyParcelPaymentGateway(easyparcel)


# ==================== SERVICES ====================

def get_return_service(
    returns: ReturnRepository = Depends(get_return_repository),
    orders: OrderStore = Depends(get_order_store),
) -> ReturnService:
    return ReturnService(returns, orders)


def get_refund_service(
    returns: ReturnRepository = Depends(get_return_repository),
    orders: OrderStore = Depends(get_order_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    points: PointsLedger = Depends(get_points_ledger),
) -> RefundService:
    return RefundService(returns, orders, gateway, points)


def get_replacement_service(
    returns: ReturnRepository = Depends(get_return_repository),
    orders: OrderStore = Depends(get_order_store),
) -> ReplacementService:
    return ReplacementService(returns, orders)


def get_return_shipping_service(
    returns: ReturnRepository = Depends(get_return_repository),
    shipments: CarrierShipmentRepository = Depends(get_shipment_repository),
    orders: OrderStore = Depends(get_order_store),
    catalog: ProductCatalog = Depends(get_product_catalog),
    easyparcel: EasyParcelService = Depends(get_easyparcel_service),
    payment_gateway: CarrierPaymentGateway = Depends(get_carrier_payment_gateway),
) -> ReturnShippingService:
    return ReturnShippingService(returns, shipments, orders, catalog, easyparcel, payment_gateway)


ReturnServiceDep = Annotated[ReturnService, Depends(get_return_service)]
RefundServiceDep = Annotated[RefundService, Depends(get_refund_service)]
ReplacementServiceDep = Annotated[ReplacementService, Depends(get_replacement_service)]
ReturnShippingServiceDep = Annotated[ReturnShippingService, Depends(get_return_shipping_service)]
