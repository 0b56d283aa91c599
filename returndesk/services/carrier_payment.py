"""
Carrier payment gateways.

Paying a submitted EasyParcel order is what issues the AWB. Which gateway is
used (live or simulated) is decided once at the composition root from
EASYPARCEL_MOCK_PAYMENT; callers see the same result shape either way.
"""
import logging
import random
import string
import time
from abc import ABC, abstractmethod
from typing import Optional

from returndesk.config import settings
from returndesk.services.easyparcel_service import EasyParcelPayResult, EasyParcelService
from returndesk.services.errors import CarrierError, InsufficientCarrierCredit

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


class CarrierPaymentGateway(ABC):

    @abstractmethod
    async def pay(self, order_no: str) -> EasyParcelPayResult:
        """
        Pay for a submitted order and return its AWB.

        Raises:
            InsufficientCarrierCredit: carrier wallet cannot cover the order
            CarrierError: any other carrier-side failure
        """


class EasyParcelPaymentGateway(CarrierPaymentGateway):
    """Pays through EPPayOrderBulk."""

    def __init__(self, easyparcel: Optional[EasyParcelService] = None):
        self.easyparcel = easyparcel or EasyParcelService()

    async def pay(self, order_no: str) -> EasyParcelPayResult:
        result = await self.easyparcel.pay_order(order_no)

        parcel_no = result.get("parcel_no") or result.get("parcel_number") or ""
        awb = result.get("awb") or result.get("tracking_number") or ""
        tracking_url = result.get("tracking_url") or result.get("awb_id_link") or ""

        parcels = result.get("parcel") or []
        if not awb and parcels:
            awb = parcels[0].get("awb") or ""
            tracking_url = tracking_url or parcels[0].get("tracking_url") or ""

        message = result.get("messagenow") or result.get("remarks") or ""
        if "insufficient credit" in message.lower():
            logger.warning(f"EasyParcel credit exhausted while paying {order_no}")
            raise InsufficientCarrierCredit(
                "Insufficient credit in EasyParcel wallet. Please top up your EasyParcel account.",
                {"order_no": order_no},
            )

        succeeded = (result.get("status") or "").lower() == "success"
        if not (succeeded or (awb and "insufficient" not in message.lower())):
            raise CarrierError(message or "Failed to pay for return shipment", {"order_no": order_no})
        if not awb:
            raise CarrierError("Payment accepted but no AWB was issued yet", {"order_no": order_no})

        logger.info(f"EasyParcel order {order_no} paid, AWB {awb}")
        return EasyParcelPayResult(
            order_no=result.get("orderno") or result.get("order_no") or order_no,
            parcel_no=parcel_no,
            awb=awb,
            tracking_url=tracking_url,
        )


class SimulatedCarrierPaymentGateway(CarrierPaymentGateway):
    """Issues fake AWBs without charging the carrier wallet."""

    def __init__(self, tracking_url_prefix: Optional[str] = None):
        self.tracking_url_prefix = tracking_url_prefix or settings.EASYPARCEL_TRACKING_URL

    @staticmethod
    def generate_awb() -> str:
        timestamp = _to_base36(int(time.time() * 1000))
        suffix = "".join(random.choices(_BASE36, k=6))
        return f"MOCK-RTN-{timestamp}-{suffix}"

    @staticmethod
    def generate_parcel_no() -> str:
        return f"MPR-{random.randint(10000, 99999)}"

    async def pay(self, order_no: str) -> EasyParcelPayResult:
        awb = self.generate_awb()
        logger.info(f"[MOCK] Simulated payment for {order_no}, AWB {awb}")
        return EasyParcelPayResult(
            order_no=order_no,
            parcel_no=self.generate_parcel_no(),
            awb=awb,
            tracking_url=f"{self.tracking_url_prefix}{awb}",
            mock_mode=True,
        )
