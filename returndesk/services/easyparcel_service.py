"""
EasyParcel Integration Service.

Handles the EasyParcel API calls used for return shipments:
- Rate checking (EPRateCheckingBulk)
- Order submission (EPSubmitOrderBulk)
- Order payment / AWB issuance (EPPayOrderBulk)

EasyParcel takes form-encoded PHP-style arrays (bulk[0][field]) and answers
with an envelope {api_status, error_code, error_remark, result[]}.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

import httpx

from returndesk.config import settings
from returndesk.services.errors import CarrierError, ConfigurationError

logger = logging.getLogger(__name__)

# Services that need a locker/dropoff point chosen by the sender
UNSUPPORTED_SERVICE_MARKERS = ("point to point", "dropoff", "locker")


@dataclass
class EasyParcelParty:
    """One side of a shipment (pickup or delivery)."""
    name: str
    phone: str
    address_1: str
    postcode: str
    address_2: str = ""
    company: str = ""
    unit: str = "-"
    state: str = ""
    country: str = "SG"


@dataclass
class EasyParcelRate:
    """A bookable service returned by rate checking."""
    service_id: str
    service_name: str
    courier_id: str
    courier_name: str
    price: float
    courier_logo: str = ""
    pickup_date: str = ""
    delivery_eta: str = ""
    has_cod: bool = False
    has_insurance: bool = False

    @property
    def price_display(self) -> str:
        return f"${self.price:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_id": self.service_id,
            "service_name": self.service_name,
            "courier_id": self.courier_id,
            "courier_name": self.courier_name,
            "courier_logo": self.courier_logo,
            "price": self.price,
            "price_display": self.price_display,
            "pickup_date": self.pickup_date,
            "delivery_eta": self.delivery_eta,
            "has_cod": self.has_cod,
            "has_insurance": self.has_insurance,
        }


@dataclass
class RateCheckResult:
    rates: List[EasyParcelRate] = field(default_factory=list)
    message: Optional[str] = None


@dataclass
class EasyParcelSubmitRequest:
    """Order submission for a single parcel."""
    sender: EasyParcelParty
    receiver: EasyParcelParty
    service_id: str
    collect_date: str  # YYYY-MM-DD
    weight: float
    content: str
    value: float
    reference: str
    sms: bool = True
    width: int = 10
    length: int = 10
    height: int = 10


@dataclass
class EasyParcelPayResult:
    """Outcome of paying for a submitted order."""
    order_no: str
    parcel_no: str
    awb: str
    tracking_url: str
    mock_mode: bool = False


def format_singapore_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalise a Singapore number to the 8 digits EasyParcel accepts.

    Mobiles start with 8 or 9, landlines with 6. A leading 65 country code is
    dropped. Returns None when the number cannot be used.
    """
    if not phone:
        return None

    cleaned = re.sub(r"\D", "", phone)
    if cleaned.startswith("65") and len(cleaned) > 8:
        cleaned = cleaned[2:]

    if len(cleaned) == 8 and cleaned[0] in "689":
        return cleaned
    return None


def is_supported_service(service_name: str) -> bool:
    """Return channel only books door-to-door pickups."""
    name = (service_name or "").lower()
    return not any(marker in name for marker in UNSUPPORTED_SERVICE_MARKERS)


class EasyParcelService:
    """
    Service for EasyParcel API integration.

    Usage:
        service = EasyParcelService()

        result = await service.check_rates("123456", "654321", 1.2)
        order = await service.submit_order(request)
        payment = await service.pay_order(order["order_number"])
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.EASYPARCEL_API_KEY
        self.base_url = (base_url or settings.easyparcel_base_url).rstrip("/")
        self.environment = settings.easyparcel_environment
        self._transport = transport

    def _ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("EasyParcel API key is not configured")

    async def _request(self, action: str, params: Dict[str, str], default_error: str) -> Dict:
        """POST a bulk action and unwrap the envelope. Returns result[0]."""
        self._ensure_configured()

        form = {"api": self.api_key, **params}
        url = f"{self.base_url}/?ac={action}"

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                response = await client.post(
                    url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"EasyParcel {action} failed: {e}")
            raise CarrierError(f"{default_error}: {e}") from e

        error_code = data.get("error_code")
        if data.get("api_status") == "Error" or (error_code not in (None, "", "0", 0)):
            remark = data.get("error_remark") or default_error
            logger.error(f"EasyParcel {action} error: {error_code} - {remark}")
            raise CarrierError(remark, {"error_code": error_code})

        results = data.get("result") or []
        return results[0] if results else {}

    # ==================== RATES ====================

    async def check_rates(
        self,
        pickup_postcode: str,
        delivery_postcode: str,
        weight: float,
        pickup_country: str = "SG",
        delivery_country: str = "SG",
    ) -> RateCheckResult:
        """
        Check rates for a route.

        Unsupported (locker/dropoff) services are removed and the rest are
        sorted by price, cheapest first.
        """
        params = {
            "bulk[0][pick_code]": pickup_postcode,
            "bulk[0][pick_country]": pickup_country,
            "bulk[0][send_code]": delivery_postcode,
            "bulk[0][send_country]": delivery_country,
            "bulk[0][weight]": str(weight),
        }
        logger.info(f"EasyParcel rate check: {pickup_postcode} -> {delivery_postcode}, {weight}kg")

        result = await self._request("EPRateCheckingBulk", params, "Failed to fetch rates from EasyParcel")

        if result.get("status") != "Success" or not result.get("rates"):
            return RateCheckResult(rates=[], message=result.get("remarks") or "No rates available")

        rates = [
            EasyParcelRate(
                service_id=str(rate.get("service_id", "")),
                service_name=rate.get("service_name", ""),
                courier_id=str(rate.get("courier_id", "")),
                courier_name=rate.get("courier_name", ""),
                courier_logo=rate.get("courier_logo", ""),
                price=float(rate.get("price") or 0),
                pickup_date=rate.get("pickup_date", ""),
                delivery_eta=rate.get("delivery", ""),
                has_cod=str(rate.get("addon_cod")) == "1",
                has_insurance=str(rate.get("addon_insurance")) == "1",
            )
            for rate in result["rates"]
            if is_supported_service(rate.get("service_name", ""))
        ]
        rates.sort(key=lambda r: r.price)

        return RateCheckResult(rates=rates)

    # ==================== ORDERS ====================

    async def submit_order(self, request: EasyParcelSubmitRequest) -> Dict:
        """
        Submit an order.

        Returns:
            The first result, guaranteed to have status Success and an order_number.
        """
        sender, receiver = request.sender, request.receiver
        params = {
            # Pickup
            "bulk[0][pick_name]": sender.name,
            "bulk[0][pick_company]": sender.company,
            "bulk[0][pick_contact]": sender.phone,
            "bulk[0][pick_mobile]": sender.phone,
            "bulk[0][pick_addr1]": sender.address_1,
            "bulk[0][pick_addr2]": sender.address_2,
            "bulk[0][pick_unit]": sender.unit,
            "bulk[0][pick_state]": sender.state,
            "bulk[0][pick_code]": sender.postcode,
            "bulk[0][pick_country]": sender.country,
            # Delivery
            "bulk[0][send_name]": receiver.name,
            "bulk[0][send_company]": receiver.company,
            "bulk[0][send_contact]": receiver.phone,
            "bulk[0][send_mobile]": receiver.phone,
            "bulk[0][send_addr1]": receiver.address_1,
            "bulk[0][send_addr2]": receiver.address_2,
            "bulk[0][send_unit]": receiver.unit,
            "bulk[0][send_state]": receiver.state,
            "bulk[0][send_code]": receiver.postcode,
            "bulk[0][send_country]": receiver.country,
            # Parcel
            "bulk[0][weight]": str(request.weight),
            "bulk[0][width]": str(request.width),
            "bulk[0][length]": str(request.length),
            "bulk[0][height]": str(request.height),
            "bulk[0][content]": request.content,
            "bulk[0][value]": f"{request.value:.2f}",
            "bulk[0][service_id]": request.service_id,
            "bulk[0][collect_date]": request.collect_date,
            "bulk[0][sms]": "1" if request.sms else "0",
            "bulk[0][reference]": request.reference,
        }
        logger.info(
            f"EasyParcel submit: ref={request.reference} service={request.service_id} "
            f"{sender.name} -> {receiver.name}"
        )

        result = await self._request("EPSubmitOrderBulk", params, "Failed to submit shipment to EasyParcel")

        if result.get("status") != "Success" or not result.get("order_number"):
            raise CarrierError(result.get("remarks") or "Failed to create shipment order")

        logger.info(f"EasyParcel order created: {result.get('order_number')}")
        return result

    async def pay_order(self, order_no: str) -> Dict:
        """Pay for a submitted order. Returns the raw first result."""
        logger.info(f"EasyParcel pay: order_no={order_no}")
        result = await self._request(
            "EPPayOrderBulk",
            {"bulk[0][order_no]": order_no},
            "Failed to pay for shipment",
        )
        if not result:
            raise CarrierError("No payment result returned from EasyParcel")
        return result
