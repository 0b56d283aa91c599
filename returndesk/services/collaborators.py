"""
External collaborators of the return desk.

The order store, product catalog and points ledger are owned by other
services. The return desk only talks to them through the narrow interfaces
below; the HTTP implementations call their internal APIs with httpx.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from returndesk.config import settings
from returndesk.services.errors import CollaboratorError

logger = logging.getLogger(__name__)


# ==================== RECORDS ====================

def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Address:
    """Postal address as stored on an order."""
    first_name: str = ""
    last_name: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""
    country_code: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["Address"]:
        if not data:
            return None
        return cls(**{k: (data.get(k) or "") for k in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, str]:
        return {k: getattr(self, k) for k in self.__dataclass_fields__}


@dataclass
class OrderLine:
    id: str
    variant_id: Optional[str]
    title: str
    quantity: int
    unit_price: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    adjustments: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "OrderLine":
        return cls(
            id=data["id"],
            variant_id=data.get("variant_id"),
            title=data.get("title") or "",
            quantity=int(data.get("quantity") or 0),
            unit_price=int(data.get("unit_price") or 0),
            metadata=data.get("metadata") or {},
            adjustments=data.get("adjustments") or [],
        )


@dataclass
class Payment:
    id: str
    provider_id: str
    amount: int = 0
    captured_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def gateway_payment_id(self) -> Optional[str]:
        """Payment id on the gateway side (what a refund is issued against)."""
        return self.data.get("id") or self.data.get("razorpay_payment_id")

    @classmethod
    def from_dict(cls, data: Dict) -> "Payment":
        return cls(
            id=data["id"],
            provider_id=data.get("provider_id") or "",
            amount=int(data.get("amount") or 0),
            captured_at=_parse_datetime(data.get("captured_at")),
            data=data.get("data") or {},
        )


@dataclass
class PaymentCollection:
    id: str
    status: str = ""
    payments: List[Payment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "PaymentCollection":
        return cls(
            id=data["id"],
            status=data.get("status") or "",
            payments=[Payment.from_dict(p) for p in data.get("payments") or []],
        )


@dataclass
class OrderRecord:
    """Read-only view of an order from the order store."""
    id: str
    customer_id: str
    display_id: int = 0
    email: str = ""
    currency_code: str = ""
    status: str = ""
    fulfillment_status: str = ""
    delivered_at: Optional[datetime] = None
    items: List[OrderLine] = field(default_factory=list)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    payment_collections: List[PaymentCollection] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "OrderRecord":
        return cls(
            id=data["id"],
            customer_id=data.get("customer_id") or "",
            display_id=int(data.get("display_id") or 0),
            email=data.get("email") or "",
            currency_code=data.get("currency_code") or "",
            status=data.get("status") or "",
            fulfillment_status=data.get("fulfillment_status") or "",
            delivered_at=_parse_datetime(data.get("delivered_at")),
            items=[OrderLine.from_dict(i) for i in data.get("items") or []],
            shipping_address=Address.from_dict(data.get("shipping_address")),
            billing_address=Address.from_dict(data.get("billing_address")),
            metadata=data.get("metadata") or {},
            payment_collections=[
                PaymentCollection.from_dict(c) for c in data.get("payment_collections") or []
            ],
        )


@dataclass
class PointsAdjustment:
    """Result of a return points adjustment."""
    points_deducted: int
    points_restored: int
    new_balance: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "points_deducted": self.points_deducted,
            "points_restored": self.points_restored,
            "new_balance": self.new_balance,
        }


@dataclass
class WarehouseAddress:
    """Where return shipments are delivered to."""
    name: str
    phone: str
    address: str
    postcode: str
    unit: str = "-"
    country: str = "SG"

    @property
    def is_configured(self) -> bool:
        return bool(self.name and self.address and self.postcode)


# ==================== INTERFACES ====================

class OrderStore(ABC):

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        """Order with items, addresses, metadata and payment collections."""

    @abstractmethod
    async def create_replacement_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a zero-priced replacement order, return it as a dict with `id`."""


class ProductCatalog(ABC):

    @abstractmethod
    async def get_variant_weights(self, variant_ids: List[str]) -> Dict[str, float]:
        """Variant weights in grams, keyed by variant id. Unknown ids are omitted."""


class PointsLedger(ABC):

    @abstractmethod
    async def points_earned(self, customer_id: str, order_id: str) -> int:
        pass

    @abstractmethod
    async def points_redeemed(self, customer_id: str, order_id: str) -> int:
        pass

    @abstractmethod
    async def apply_return_adjustment(
        self,
        customer_id: str,
        order_id: str,
        return_id: str,
        points_to_deduct: int,
        points_to_restore: int,
    ) -> PointsAdjustment:
        """Idempotent per (customer_id, order_id, return_id)."""


def get_warehouse_address() -> WarehouseAddress:
    """Warehouse address from settings."""
    return WarehouseAddress(
        name=settings.WAREHOUSE_NAME,
        phone=settings.WAREHOUSE_PHONE,
        address=settings.WAREHOUSE_ADDRESS,
        postcode=settings.WAREHOUSE_POSTCODE,
        unit=settings.WAREHOUSE_UNIT or "-",
        country=settings.WAREHOUSE_COUNTRY or "SG",
    )


# ==================== HTTP IMPLEMENTATIONS ====================

class InternalApiClient:
    """Authenticated JSON client for internal services."""

    service_name = "internal"

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if settings.INTERNAL_API_TOKEN:
            headers["Authorization"] = f"Bearer {settings.INTERNAL_API_TOKEN}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
        allow_404: bool = False,
    ) -> Optional[Dict]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    headers=self._headers(idempotency_key),
                    json=data,
                    params=params,
                )
        except httpx.HTTPError as e:
            logger.error(f"{self.service_name} request failed: {method} {url} - {e}")
            raise CollaboratorError(f"{self.service_name} unavailable: {e}") from e

        if response.status_code == 404 and allow_404:
            return None

        if response.status_code >= 400:
            logger.error(f"{self.service_name} error: {response.status_code} - {response.text}")
            raise CollaboratorError(
                f"{self.service_name} error ({response.status_code}): {response.text}",
                {"status_code": response.status_code},
            )

        return response.json() if response.text else {}


class HttpOrderStore(InternalApiClient, OrderStore):
    service_name = "Order service"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings.ORDER_SERVICE_URL, transport)

    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        result = await self._request("GET", f"/orders/{order_id}", allow_404=True)
        if not result:
            return None
        return OrderRecord.from_dict(result.get("order", result))

    async def create_replacement_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request(
            "POST",
            "/orders/replacements",
            data=payload,
            idempotency_key=f"replacement:{payload['metadata']['return_request_id']}",
        )
        return result.get("order", result)


class HttpProductCatalog(InternalApiClient, ProductCatalog):
    service_name = "Catalog service"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings.CATALOG_SERVICE_URL, transport)

    async def get_variant_weights(self, variant_ids: List[str]) -> Dict[str, float]:
        if not variant_ids:
            return {}
        result = await self._request(
            "GET",
            "/catalog/variants",
            params={"ids": ",".join(variant_ids), "fields": "id,weight"},
        )
        return {
            v["id"]: float(v.get("weight") or 0)
            for v in result.get("variants", [])
        }


class HttpPointsLedger(InternalApiClient, PointsLedger):
    service_name = "Points service"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings.POINTS_SERVICE_URL, transport)

    async def points_earned(self, customer_id: str, order_id: str) -> int:
        result = await self._request("GET", f"/points/customers/{customer_id}/orders/{order_id}/earned")
        return int(result.get("points") or 0)

    async def points_redeemed(self, customer_id: str, order_id: str) -> int:
        result = await self._request("GET", f"/points/customers/{customer_id}/orders/{order_id}/redeemed")
        # Redemptions are stored as negative amounts
        return abs(int(result.get("points") or 0))

    async def apply_return_adjustment(
        self,
        customer_id: str,
        order_id: str,
        return_id: str,
        points_to_deduct: int,
        points_to_restore: int,
    ) -> PointsAdjustment:
        result = await self._request(
            "POST",
            "/points/return-adjustments",
            data={
                "customer_id": customer_id,
                "order_id": order_id,
                "return_id": return_id,
                "points_to_deduct": points_to_deduct,
                "points_to_restore": points_to_restore,
            },
            idempotency_key=f"return-points:{customer_id}:{order_id}:{return_id}",
        )
        return PointsAdjustment(
            points_deducted=int(result.get("points_deducted") or 0),
            points_restored=int(result.get("points_restored") or 0),
            new_balance=int(result.get("new_balance") or 0),
        )
