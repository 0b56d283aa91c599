import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from returndesk.api import deps
from returndesk.main import app
from returndesk.services.carrier_payment import SimulatedCarrierPaymentGateway
from returndesk.services.easyparcel_service import EasyParcelService
from tests.fakes import (
    FakeCatalog,
    FakeEasyParcel,
    FakeOrderStore,
    FakePaymentGateway,
    FakePointsLedger,
    make_order,
    return_items,
)


class Harness:
    """TestClient wired to fakes for everything outside the database."""

    def __init__(self, client: TestClient, order_id: str, order_store, gateway, easyparcel_api):
        self.client = client
        self.order_id = order_id
        self.order_store = order_store
        self.gateway = gateway
        self.easyparcel_api = easyparcel_api

    def create_return(self, **overrides):
        body = {
            "order_id": self.order_id,
            "return_type": "refund",
            "reason": "defective",
            "items": return_items(),
            "refund_amount": 8000,
            "shipping_refund": 500,
        }
        body.update(overrides)
        return self.client.post("/api/v1/returns", json=body)

    def post(self, return_id, action, **body):
        return self.client.post(f"/api/v1/returns/{return_id}/{action}", json=body or None)


@pytest.fixture
def api():
    # Every test gets its own order so returns left in the database never collide
    order_id = f"order_{uuid.uuid4().hex[:12]}"
    order_store = FakeOrderStore(make_order(order_id=order_id))
    gateway = FakePaymentGateway()
    easyparcel_api = FakeEasyParcel()
    easyparcel = EasyParcelService(
        api_key="ep-test-key",
        base_url="http://demo.connect.easyparcel.sg",
        transport=httpx.MockTransport(easyparcel_api.handler),
    )

    app.dependency_overrides[deps.get_order_store] = lambda: order_store
    app.dependency_overrides[deps.get_product_catalog] = lambda: FakeCatalog({"variant_1": 200})
    app.dependency_overrides[deps.get_points_ledger] = lambda: FakePointsLedger(earned=80)
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_easyparcel_service] = lambda: easyparcel
    app.dependency_overrides[deps.get_carrier_payment_gateway] = lambda: SimulatedCarrierPaymentGateway()

    with TestClient(app) as client:
        yield Harness(client, order_id, order_store, gateway, easyparcel_api)

    app.dependency_overrides.clear()


def test_health(api):
    response = api.client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "connected"


def test_create_return(api):
    response = api.create_return()

    assert response.status_code == 201
    body = response.json()["return"]
    assert body["status"] == "requested"
    assert body["refund_status"] == "pending"
    assert body["total_refund"] == 8500
    assert body["version"] == 1
    assert body["coupon_code"] == "SAVE10"


def test_second_pending_return_is_refused(api):
    api.create_return()

    response = api.create_return()

    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_pending"


def test_invalid_body(api):
    response = api.create_return(items=[])

    assert response.status_code == 422


def test_unknown_return(api):
    response = api.client.get("/api/v1/returns/ret_missing")

    assert response.status_code == 404
    assert response.json()["code"] == "return_not_found"


def test_approve_with_version(api):
    return_id = api.create_return().json()["return"]["id"]

    response = api.post(return_id, "approve", version=1, admin_notes="photos look fine")

    assert response.status_code == 200
    body = response.json()["return"]
    assert body["status"] == "approved"
    assert body["version"] == 2
    assert body["admin_notes"] == "photos look fine"


def test_stale_version_conflict(api):
    return_id = api.create_return().json()["return"]["id"]
    api.post(return_id, "approve", version=1)

    response = api.post(return_id, "cancel", version=1, reason="changed mind")

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "concurrent_modification"
    assert body["current_version"] == 2
    assert body["expected_version"] == 1


def test_illegal_transition(api):
    return_id = api.create_return().json()["return"]["id"]

    response = api.post(return_id, "complete")

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_reject_requires_reason(api):
    return_id = api.create_return().json()["return"]["id"]

    response = api.post(return_id, "reject", reason="")

    assert response.status_code in (409, 422)
    assert api.client.get(f"/api/v1/returns/{return_id}").json()["return"]["status"] == "requested"


def test_full_refund_flow(api):
    return_id = api.create_return().json()["return"]["id"]

    assert api.post(return_id, "approve").status_code == 200
    assert api.post(return_id, "in-transit", courier="Ninja Van", tracking_number="NV123").status_code == 200
    assert api.post(return_id, "received").status_code == 200
    assert api.post(return_id, "inspect").status_code == 200
    assert api.post(return_id, "complete").status_code == 200

    response = api.post(return_id, "refund")

    assert response.status_code == 200
    body = response.json()
    assert body["return"]["refund_status"] == "completed"
    assert body["refund"]["amount"] == 8500
    assert body["points"]["points_deducted"] == 80
    assert api.gateway.calls[0]["amount"] == 8500

    again = api.post(return_id, "refund")
    assert again.status_code == 409
    assert again.json()["code"] == "refund_not_allowed"
    assert len(api.gateway.calls) == 1


def test_replacement_flow(api):
    return_id = api.create_return(return_type="replacement").json()["return"]["id"]
    api.post(return_id, "approve")
    api.post(return_id, "in-transit", courier="Ninja Van", tracking_number="NV123")
    api.post(return_id, "received")
    api.post(return_id, "inspect")
    api.post(return_id, "complete")

    response = api.post(return_id, "replacement", admin_notes="send the blue one")

    assert response.status_code == 200
    body = response.json()
    assert body["replacement_order"]["id"] == "order_replacement_1"
    assert body["return"]["replacement_order_id"] == "order_replacement_1"


def test_list_and_stats(api):
    return_id = api.create_return().json()["return"]["id"]

    listed = api.client.get("/api/v1/returns", params={"order_id": api.order_id, "status": "requested"}).json()
    stats = api.client.get("/api/v1/returns/stats").json()

    assert [r["id"] for r in listed["returns"]] == [return_id]
    assert listed["count"] == 1
    assert stats["requested"] >= 1


def test_can_return(api):
    response = api.client.get(f"/api/v1/orders/{api.order_id}/can-return")

    assert response.status_code == 200
    body = response.json()
    assert body["can_return"] is True
    assert body["days_remaining"] == 27
    assert {item["item_id"] for item in body["returnable_items"]} == {"item_1", "item_2"}


def test_can_return_unknown_order(api):
    response = api.client.get("/api/v1/orders/order_missing/can-return")

    assert response.status_code == 404
    assert response.json()["code"] == "order_not_found"


def test_return_shipping_flow(api):
    return_id = api.create_return(items=return_items(quantity=3)).json()["return"]["id"]
    api.post(return_id, "approve")
    base = f"/api/v1/return-requests/{return_id}/shipping"

    rates = api.client.post(f"{base}/rates").json()
    assert rates["weight"] == 0.6
    assert rates["rates"][0]["service_id"] == "EP-CS0D"

    submitted = api.client.post(f"{base}/submit", json={
        "service_id": "EP-CS0D",
        "service_name": "J&T Express",
        "courier_id": "EC3",
        "courier_name": "J&T",
        "weight": 0.6,
        "rate": 610,
        "pickup_date": "2026-03-02",
    })
    assert submitted.status_code == 200
    assert submitted.json()["order_no"] == "EI-5UFAI"

    duplicate = api.client.post(f"{base}/submit", json={
        "service_id": "EP-CS0D",
        "courier_id": "EC3",
        "pickup_date": "2026-03-02",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "already_submitted"

    paid = api.client.post(f"{base}/pay").json()
    assert paid["mock_mode"] is True
    assert paid["lifecycle_synced"] is True

    status = api.client.get(f"{base}/status").json()
    assert status["has_easyparcel_shipping"] is True
    assert status["shipping"]["awb"] == paid["awb"]
    assert status["shipping"]["status"] == "paid"

    return_request = api.client.get(f"/api/v1/returns/{return_id}").json()["return"]
    assert return_request["status"] == "in_transit"
    assert return_request["return_tracking_number"] == paid["awb"]
    assert return_request["return_courier"] == "J&T"


def test_pay_before_submit(api):
    return_id = api.create_return().json()["return"]["id"]
    api.post(return_id, "approve")

    response = api.client.post(f"/api/v1/return-requests/{return_id}/shipping/pay")

    assert response.status_code == 404
    assert response.json()["code"] == "shipment_not_found"
