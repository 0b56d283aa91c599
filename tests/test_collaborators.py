import json

import httpx
import pytest

from returndesk.services.collaborators import HttpOrderStore, HttpPointsLedger, HttpProductCatalog
from returndesk.services.errors import CollaboratorError

ORDER = {
    "id": "order_01",
    "customer_id": "cus_01",
    "display_id": 1001,
    "fulfillment_status": "delivered",
    "delivered_at": "2026-01-10T08:30:00Z",
    "items": [{"id": "item_1", "variant_id": "variant_1", "title": "Desk Lamp", "quantity": 2,
               "unit_price": 4000, "adjustments": [{"amount": 400}]}],
    "shipping_address": {"first_name": "Jamie", "last_name": "Tan", "address_1": "1 Orchard Road",
                         "postal_code": "238801", "phone": "+65 9123 4567"},
    "payment_collections": [{
        "id": "paycol_1",
        "payments": [{"id": "pay_1", "provider_id": "pp_razorpay_razorpay", "amount": 8000,
                      "captured_at": "2026-01-05T10:00:00Z", "data": {"id": "pay_RZP123"}}],
    }],
}


@pytest.mark.asyncio
async def test_get_order_parses_record():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"order": ORDER})

    order = await HttpOrderStore(transport=httpx.MockTransport(handler)).get_order("order_01")

    assert seen[0].url.path.endswith("/orders/order_01")
    assert order.delivered_at.year == 2026
    assert order.items[0].adjustments == [{"amount": 400}]
    assert order.shipping_address.full_name == "Jamie Tan"
    assert order.billing_address is None
    assert order.payment_collections[0].payments[0].gateway_payment_id == "pay_RZP123"


@pytest.mark.asyncio
async def test_unknown_order_is_none():
    store = HttpOrderStore(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

    assert await store.get_order("order_missing") is None


@pytest.mark.asyncio
async def test_server_error_raises_collaborator_error():
    store = HttpOrderStore(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="database is down"))
    )

    with pytest.raises(CollaboratorError) as exc_info:
        await store.get_order("order_01")

    assert exc_info.value.details == {"status_code": 500}


@pytest.mark.asyncio
async def test_unreachable_service():
    def handler(request):
        raise httpx.ConnectTimeout("timed out")

    catalog = HttpProductCatalog(transport=httpx.MockTransport(handler))

    with pytest.raises(CollaboratorError):
        await catalog.get_variant_weights(["variant_1"])


@pytest.mark.asyncio
async def test_variant_weights():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["ids"] == "variant_1,variant_2"
        return httpx.Response(200, json={"variants": [{"id": "variant_1", "weight": 200},
                                                      {"id": "variant_2", "weight": None}]})

    weights = await HttpProductCatalog(transport=httpx.MockTransport(handler)).get_variant_weights(
        ["variant_1", "variant_2"]
    )

    assert weights == {"variant_1": 200.0, "variant_2": 0.0}


@pytest.mark.asyncio
async def test_points_adjustment_is_idempotent_per_return():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"points": -500})
        return httpx.Response(200, json={"points_deducted": 120, "points_restored": 500, "new_balance": 900})

    ledger = HttpPointsLedger(transport=httpx.MockTransport(handler))

    assert await ledger.points_redeemed("cus_01", "order_01") == 500
    adjustment = await ledger.apply_return_adjustment("cus_01", "order_01", "ret_1", 120, 500)

    post = seen[-1]
    assert post.headers["Idempotency-Key"] == "return-points:cus_01:order_01:ret_1"
    assert json.loads(post.content)["points_to_deduct"] == 120
    assert adjustment.new_balance == 900
