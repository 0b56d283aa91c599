import pytest

from returndesk.services.errors import (
    ConcurrentModification,
    OrderNotFound,
    ReplacementNotAllowed,
)
from returndesk.services.replacement_service import ReplacementService


async def complete_new_return(return_service, create_payload, return_type="replacement"):
    return_request = await return_service.create_return(
        create_payload(return_type=return_type, refund_amount=0, shipping_refund=0)
    )
    await return_service.approve(return_request.id)
    await return_service.mark_in_transit(return_request.id, "Ninja Van", "NV123")
    await return_service.mark_received(return_request.id)
    await return_service.start_inspection(return_request.id)
    return await return_service.complete(return_request.id)


@pytest.fixture
def replacements(returns_repo, order_store):
    return ReplacementService(returns_repo, order_store)


@pytest.mark.asyncio
async def test_creates_zero_priced_order(replacements, order_store, return_service, create_payload):
    return_request = await complete_new_return(return_service, create_payload)

    result = await replacements.create_replacement(return_request.id, admin_notes="ship by Friday")

    assert result["replacement_order"]["id"] == "order_replacement_1"
    assert result["return"].replacement_order_id == "order_replacement_1"
    assert result["return"].replacement_created_at is not None
    assert result["return"].admin_notes == "ship by Friday"

    payload = order_store.replacements[0]
    assert payload["payment_status"] == "paid"
    assert payload["items"] == [{
        "variant_id": "variant_1",
        "title": "Desk Lamp",
        "quantity": 1,
        "unit_price": 0,
        "metadata": {"is_replacement_item": True, "original_unit_price": 4000},
    }]
    assert payload["metadata"]["original_order_id"] == "order_01"
    assert payload["metadata"]["return_request_id"] == return_request.id
    assert payload["metadata"]["original_coupon_code"] == "SAVE10"
    assert payload["shipping_address"]["postal_code"] == "238801"
    assert payload["billing_address"]["address_1"] == "1 Orchard Road"


@pytest.mark.asyncio
async def test_shipping_address_override(replacements, order_store, return_service, create_payload):
    return_request = await complete_new_return(return_service, create_payload)

    await replacements.create_replacement(
        return_request.id,
        shipping_address={"first_name": "Jamie", "last_name": "Tan", "address_1": "5 Jurong West",
                          "postal_code": "640005", "country_code": "sg", "phone": "+65 9123 4567"},
    )

    payload = order_store.replacements[0]
    assert payload["shipping_address"]["address_1"] == "5 Jurong West"
    # the order has no billing address, so it follows the new delivery address
    assert payload["billing_address"]["address_1"] == "5 Jurong West"


@pytest.mark.asyncio
async def test_only_one_replacement_per_return(replacements, order_store, return_service, create_payload):
    return_request = await complete_new_return(return_service, create_payload)
    await replacements.create_replacement(return_request.id)

    with pytest.raises(ReplacementNotAllowed):
        await replacements.create_replacement(return_request.id)

    assert len(order_store.replacements) == 1


@pytest.mark.asyncio
async def test_refund_return_is_refused(replacements, order_store, return_service, create_payload):
    return_request = await complete_new_return(return_service, create_payload, return_type="refund")

    with pytest.raises(ReplacementNotAllowed):
        await replacements.create_replacement(return_request.id)

    assert order_store.replacements == []


@pytest.mark.asyncio
async def test_requires_completed_return(replacements, return_service, create_payload):
    return_request = await return_service.create_return(create_payload(return_type="replacement"))

    with pytest.raises(ReplacementNotAllowed):
        await replacements.create_replacement(return_request.id)


@pytest.mark.asyncio
async def test_missing_order(returns_repo, return_service, create_payload):
    from tests.fakes import FakeOrderStore

    return_request = await complete_new_return(return_service, create_payload)
    service = ReplacementService(returns_repo, FakeOrderStore())

    with pytest.raises(OrderNotFound):
        await service.create_replacement(return_request.id)


@pytest.mark.asyncio
async def test_stale_version(replacements, return_service, create_payload):
    return_request = await complete_new_return(return_service, create_payload)

    with pytest.raises(ConcurrentModification):
        await replacements.create_replacement(return_request.id, expected_version=1)
