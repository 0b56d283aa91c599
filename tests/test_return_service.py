import pytest

from returndesk.services.errors import (
    ConcurrentModification,
    DuplicatePending,
    InvalidTransition,
    OrderNotFound,
    ReturnNotFound,
)
from returndesk.services.refund_service import RefundService
from tests.fakes import FakePaymentGateway, FakePointsLedger, make_order


@pytest.mark.asyncio
async def test_create_return_snapshots_order(return_service, returns_repo, create_payload):
    return_request = await return_service.create_return(create_payload())

    assert return_request.id.startswith("ret_")
    assert return_request.status == "requested"
    assert return_request.customer_id == "cus_01"
    assert return_request.refund_status == "pending"
    assert return_request.total_refund == 8500
    assert return_request.version == 1
    # 3 x 4000 + 1 x 1500
    assert return_request.original_order_total == 13500
    assert return_request.pwp_discount == 300
    assert return_request.coupon_code == "SAVE10"
    assert return_request.coupon_discount == 200
    assert return_request.points_redeemed == 500
    assert return_request.points_discount == 500
    assert returns_repo.commits == 1


@pytest.mark.asyncio
async def test_coupon_discount_falls_back_to_metadata(returns_repo, create_payload):
    from returndesk.services.return_service import ReturnService
    from tests.fakes import FakeOrderStore

    order = make_order(metadata={"applied_coupon_discount": 750})
    for line in order.items:
        line.adjustments = []
    service = ReturnService(returns_repo, FakeOrderStore(order))

    return_request = await service.create_return(create_payload())

    assert return_request.coupon_discount == 750


@pytest.mark.asyncio
async def test_replacement_return_has_no_refund_status(return_service, create_payload):
    return_request = await return_service.create_return(
        create_payload(return_type="replacement", refund_amount=0, shipping_refund=0)
    )

    assert return_request.refund_status is None


@pytest.mark.asyncio
async def test_create_return_for_unknown_order(return_service, create_payload):
    with pytest.raises(OrderNotFound):
        await return_service.create_return(create_payload(order_id="order_missing"))


@pytest.mark.asyncio
async def test_second_return_while_inspecting_is_rejected(return_service, create_payload):
    first = await return_service.create_return(create_payload())
    await return_service.approve(first.id)
    await return_service.mark_in_transit(first.id, "DHL", "T1")
    await return_service.mark_received(first.id)
    await return_service.start_inspection(first.id)

    with pytest.raises(DuplicatePending):
        await return_service.create_return(create_payload())


@pytest.mark.asyncio
async def test_full_refund_lifecycle(return_service, returns_repo, order_store, create_payload):
    gateway = FakePaymentGateway()
    refunds = RefundService(returns_repo, order_store, gateway, FakePointsLedger())

    return_request = await return_service.create_return(create_payload())
    await return_service.approve(return_request.id)
    await return_service.mark_in_transit(return_request.id, "DHL", "T1")
    await return_service.mark_received(return_request.id)
    await return_service.start_inspection(return_request.id)
    await return_service.complete(return_request.id, admin_notes="item is faulty")

    result = await refunds.process_refund(return_request.id)

    assert gateway.calls[0]["amount"] == 8500
    assert result["return"].refund_status == "completed"
    assert result["return"].total_refund == 8500
    assert result["return"].return_courier == "DHL"
    assert result["return"].return_tracking_number == "T1"
    assert result["return"].completed_at is not None
    assert result["return"].admin_notes == "item is faulty"


@pytest.mark.asyncio
async def test_total_refund_never_changes(return_service, create_payload):
    return_request = await return_service.create_return(create_payload())

    for step in (
        lambda: return_service.approve(return_request.id),
        lambda: return_service.mark_in_transit(return_request.id, "DHL", "T1"),
        lambda: return_service.mark_received(return_request.id),
        lambda: return_service.complete(return_request.id),
    ):
        updated = await step()
        assert updated.total_refund == updated.refund_amount + updated.shipping_refund == 8500


@pytest.mark.asyncio
async def test_rejected_return_cannot_be_approved(return_service, create_payload):
    return_request = await return_service.create_return(create_payload())

    rejected = await return_service.reject(return_request.id, "duplicate order")
    assert rejected.status == "rejected"
    assert rejected.rejected_at is not None

    with pytest.raises(InvalidTransition):
        await return_service.approve(return_request.id)
    assert (await return_service.get_return(return_request.id)).status == "rejected"


@pytest.mark.asyncio
async def test_stale_version_is_refused(return_service, create_payload):
    return_request = await return_service.create_return(create_payload())
    await return_service.approve(return_request.id, expected_version=1)

    with pytest.raises(ConcurrentModification):
        await return_service.cancel(return_request.id, expected_version=1)

    current = await return_service.get_return(return_request.id)
    assert current.status == "approved"
    assert current.version == 2


@pytest.mark.asyncio
async def test_get_unknown_return(return_service):
    with pytest.raises(ReturnNotFound):
        await return_service.get_return("ret_missing")


@pytest.mark.asyncio
async def test_list_and_stats(return_service, returns_repo, create_payload):
    first = await return_service.create_return(create_payload())
    await return_service.reject(first.id, "not eligible")
    second = await return_service.create_return(create_payload())

    returns, total = await return_service.list_returns(status="requested")
    assert total == 1
    assert returns[0].id == second.id

    _, total = await return_service.list_returns(status="all")
    assert total == 2

    stats = await return_service.get_stats()
    assert stats["requested"] == 1
    assert stats["rejected"] == 1
    assert stats["completed"] == 0
    assert stats["total_refunded"] == 0


@pytest.mark.asyncio
async def test_can_return_lists_items_and_discounts(return_service):
    result = await return_service.can_return("order_01")

    assert result["can_return"] is True
    assert result["days_remaining"] == 27
    assert [item["item_id"] for item in result["returnable_items"]] == ["item_1", "item_2"]
    assert result["discount_info"]["original_order_total"] == 13500


@pytest.mark.asyncio
async def test_can_return_explains_refusal(returns_repo):
    from returndesk.services.return_service import ReturnService
    from tests.fakes import FakeOrderStore

    service = ReturnService(returns_repo, FakeOrderStore(make_order(fulfillment_status="shipped")))

    result = await service.can_return("order_01")

    assert result["can_return"] is False
    assert result["reason"] == "Only delivered orders can be returned"
    assert result["returnable_items"] == []
