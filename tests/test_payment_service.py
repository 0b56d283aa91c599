from unittest.mock import MagicMock

import pytest

from returndesk.services.errors import PaymentGatewayError
from returndesk.services.payment_service import RazorpayPaymentGateway


@pytest.mark.asyncio
async def test_refund_calls_razorpay():
    client = MagicMock()
    client.payment.refund.return_value = {"id": "rfnd_Abc123", "amount": 8500, "status": "processed", "currency": "SGD"}

    refund = await RazorpayPaymentGateway(client=client).refund(
        "pay_RZP123", 8500, {"return_id": "ret_1", "order_id": "order_01", "return_reason": "defective"}
    )

    client.payment.refund.assert_called_once_with(
        "pay_RZP123",
        {"amount": 8500, "notes": {"return_id": "ret_1", "order_id": "order_01", "return_reason": "defective"}},
    )
    assert refund.id == "rfnd_Abc123"
    assert refund.amount == 8500
    assert refund.currency == "sgd"


@pytest.mark.asyncio
async def test_notes_are_stringified():
    client = MagicMock()
    client.payment.refund.return_value = {"id": "rfnd_1"}

    refund = await RazorpayPaymentGateway(client=client).refund("pay_1", 100, {"return_reason": None})

    assert client.payment.refund.call_args.args[1]["notes"] == {"return_reason": "None"}
    assert refund.amount == 100
    assert refund.status == "processed"


@pytest.mark.asyncio
async def test_gateway_rejection_is_wrapped():
    client = MagicMock()
    client.payment.refund.side_effect = RuntimeError("The refund amount exceeds the captured amount")

    with pytest.raises(PaymentGatewayError, match="exceeds the captured amount") as exc_info:
        await RazorpayPaymentGateway(client=client).refund("pay_1", 99999, {})

    assert exc_info.value.details == {"payment_id": "pay_1"}
