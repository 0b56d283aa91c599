import os
import tempfile

# Settings are read at import time; point them at a throwaway SQLite file first.
_db_dir = tempfile.mkdtemp(prefix="returndesk-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_db_dir}/returndesk.db")
os.environ.setdefault("EASYPARCEL_MOCK_PAYMENT", "false")
os.environ.setdefault("WAREHOUSE_NAME", "Return Desk Warehouse")
os.environ.setdefault("WAREHOUSE_PHONE", "+65 6123 4567")
os.environ.setdefault("WAREHOUSE_ADDRESS", "10 Tuas Ave 1")
os.environ.setdefault("WAREHOUSE_POSTCODE", "639495")

import pytest  # noqa: E402

from returndesk.schemas.return_request import ReturnCreate  # noqa: E402
from returndesk.services.eligibility import EligibilityValidator  # noqa: E402
from returndesk.services.return_service import ReturnService  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeOrderStore,
    InMemoryReturnRepository,
    InMemoryShipmentRepository,
    make_order,
    return_items,
)


@pytest.fixture
def returns_repo():
    return InMemoryReturnRepository()


@pytest.fixture
def shipments_repo():
    return InMemoryShipmentRepository()


@pytest.fixture
def order():
    return make_order()


@pytest.fixture
def order_store(order):
    return FakeOrderStore(order)


@pytest.fixture
def return_service(returns_repo, order_store):
    return ReturnService(returns_repo, order_store, EligibilityValidator(returns_repo))


@pytest.fixture
def create_payload(order):
    def _payload(**overrides):
        data = {
            "order_id": order.id,
            "return_type": "refund",
            "reason": "defective",
            "items": return_items(),
            "refund_amount": 8000,
            "shipping_refund": 500,
        }
        data.update(overrides)
        return ReturnCreate(**data)
    return _payload
