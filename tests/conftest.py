"""
Shared pytest fixtures: SQLite database, fake destination adapters and order builders.
"""
import asyncio
import os
import tempfile
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

# Must be set before orderbridge.core reads its settings
_DB_DIR = tempfile.mkdtemp(prefix="orderbridge-tests-")
os.environ["DATABASE_URL_OVERRIDE"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["LOGS_PATH"] = os.path.join(_DB_DIR, "logs")
os.environ["SCHEDULER_ENABLED"] = "false"

from orderbridge.core.database import Base, SessionLocal, engine  # noqa: E402
from orderbridge.domain.order import Address, CustomerInfo, Order, OrderItem, OrderStatus, PaymentStatus  # noqa: E402
from orderbridge.integrations.base import (  # noqa: E402
    AdapterResult,
    ERPAdapter,
    MarketplaceAdapter,
    NotificationAdapter,
    RemoteOrder,
    RemoteOrderItem,
    ShipmentInfo,
    WorkflowAdapter,
)
from orderbridge.models.integration import ChannelConnection  # noqa: E402
from orderbridge.services.order_repository import OrderRepository  # noqa: E402

Base.metadata.create_all(bind=engine)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def db():
    """Fresh session per test; all tables are emptied afterwards"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        # Core deletes bypass the write-once guard on history rows
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture
def tenant_id() -> str:
    return "tenant-a"


@pytest.fixture
def connection(db, tenant_id) -> ChannelConnection:
    record = ChannelConnection(
        tenant_id=tenant_id,
        provider="trendyol",
        seller_id="12345",
        shop_name="Test Shop",
        api_key="key",
        api_secret="secret",
        sync_interval_minutes=30,
        conflict_policy="marketplace_wins",
        is_active=True,
        sync_enabled=True,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def make_order(db, tenant_id):
    """Persist an order directly through the repository"""
    counter = {"n": 0}

    def _make(**overrides) -> Order:
        counter["n"] += 1
        values: Dict[str, Any] = dict(
            id=uuid4(),
            tenant_id=tenant_id,
            order_number=f"ORD-TEST-{counter['n']:04d}",
            customer=CustomerInfo(
                name="Ayse Yilmaz",
                email="ayse@example.com",
                phone="+905551112233",
                address=Address(street="Ataturk Cd. 1", city="Istanbul", postal_code="34000", country="TR"),
            ),
            items=(
                OrderItem(sku="SKU-1", name="Kettle", quantity=2, unit_price=Decimal("50.00")),
                OrderItem(sku="SKU-2", name="Mug", quantity=1, unit_price=Decimal("20.00")),
            ),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            subtotal=Decimal("120.00"),
            tax=Decimal("10.00"),
            shipping=Decimal("5.00"),
            total=Decimal("135.00"),
        )
        values.update(overrides)
        order = Order(**values)
        OrderRepository(db).add(order)
        return order

    return _make


# ============================================================================
# FAKE DESTINATION ADAPTERS
# ============================================================================


class FakeAdapterBase:
    """Records every call; methods listed in ``fail`` return a failed AdapterResult"""

    def __init__(self, fail=(), delay: float = 0.0):
        self.fail = set(fail)
        self.delay = delay
        self.calls: List[tuple] = []

    async def _call(self, name: str, *args, data: Any = None) -> AdapterResult:
        self.calls.append((name,) + args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.fail:
            return AdapterResult.fail(f"{name} rejected")
        return AdapterResult.ok(data)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def business_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "test_connection"]


class FakeMarketplace(FakeAdapterBase, MarketplaceAdapter):
    def __init__(self, statuses: Optional[Dict[str, str]] = None, failing_ids=(), pages=(), **kwargs):
        super().__init__(**kwargs)
        self.statuses = dict(statuses or {})
        self.failing_ids = set(failing_ids)
        # One list of RemoteOrder per get_orders page
        self.pages = [list(page) for page in pages]
        self.windows: List[tuple] = []

    async def test_connection(self):
        return await self._call("test_connection")

    async def approve_order(self, external_order_id):
        return await self._call("approve_order", external_order_id)

    async def reject_order(self, external_order_id, reason):
        return await self._call("reject_order", external_order_id, reason)

    async def create_shipment(self, external_order_id, shipment: ShipmentInfo):
        return await self._call("create_shipment", external_order_id, shipment)

    async def get_order_status(self, external_order_id):
        if external_order_id in self.failing_ids:
            self.calls.append(("get_order_status", external_order_id))
            return AdapterResult.fail(f"order {external_order_id} unavailable")
        return await self._call("get_order_status", external_order_id, data=self.statuses.get(external_order_id))

    async def get_orders(self, time_from=None, time_to=None, status=None, page=0, page_size=50):
        self.windows.append((time_from, time_to))
        orders = self.pages[page] if page < len(self.pages) else []
        return await self._call(
            "get_orders", page, data={"orders": orders, "errors": [], "has_more": page + 1 < len(self.pages)}
        )


class FakeERP(FakeAdapterBase, ERPAdapter):
    def __init__(self, partner_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.partner_id = partner_id

    async def find_partner_by_email(self, email):
        return await self._call("find_partner_by_email", email, data=self.partner_id)

    async def create_partner(self, data):
        return await self._call("create_partner", data, data="P-NEW")

    async def create_sale_order(self, data):
        return await self._call("create_sale_order", data, data="SO-1")

    async def create_invoice(self, data):
        return await self._call("create_invoice", data, data="INV-1")

    async def create_stock_picking(self, data):
        return await self._call("create_stock_picking", data, data="PICK-1")

    async def update_sale_order(self, sale_order_id, values):
        return await self._call("update_sale_order", sale_order_id, values, data=True)


class FakeWorkflow(FakeAdapterBase, WorkflowAdapter):
    async def test_connection(self):
        return await self._call("test_connection")

    async def trigger_workflow(self, workflow_id, payload):
        return await self._call("trigger_workflow", workflow_id, payload)


class FakeNotifier(FakeAdapterBase, NotificationAdapter):
    async def test_connection(self):
        return await self._call("test_connection")

    async def send_order_status_update_email(self, order, new_status):
        return await self._call("send_order_status_update_email", order.order_number, new_status)


@pytest.fixture
def marketplace() -> FakeMarketplace:
    return FakeMarketplace()


@pytest.fixture
def erp() -> FakeERP:
    return FakeERP()


@pytest.fixture
def workflow() -> FakeWorkflow:
    return FakeWorkflow()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


def remote_order(external_order_id: str, status: str = "Created", payment_status: str = "Paid", **overrides) -> RemoteOrder:
    values: Dict[str, Any] = dict(
        external_order_id=external_order_id,
        order_number=f"TY-{external_order_id}",
        status=status,
        payment_status=payment_status,
        customer_name="Elif Sahin",
        customer_email="elif@example.com",
        shipping_street="Bagdat Cd. 10",
        shipping_city="Istanbul",
        shipping_country="TR",
        items=[RemoteOrderItem(sku="SKU-9", product_name="Teapot", quantity=1, unit_price=80.0)],
        subtotal=80.0,
        tax=0.0,
        shipping_fee=10.0,
        total_amount=90.0,
    )
    values.update(overrides)
    return RemoteOrder(**values)
