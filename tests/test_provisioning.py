"""
ERP provisioning flow
"""
import pytest

from conftest import FakeERP
from orderbridge.core.exceptions import AlreadyProvisionedError, NotFoundError, ProvisioningStepError, ValidationError
from orderbridge.services.provisioning_service import ERPProvisioningFlow, ProvisioningOptions


@pytest.mark.asyncio
async def test_already_provisioned_makes_no_calls(make_order, erp):
    order = make_order(erp_sale_order_id="SO-9")

    with pytest.raises(AlreadyProvisionedError):
        await ERPProvisioningFlow(erp).provision(order)
    assert erp.calls == []


@pytest.mark.asyncio
async def test_full_provisioning(make_order):
    erp = FakeERP()
    order = make_order(external_order_id="TY-1")

    result = await ERPProvisioningFlow(erp).provision(order)

    assert (result.partner_id, result.sale_order_id, result.invoice_id, result.delivery_order_id) == (
        "P-NEW", "SO-1", "INV-1", "PICK-1"
    )
    assert [c[0] for c in erp.calls] == [
        "find_partner_by_email", "create_partner", "create_sale_order", "create_invoice", "create_stock_picking",
    ]

    sale_order = erp.calls[2][1]
    assert sale_order["partner_id"] == "P-NEW"
    assert sale_order["client_order_ref"] == order.order_number
    assert sale_order["origin"] == "Marketplace: TY-1"
    assert sale_order["state"] == "draft"
    assert sale_order["amount_total"] == 135.0
    assert sale_order["order_line"][0] == {"name": "[SKU-1] Kettle", "product_uom_qty": 2, "price_unit": 50.0}


@pytest.mark.asyncio
async def test_existing_partner_reused(make_order):
    erp = FakeERP(partner_id="P-7")
    result = await ERPProvisioningFlow(erp).provision(
        make_order(), ProvisioningOptions(create_invoice=False, create_delivery_order=False)
    )

    assert result.partner_id == "P-7"
    assert erp.count("create_partner") == 0
    assert result.invoice_id is None and result.delivery_order_id is None


@pytest.mark.asyncio
async def test_missing_partner_without_create_customer(make_order, erp):
    with pytest.raises(NotFoundError):
        await ERPProvisioningFlow(erp).provision(make_order(), ProvisioningOptions(create_customer=False))
    assert erp.count("create_sale_order") == 0


@pytest.mark.asyncio
async def test_delivery_order_uses_location_options(make_order, erp):
    await ERPProvisioningFlow(erp).provision(
        make_order(),
        ProvisioningOptions(create_invoice=False, picking_type_id=2, stock_location_id=8, customer_location_id=5),
    )
    [picking] = [c[1] for c in erp.calls if c[0] == "create_stock_picking"]
    assert picking == {
        "partner_id": "P-NEW",
        "origin": "SO-1",
        "picking_type_id": 2,
        "location_id": 8,
        "location_dest_id": 5,
    }


@pytest.mark.asyncio
async def test_abort_reports_partial_then_resume(make_order):
    order = make_order()
    failing = FakeERP(fail={"create_invoice"})

    with pytest.raises(ProvisioningStepError) as exc:
        await ERPProvisioningFlow(failing).provision(order)

    assert exc.value.step == "invoice"
    assert exc.value.partial.sale_order_id == "SO-1"
    assert exc.value.partial.invoice_id is None
    assert failing.count("create_stock_picking") == 0

    partial = order.with_erp_linkage(partner_id=exc.value.partial.partner_id, sale_order_id="SO-1")
    erp = FakeERP()
    resumed = await ERPProvisioningFlow(erp).resume(partial)

    assert [c[0] for c in erp.calls] == ["create_invoice", "create_stock_picking"]
    assert (resumed.sale_order_id, resumed.invoice_id, resumed.delivery_order_id) == ("SO-1", "INV-1", "PICK-1")


@pytest.mark.asyncio
async def test_resume_requires_sale_order(make_order, erp):
    with pytest.raises(ValidationError):
        await ERPProvisioningFlow(erp).resume(make_order())
