from __future__ import annotations

import pytest

from apps.api.claims import ClaimValidationError, ReferenceNotFoundError, ReferenceRegistry


@pytest.fixture
def registry(session_factory, engine):
    return ReferenceRegistry(session_factory)


@pytest.mark.asyncio
async def test_supplier_short_codes_are_normalized_and_unique(registry):
    supplier = await registry.create_supplier(name="Electrolux", short_code=" elx ")
    assert supplier.short_code == "ELX"
    assert supplier.warranty_months == 24
    assert supplier.is_active

    with pytest.raises(ClaimValidationError, match="already exists"):
        await registry.create_supplier(name="Electrolux Duplicate", short_code="ELX")
    with pytest.raises(ClaimValidationError):
        await registry.create_supplier(name="Too long", short_code="ABCDEFGHIJK")


@pytest.mark.asyncio
async def test_supplier_listing_hides_inactive(registry):
    active = await registry.create_supplier(name="Rational", short_code="RAT")
    retired = await registry.create_supplier(name="Rieber", short_code="RIE")
    await registry.update_supplier(retired.id, is_active=False)

    listed = await registry.list_suppliers()
    assert [supplier.id for supplier in listed] == [active.id]
    assert (await registry.get_supplier(retired.id)).is_active is False

    searched = await registry.list_suppliers(search="rat")
    assert [supplier.name for supplier in searched] == ["Rational"]


@pytest.mark.asyncio
async def test_products_belong_to_existing_suppliers(registry):
    supplier = await registry.create_supplier(name="Hobart", short_code="HOB")
    product = await registry.create_product(supplier_id=supplier.id, name="Dishwasher", sku="HB-1")
    assert product.supplier_id == supplier.id

    with pytest.raises(ReferenceNotFoundError):
        await registry.create_product(supplier_id="missing", name="Ghost")
    with pytest.raises(ClaimValidationError):
        await registry.update_product(product.id, supplier_id="other")

    updated = await registry.update_product(product.id, model_number="AM-900")
    assert updated.model_number == "AM-900"
    assert updated.name == "Dishwasher"

    listed = await registry.list_products(supplier_id=supplier.id)
    assert [item.id for item in listed] == [product.id]


@pytest.mark.asyncio
async def test_customer_updates_validate_fields(registry):
    customer = await registry.create_customer(name="Hotel Bryggen", city="Bergen")

    updated = await registry.update_customer(customer.id, phone="+47 55 00 00 00")
    assert updated.phone == "+47 55 00 00 00"
    assert updated.city == "Bergen"

    with pytest.raises(ClaimValidationError):
        await registry.update_customer(customer.id, shoe_size=44)
    with pytest.raises(ClaimValidationError):
        await registry.update_customer(customer.id, id="forged")
    with pytest.raises(ReferenceNotFoundError):
        await registry.update_customer("missing", city="Oslo")
    assert await registry.get_customer("missing") is None
