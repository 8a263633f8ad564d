from __future__ import annotations

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import packages.db.models  # noqa: F401  (registers the tables on SQLModel.metadata)
from apps.api.claims import (
    Claim,
    ClaimPriority,
    ClaimRepository,
    ClaimService,
    ClaimStatus,
    CustomerSnapshot,
    ProductSnapshot,
    SupplierSnapshot,
    TransitionPayload,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database gives every session its own connection, like Postgres would.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'claims.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def repository(session_factory, engine):
    return ClaimRepository(session_factory, engine=engine)


@pytest.fixture
def service(repository):
    return ClaimService(repository)


@pytest_asyncio.fixture
async def supplier(service):
    return await service.references.create_supplier(name="Electrolux Professional", short_code="elx")


@pytest_asyncio.fixture
async def product(service, supplier):
    return await service.references.create_product(
        supplier_id=supplier.id, name="Combi steamer 10 GN", model_number="ECOE101"
    )


@pytest_asyncio.fixture
async def customer(service):
    return await service.references.create_customer(
        name="Fjordkjøkken AS", contact_person="Kari Nordmann", email="kari@fjord.no", city="Bergen"
    )


@pytest_asyncio.fixture
async def new_claim(service, supplier, product, customer):
    return await service.create_claim(
        supplier_id=supplier.id,
        product_id=product.id,
        customer_id=customer.id,
        serial_number="SN-1001",
        problem_description="Steam generator fails to heat",
        actor="handler",
    )


@pytest.fixture
def walk_to():
    """Drive a claim forward through the lifecycle until ``target`` is reached."""

    steps = [
        (ClaimStatus.IN_REVIEW, TransitionPayload()),
        (ClaimStatus.SUBMITTED_TO_SUPPLIER, TransitionPayload()),
        (ClaimStatus.AWAITING_RESPONSE, TransitionPayload(supplier_claim_number="EP-778812")),
    ]

    async def _walk(service, claim, target):
        for status, payload in steps:
            claim = await service.transition(claim.id, status, payload, actor="handler")
            if status == target:
                break
        return claim

    return _walk


@pytest.fixture
def make_claim():
    """Build an in-memory Claim for pure state machine and resolution checks."""

    def _make(**overrides) -> Claim:
        now = datetime.now(timezone.utc)
        values = dict(
            id="claim-1",
            claim_number="ELX-2610-0001",
            status=ClaimStatus.NEW,
            priority=ClaimPriority.MEDIUM,
            category=None,
            supplier_id="supplier-1",
            supplier=SupplierSnapshot(name="Electrolux", short_code="ELX"),
            supplier_claim_number=None,
            supplier_portal_code="ABC234",
            product_id=None,
            product=ProductSnapshot(name="Combi steamer"),
            serial_number=None,
            purchase_date=None,
            invoice_number=None,
            customer_id=None,
            customer=CustomerSnapshot(),
            problem_description="Does not heat",
            internal_notes=None,
            assigned_to=None,
            resolution=None,
            resolution_type=None,
            credit_amount=None,
            credit_currency=None,
            credit_reference=None,
            sealed_at=None,
            cancellation_reason=None,
            submitted_at=None,
            supplier_responded_at=None,
            resolved_at=None,
            closed_at=None,
            cancelled_at=None,
            created_by="handler",
            updated_by="handler",
            version=1,
            created_at=now,
            updated_at=now,
        )
        values.update(overrides)
        return Claim(**values)

    return _make
