"""Reference registry: suppliers, products and customers claims point at.

Claims hold only a weak reference (id) plus a snapshot of the display fields, so
edits made here never change the history of existing claims.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import CustomerTable, ProductTable, SupplierTable

from .errors import ClaimValidationError, ReferenceNotFoundError
from .timeline import ensure_datetime


@dataclass(slots=True)
class Supplier:
    id: str
    name: str
    short_code: str
    email: str | None
    phone: str | None
    contact_person: str | None
    warranty_months: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Product:
    id: str
    supplier_id: str
    name: str
    model_number: str | None
    sku: str | None
    category: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Customer:
    id: str
    name: str
    org_number: str | None
    email: str | None
    phone: str | None
    contact_person: str | None
    address: str | None
    postal_code: str | None
    city: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ReferenceRegistry:
    """Create/read/update access to reference data."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_supplier(
        self,
        *,
        name: str,
        short_code: str,
        email: str | None = None,
        phone: str | None = None,
        contact_person: str | None = None,
        warranty_months: int = 24,
    ) -> Supplier:
        code = short_code.strip().upper()
        if not code or len(code) > 10:
            raise ClaimValidationError("Supplier short code must be 1-10 characters")
        row = SupplierTable(
            name=name,
            short_code=code,
            email=email,
            phone=phone,
            contact_person=contact_person,
            warranty_months=warranty_months,
        )
        try:
            await self._insert(row)
        except IntegrityError as exc:
            raise ClaimValidationError(f"Supplier short code {code} already exists") from exc
        return self._to_supplier(row)

    async def get_supplier(self, supplier_id: str) -> Supplier | None:
        async with self._session_factory() as session:
            row = await session.get(SupplierTable, supplier_id)
            return self._to_supplier(row) if row is not None else None

    async def list_suppliers(self, *, search: str | None = None, limit: int = 20) -> Sequence[Supplier]:
        statement = select(SupplierTable).where(SupplierTable.is_active.is_(True))
        if search:
            statement = statement.where(SupplierTable.name.ilike(f"%{search}%"))
        statement = statement.order_by(SupplierTable.name.asc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_supplier(row) for row in result.scalars().all()]

    async def update_supplier(self, supplier_id: str, **changes: Any) -> Supplier:
        row = await self._update(SupplierTable, "supplier", supplier_id, changes)
        return self._to_supplier(row)

    async def create_product(
        self,
        *,
        supplier_id: str,
        name: str,
        model_number: str | None = None,
        sku: str | None = None,
        category: str | None = None,
    ) -> Product:
        if await self.get_supplier(supplier_id) is None:
            raise ReferenceNotFoundError("supplier", supplier_id)
        row = ProductTable(
            supplier_id=supplier_id,
            name=name,
            model_number=model_number,
            sku=sku,
            category=category,
        )
        await self._insert(row)
        return self._to_product(row)

    async def get_product(self, product_id: str) -> Product | None:
        async with self._session_factory() as session:
            row = await session.get(ProductTable, product_id)
            return self._to_product(row) if row is not None else None

    async def list_products(
        self, *, supplier_id: str | None = None, search: str | None = None, limit: int = 20
    ) -> Sequence[Product]:
        statement = select(ProductTable).where(ProductTable.is_active.is_(True))
        if supplier_id:
            statement = statement.where(ProductTable.supplier_id == supplier_id)
        if search:
            statement = statement.where(ProductTable.name.ilike(f"%{search}%"))
        statement = statement.order_by(ProductTable.name.asc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_product(row) for row in result.scalars().all()]

    async def update_product(self, product_id: str, **changes: Any) -> Product:
        if "supplier_id" in changes:
            raise ClaimValidationError("A product cannot move to another supplier")
        row = await self._update(ProductTable, "product", product_id, changes)
        return self._to_product(row)

    async def create_customer(
        self,
        *,
        name: str,
        org_number: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        contact_person: str | None = None,
        address: str | None = None,
        postal_code: str | None = None,
        city: str | None = None,
    ) -> Customer:
        row = CustomerTable(
            name=name,
            org_number=org_number,
            email=email,
            phone=phone,
            contact_person=contact_person,
            address=address,
            postal_code=postal_code,
            city=city,
        )
        await self._insert(row)
        return self._to_customer(row)

    async def get_customer(self, customer_id: str) -> Customer | None:
        async with self._session_factory() as session:
            row = await session.get(CustomerTable, customer_id)
            return self._to_customer(row) if row is not None else None

    async def list_customers(self, *, search: str | None = None, limit: int = 20) -> Sequence[Customer]:
        statement = select(CustomerTable).where(CustomerTable.is_active.is_(True))
        if search:
            statement = statement.where(CustomerTable.name.ilike(f"%{search}%"))
        statement = statement.order_by(CustomerTable.name.asc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_customer(row) for row in result.scalars().all()]

    async def update_customer(self, customer_id: str, **changes: Any) -> Customer:
        row = await self._update(CustomerTable, "customer", customer_id, changes)
        return self._to_customer(row)

    async def _insert(self, row: SQLModel) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
            await session.refresh(row)

    async def _update(self, table: type[SQLModel], kind: str, reference_id: str, changes: dict[str, Any]) -> Any:
        protected = {"id", "created_at", "updated_at"} & changes.keys()
        if protected:
            raise ClaimValidationError(f"Fields cannot be updated: {', '.join(sorted(protected))}")
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(table, reference_id)
                if row is None:
                    raise ReferenceNotFoundError(kind, reference_id)
                for name, value in changes.items():
                    if value is None:
                        continue
                    if not hasattr(row, name):
                        raise ClaimValidationError(f"Unknown {kind} field: {name}")
                    setattr(row, name, value)
                row.updated_at = datetime.now(timezone.utc)
            await session.refresh(row)
            return row

    @staticmethod
    def _to_supplier(row: SupplierTable) -> Supplier:
        return Supplier(
            id=row.id,
            name=row.name,
            short_code=row.short_code,
            email=row.email,
            phone=row.phone,
            contact_person=row.contact_person,
            warranty_months=row.warranty_months,
            is_active=bool(row.is_active),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _to_product(row: ProductTable) -> Product:
        return Product(
            id=row.id,
            supplier_id=row.supplier_id,
            name=row.name,
            model_number=row.model_number,
            sku=row.sku,
            category=row.category,
            is_active=bool(row.is_active),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _to_customer(row: CustomerTable) -> Customer:
        return Customer(
            id=row.id,
            name=row.name,
            org_number=row.org_number,
            email=row.email,
            phone=row.phone,
            contact_person=row.contact_person,
            address=row.address,
            postal_code=row.postal_code,
            city=row.city,
            is_active=bool(row.is_active),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )
