from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import ClaimTable

from .models import (
    Claim,
    ClaimCategory,
    ClaimFilters,
    ClaimPriority,
    CustomerSnapshot,
    ProductSnapshot,
    SupplierSnapshot,
)
from .state import ClaimStatus
from .timeline import ensure_datetime

_SORT_COLUMNS = {
    "created_at": ClaimTable.created_at,
    "updated_at": ClaimTable.updated_at,
    "claim_number": ClaimTable.claim_number,
    "status": ClaimTable.status,
}

MAX_PAGE_SIZE = 100


class ClaimRepository:
    """Persistence helper wrapping the `claims` table.

    Write helpers take the caller's session so a claim change and its timeline
    entry always share one transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def insert_claim(self, session: AsyncSession, row: ClaimTable) -> None:
        session.add(row)
        await session.flush()

    async def portal_code_exists(self, session: AsyncSession, code: str) -> bool:
        found = await session.scalar(
            select(ClaimTable.id).where(ClaimTable.supplier_portal_code == code).limit(1)
        )
        return found is not None

    async def current_version(self, session: AsyncSession, claim_id: str) -> int | None:
        """Read the claim's version without taking a lock."""

        version = await session.scalar(select(ClaimTable.version).where(ClaimTable.id == claim_id))
        return int(version) if version is not None else None

    async def lock_claim(self, session: AsyncSession, claim_id: str) -> Claim | None:
        """Load a claim for update (row lock where the database supports it)."""

        result = await session.execute(
            select(ClaimTable)
            .where(ClaimTable.id == claim_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return self.to_claim(row) if row is not None else None

    async def apply_changes(
        self,
        session: AsyncSession,
        claim_id: str,
        *,
        version: int,
        changes: Mapping[str, Any],
        actor: str,
        now: datetime,
    ) -> bool:
        """Write ``changes`` only if the claim is still at ``version``; bump the version."""

        values = dict(changes)
        values.update(version=version + 1, updated_by=actor, updated_at=now)
        result = await session.execute(
            update(ClaimTable)
            .where(ClaimTable.id == claim_id, ClaimTable.version == version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reload(self, session: AsyncSession, claim_id: str) -> Claim:
        result = await session.execute(
            select(ClaimTable).where(ClaimTable.id == claim_id).execution_options(populate_existing=True)
        )
        return self.to_claim(result.scalars().one())

    async def get_claim(self, claim_id: str) -> Claim | None:
        async with self._session_factory() as session:
            row = await session.get(ClaimTable, claim_id)
            return self.to_claim(row) if row is not None else None

    async def get_by_portal_code(self, code: str) -> Claim | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimTable).where(ClaimTable.supplier_portal_code == code.strip().upper())
            )
            row = result.scalars().first()
            return self.to_claim(row) if row is not None else None

    async def list_claims(self, filters: ClaimFilters) -> Sequence[Claim]:
        statement = select(ClaimTable)
        if filters.status is not None:
            statement = statement.where(ClaimTable.status == filters.status.value)
        if filters.supplier_id:
            statement = statement.where(ClaimTable.supplier_id == filters.supplier_id)
        if filters.customer_id:
            statement = statement.where(ClaimTable.customer_id == filters.customer_id)
        if filters.priority is not None:
            statement = statement.where(ClaimTable.priority == filters.priority.value)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            statement = statement.where(
                or_(
                    ClaimTable.claim_number.ilike(pattern),
                    ClaimTable.product_name_text.ilike(pattern),
                    ClaimTable.customer_company_name.ilike(pattern),
                )
            )

        column = _SORT_COLUMNS.get(filters.sort_by, ClaimTable.created_at)
        ordering = column.asc() if filters.sort_order == "asc" else column.desc()
        limit = max(1, min(filters.limit, MAX_PAGE_SIZE))
        offset = (max(1, filters.page) - 1) * limit
        statement = statement.order_by(ordering, ClaimTable.claim_number.asc()).offset(offset).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self.to_claim(row) for row in result.scalars().all()]

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimTable.status, func.count(ClaimTable.id)).group_by(ClaimTable.status)
            )
            return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    def to_claim(row: ClaimTable) -> Claim:
        return Claim(
            id=row.id,
            claim_number=row.claim_number,
            status=ClaimStatus(row.status),
            priority=ClaimPriority(row.priority),
            category=ClaimCategory(row.category) if row.category else None,
            supplier_id=row.supplier_id,
            supplier=SupplierSnapshot(name=row.supplier_name, short_code=row.supplier_short_code),
            supplier_claim_number=row.supplier_claim_number,
            supplier_portal_code=row.supplier_portal_code,
            product_id=row.product_id,
            product=ProductSnapshot(name=row.product_name_text, model_number=row.product_model_number),
            serial_number=row.serial_number,
            purchase_date=_optional_datetime(row.purchase_date),
            invoice_number=row.invoice_number,
            customer_id=row.customer_id,
            customer=CustomerSnapshot(
                company_name=row.customer_company_name,
                contact_name=row.customer_contact_name,
                email=row.customer_email,
                phone=row.customer_phone,
                address=row.customer_address,
                postal_code=row.customer_postal_code,
                city=row.customer_city,
            ),
            problem_description=row.problem_description,
            internal_notes=row.internal_notes,
            assigned_to=row.assigned_to,
            resolution=row.resolution,
            resolution_type=row.resolution_type,
            credit_amount=row.credit_amount,
            credit_currency=row.credit_currency,
            credit_reference=row.credit_reference,
            sealed_at=_optional_datetime(row.sealed_at),
            cancellation_reason=row.cancellation_reason,
            submitted_at=_optional_datetime(row.submitted_at),
            supplier_responded_at=_optional_datetime(row.supplier_responded_at),
            resolved_at=_optional_datetime(row.resolved_at),
            closed_at=_optional_datetime(row.closed_at),
            cancelled_at=_optional_datetime(row.cancelled_at),
            created_by=row.created_by,
            updated_by=row.updated_by,
            version=row.version,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )


def _optional_datetime(value: datetime | None) -> datetime | None:
    return ensure_datetime(value) if value is not None else None
