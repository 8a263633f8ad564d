"""SQLModel table definitions for the warranty claims data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class SupplierTable(SQLModel, table=True):
    """Suppliers that warranty claims are raised against."""

    __tablename__ = "suppliers"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(200), nullable=False))
    short_code: str = Field(sa_column=Column(String(10), nullable=False, unique=True))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    contact_person: str | None = Field(default=None, sa_column=Column(String(200), nullable=True))
    warranty_months: int = Field(default=24, sa_column=Column(Integer, nullable=False, default=24))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ProductTable(SQLModel, table=True):
    """Products sold by a supplier."""

    __tablename__ = "products"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    supplier_id: str = Field(
        sa_column=Column(String(36), ForeignKey("suppliers.id"), nullable=False, index=True)
    )
    name: str = Field(sa_column=Column(String(300), nullable=False))
    model_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    sku: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    category: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class CustomerTable(SQLModel, table=True):
    """End customers owning the defective equipment."""

    __tablename__ = "customers"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(200), nullable=False))
    org_number: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    contact_person: str | None = Field(default=None, sa_column=Column(String(200), nullable=True))
    address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    postal_code: str | None = Field(default=None, sa_column=Column(String(10), nullable=True))
    city: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ClaimNumberSequenceTable(SQLModel, table=True):
    """Last issued claim number per `{short_code}-{yymm}` prefix."""

    __tablename__ = "claim_number_sequences"

    prefix: str = Field(primary_key=True)
    last_value: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))


class ClaimTable(SQLModel, table=True):
    """Warranty claims raised against suppliers."""

    __tablename__ = "claims"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    claim_number: str = Field(sa_column=Column(String(30), nullable=False, unique=True, index=True))
    status: str = Field(sa_column=Column(String(30), nullable=False, index=True))
    priority: str = Field(default="medium", sa_column=Column(String(20), nullable=False))
    category: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))

    supplier_id: str = Field(
        sa_column=Column(String(36), ForeignKey("suppliers.id"), nullable=False, index=True)
    )
    supplier_name: str = Field(sa_column=Column(String(200), nullable=False))
    supplier_short_code: str = Field(sa_column=Column(String(10), nullable=False))
    supplier_claim_number: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    supplier_portal_code: str = Field(sa_column=Column(String(10), nullable=False, unique=True))

    product_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("products.id"), nullable=True)
    )
    product_name_text: str | None = Field(default=None, sa_column=Column(String(300), nullable=True))
    product_model_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    serial_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    purchase_date: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    invoice_number: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))

    customer_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("customers.id"), nullable=True, index=True)
    )
    customer_company_name: str | None = Field(default=None, sa_column=Column(String(200), nullable=True))
    customer_contact_name: str | None = Field(default=None, sa_column=Column(String(200), nullable=True))
    customer_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    customer_phone: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    customer_address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    customer_postal_code: str | None = Field(default=None, sa_column=Column(String(10), nullable=True))
    customer_city: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))

    problem_description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    internal_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    assigned_to: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))

    resolution: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    resolution_type: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    credit_amount: Decimal | None = Field(default=None, sa_column=Column(Numeric(12, 2), nullable=True))
    credit_currency: str | None = Field(default=None, sa_column=Column(String(3), nullable=True))
    credit_reference: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    sealed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    cancellation_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    submitted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    supplier_responded_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    resolved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    cancelled_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    updated_by: str = Field(sa_column=Column(String(255), nullable=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    timeline_seq: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ClaimTimelineTable(SQLModel, table=True):
    """Append-only history of events for a claim."""

    __tablename__ = "claim_timeline"
    __table_args__ = (UniqueConstraint("claim_id", "sequence", name="claim_timeline_claim_sequence_key"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    claim_id: str = Field(
        sa_column=Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    event_type: str = Field(sa_column=Column(String(50), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    actor: str = Field(sa_column=Column(String(255), nullable=False))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class ClaimAttachmentTable(SQLModel, table=True):
    """Files bound to a claim; content lives in the external blob store."""

    __tablename__ = "claim_attachments"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    claim_id: str = Field(
        sa_column=Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)
    )
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    file_type: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    file_size: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    file_url: str = Field(sa_column=Column(Text, nullable=False))
    thumbnail_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    kind: str = Field(default="evidence", sa_column=Column(String(20), nullable=False))
    uploaded_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ClaimPartTable(SQLModel, table=True):
    """Replacement parts requested for a claim."""

    __tablename__ = "claim_parts"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    claim_id: str = Field(
        sa_column=Column(String(36), ForeignKey("claims.id"), nullable=False, index=True)
    )
    part_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    part_name: str = Field(sa_column=Column(String(200), nullable=False))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    unit_price: Decimal | None = Field(default=None, sa_column=Column(Numeric(12, 2), nullable=True))
    status: str = Field(default="pending", sa_column=Column(String(30), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
