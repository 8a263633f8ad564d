"""Warranty claims schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("short_code", sa.String(length=10), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("contact_person", sa.String(length=200), nullable=True),
        sa.Column("warranty_months", sa.Integer(), nullable=False, server_default=sa.text("24")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("supplier_id", sa.String(length=36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("model_number", sa.String(length=100), nullable=True),
        sa.Column("sku", sa.String(length=100), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_products_supplier_id", "products", ["supplier_id"])

    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("org_number", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("contact_person", sa.String(length=200), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.String(length=10), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "claim_number_sequences",
        sa.Column("prefix", sa.String(length=20), primary_key=True, nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "claims",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("claim_number", sa.String(length=30), nullable=False, unique=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("supplier_id", sa.String(length=36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("supplier_name", sa.String(length=200), nullable=False),
        sa.Column("supplier_short_code", sa.String(length=10), nullable=False),
        sa.Column("supplier_claim_number", sa.String(length=50), nullable=True),
        sa.Column("supplier_portal_code", sa.String(length=10), nullable=False, unique=True),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("product_name_text", sa.String(length=300), nullable=True),
        sa.Column("product_model_number", sa.String(length=100), nullable=True),
        sa.Column("serial_number", sa.String(length=100), nullable=True),
        sa.Column("purchase_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("invoice_number", sa.String(length=50), nullable=True),
        sa.Column("customer_id", sa.String(length=36), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("customer_company_name", sa.String(length=200), nullable=True),
        sa.Column("customer_contact_name", sa.String(length=200), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=20), nullable=True),
        sa.Column("customer_address", sa.Text(), nullable=True),
        sa.Column("customer_postal_code", sa.String(length=10), nullable=True),
        sa.Column("customer_city", sa.String(length=100), nullable=True),
        sa.Column("problem_description", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("resolution_type", sa.String(length=50), nullable=True),
        sa.Column("credit_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("credit_currency", sa.String(length=3), nullable=True),
        sa.Column("credit_reference", sa.String(length=100), nullable=True),
        sa.Column("sealed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("supplier_responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("timeline_seq", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("version >= 1", name="claims_version_positive"),
        sa.CheckConstraint("credit_amount IS NULL OR credit_amount >= 0", name="claims_credit_non_negative"),
    )
    op.create_index("ix_claims_status", "claims", ["status"])
    op.create_index("ix_claims_supplier_id", "claims", ["supplier_id"])
    op.create_index("ix_claims_customer_id", "claims", ["customer_id"])
    op.create_index("ix_claims_created_at", "claims", ["created_at"])

    op.create_table(
        "claim_timeline",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("claim_id", sa.String(length=36), sa.ForeignKey("claims.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("claim_id", "sequence", name="claim_timeline_claim_sequence_key"),
    )
    op.create_index("ix_claim_timeline_claim_id_created_at", "claim_timeline", ["claim_id", "created_at"])

    op.create_table(
        "claim_attachments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("claim_id", sa.String(length=36), sa.ForeignKey("claims.id", ondelete="CASCADE"), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_type", sa.String(length=100), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(length=20), nullable=False, server_default="evidence"),
        sa.Column("uploaded_by", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_claim_attachments_claim_id", "claim_attachments", ["claim_id"])

    op.create_table(
        "claim_parts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("claim_id", sa.String(length=36), sa.ForeignKey("claims.id", ondelete="CASCADE"), nullable=False),
        sa.Column("part_number", sa.String(length=100), nullable=True),
        sa.Column("part_name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="claim_parts_quantity_positive"),
    )
    op.create_index("ix_claim_parts_claim_id", "claim_parts", ["claim_id"])


def downgrade() -> None:
    op.drop_table("claim_parts")
    op.drop_table("claim_attachments")
    op.drop_table("claim_timeline")
    op.drop_table("claims")
    op.drop_table("claim_number_sequences")
    op.drop_table("customers")
    op.drop_table("products")
    op.drop_table("suppliers")
