"""Database models and utilities."""

from .models import (
    ClaimAttachmentTable,
    ClaimNumberSequenceTable,
    ClaimPartTable,
    ClaimTable,
    ClaimTimelineTable,
    CustomerTable,
    ProductTable,
    SupplierTable,
)

__all__ = [
    "ClaimAttachmentTable",
    "ClaimNumberSequenceTable",
    "ClaimPartTable",
    "ClaimTable",
    "ClaimTimelineTable",
    "CustomerTable",
    "ProductTable",
    "SupplierTable",
]
