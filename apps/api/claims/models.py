from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from .state import SEALED_STATUSES, TERMINAL_STATUSES, ClaimStatus, PartStatus


class ClaimPriority(str, Enum):
    """Handling priority of a claim."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ClaimCategory(str, Enum):
    """Kind of defect reported on a claim."""

    ELECTRICAL = "electrical"
    MECHANICAL = "mechanical"
    COSMETIC = "cosmetic"
    SOFTWARE = "software"
    TRANSPORT = "transport"
    INSTALLATION = "installation"
    OTHER = "other"


class AttachmentKind(str, Enum):
    """Evidence is financial-impacting; supplementary documentation is not."""

    EVIDENCE = "evidence"
    SUPPLEMENTARY = "supplementary"


@dataclass(frozen=True, slots=True)
class SupplierSnapshot:
    """Supplier display fields captured when the claim was created."""

    name: str
    short_code: str


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    """Product display fields captured when the claim was created."""

    name: str | None = None
    model_number: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.name or "").strip()


@dataclass(frozen=True, slots=True)
class CustomerSnapshot:
    """Customer display fields captured when the claim was created."""

    company_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None


@dataclass(frozen=True, slots=True)
class ResolutionOutcome:
    """Final, immutable monetary outcome of a resolved claim."""

    resolution_type: str
    amount: Decimal
    currency: str
    reference: str | None
    sealed_at: datetime

    def describe(self) -> str:
        summary = f"Claim resolved ({self.resolution_type}): credit {self.amount:.2f} {self.currency}"
        if self.reference:
            summary = f"{summary}, reference {self.reference}"
        return summary

    def as_metadata(self) -> dict[str, Any]:
        return {
            "resolution_type": self.resolution_type,
            "credit_amount": f"{self.amount:.2f}",
            "credit_currency": self.currency,
            "credit_reference": self.reference,
            "sealed_at": self.sealed_at.isoformat(),
        }


@dataclass(slots=True)
class Claim:
    """Aggregate representing a warranty claim against a supplier."""

    id: str
    claim_number: str
    status: ClaimStatus
    priority: ClaimPriority
    category: ClaimCategory | None
    supplier_id: str
    supplier: SupplierSnapshot
    supplier_claim_number: str | None
    supplier_portal_code: str
    product_id: str | None
    product: ProductSnapshot
    serial_number: str | None
    purchase_date: datetime | None
    invoice_number: str | None
    customer_id: str | None
    customer: CustomerSnapshot
    problem_description: str | None
    internal_notes: str | None
    assigned_to: str | None
    resolution: str | None
    resolution_type: str | None
    credit_amount: Decimal | None
    credit_currency: str | None
    credit_reference: str | None
    sealed_at: datetime | None
    cancellation_reason: str | None
    submitted_at: datetime | None
    supplier_responded_at: datetime | None
    resolved_at: datetime | None
    closed_at: datetime | None
    cancelled_at: datetime | None
    created_by: str
    updated_by: str
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_sealed(self) -> bool:
        return self.sealed_at is not None or self.status in SEALED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_product(self) -> bool:
        return bool(self.product_id) or not self.product.is_empty


@dataclass(slots=True)
class TimelineEntry:
    """Immutable audit entry describing one event on a claim."""

    id: str
    claim_id: str
    sequence: int
    event_type: str
    description: str
    actor: str
    metadata: Mapping[str, Any]
    created_at: datetime


@dataclass(slots=True)
class Attachment:
    """File metadata bound to a claim."""

    id: str
    claim_id: str
    file_name: str
    file_type: str | None
    file_size: int | None
    file_url: str
    thumbnail_url: str | None
    kind: AttachmentKind
    uploaded_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Part:
    """Replacement part request bound to a claim."""

    id: str
    claim_id: str
    part_number: str | None
    part_name: str
    quantity: int
    unit_price: Decimal | None
    status: PartStatus
    created_at: datetime
    updated_at: datetime

    @property
    def total_price(self) -> Decimal | None:
        if self.unit_price is None:
            return None
        return self.unit_price * self.quantity


@dataclass(slots=True)
class TransitionPayload:
    """Caller-supplied data accompanying a status transition."""

    note: str | None = None
    supplier_claim_number: str | None = None
    resolution: str | None = None
    resolution_type: str | None = None
    credit_amount: Decimal | None = None
    credit_currency: str | None = None
    credit_reference: str | None = None
    cancellation_reason: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ClaimFilters:
    """Filtering, search and paging options for claim listings."""

    status: ClaimStatus | None = None
    supplier_id: str | None = None
    customer_id: str | None = None
    priority: ClaimPriority | None = None
    search: str | None = None
    page: int = 1
    limit: int = 20
    sort_by: str = "created_at"
    sort_order: str = "desc"


@dataclass(slots=True)
class ClaimStats:
    """Number of claims per status."""

    counts: dict[str, int]
    total: int
