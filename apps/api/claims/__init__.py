"""Warranty claim lifecycle engine."""

from .errors import (
    AttachmentNotFoundError,
    ClaimNotFoundError,
    ClaimSealedError,
    ClaimServiceError,
    ClaimValidationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingSupplierError,
    PartNotFoundError,
    ReferenceNotFoundError,
)
from .ledger import AttachmentLedger
from .models import (
    Attachment,
    AttachmentKind,
    Claim,
    ClaimCategory,
    ClaimFilters,
    ClaimPriority,
    ClaimStats,
    CustomerSnapshot,
    Part,
    ProductSnapshot,
    ResolutionOutcome,
    SupplierSnapshot,
    TimelineEntry,
    TransitionPayload,
)
from .numbering import ClaimNumberSequence, generate_portal_code
from .references import Customer, Product, ReferenceRegistry, Supplier
from .repository import ClaimRepository
from .resolution import ResolutionEngine
from .service import ClaimService
from .state import ClaimStateMachine, ClaimStatus, PartStateMachine, PartStatus
from .timeline import TimelineEvent, TimelineRecorder, TimelineReplay

__all__ = [
    "Attachment",
    "AttachmentKind",
    "AttachmentLedger",
    "AttachmentNotFoundError",
    "Claim",
    "ClaimCategory",
    "ClaimFilters",
    "ClaimNotFoundError",
    "ClaimNumberSequence",
    "ClaimPriority",
    "ClaimRepository",
    "ClaimSealedError",
    "ClaimService",
    "ClaimServiceError",
    "ClaimStateMachine",
    "ClaimStats",
    "ClaimStatus",
    "ClaimValidationError",
    "ConcurrentModificationError",
    "Customer",
    "CustomerSnapshot",
    "InvalidTransitionError",
    "MissingSupplierError",
    "Part",
    "PartNotFoundError",
    "PartStateMachine",
    "PartStatus",
    "Product",
    "ProductSnapshot",
    "ReferenceNotFoundError",
    "ReferenceRegistry",
    "ResolutionEngine",
    "ResolutionOutcome",
    "Supplier",
    "SupplierSnapshot",
    "TimelineEntry",
    "TimelineEvent",
    "TimelineRecorder",
    "TimelineReplay",
    "TransitionPayload",
    "generate_portal_code",
]
