"""Error hierarchy raised by the claim lifecycle engine.

Every error names the invariant it protects through the ``invariant`` attribute so
callers (and the HTTP layer) can report exactly which rule was violated.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


def _label(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class ClaimServiceError(RuntimeError):
    """Base error for claim lifecycle issues."""

    invariant: str = "claim"

    def __init__(self, message: str, *, invariant: str | None = None) -> None:
        super().__init__(message)
        if invariant is not None:
            self.invariant = invariant


class ClaimNotFoundError(ClaimServiceError):
    """Raised when an operation targets a non-existent claim."""

    invariant = "claim_exists"


class AttachmentNotFoundError(ClaimServiceError):
    """Raised when an attachment is not bound to the given claim."""

    invariant = "attachment_exists"


class PartNotFoundError(ClaimServiceError):
    """Raised when a part is not bound to the given claim."""

    invariant = "part_exists"


class ReferenceNotFoundError(ClaimServiceError):
    """Raised when a supplier, product or customer reference cannot be resolved."""

    invariant = "reference_exists"

    def __init__(self, kind: str, reference_id: str, *, reason: str | None = None) -> None:
        message = f"{kind.capitalize()} {reference_id} not found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.kind = kind
        self.reference_id = reference_id


class MissingSupplierError(ReferenceNotFoundError):
    """Raised when a claim is created against a supplier that cannot be resolved."""

    invariant = "supplier_required"

    def __init__(self, supplier_id: str, *, reason: str | None = None) -> None:
        super().__init__("supplier", supplier_id, reason=reason)


class InvalidTransitionError(ClaimServiceError):
    """Raised when a status change violates the transition table or a precondition."""

    invariant = "transition_table"

    def __init__(
        self,
        current: Any,
        target: Any,
        reason: str,
        *,
        invariant: str | None = None,
    ) -> None:
        super().__init__(
            f"Cannot transition {_label(current)} -> {_label(target)}: {reason}",
            invariant=invariant,
        )
        self.current = current
        self.target = target
        self.reason = reason


class ClaimSealedError(ClaimServiceError):
    """Raised when a financial-impacting change targets a sealed claim."""

    invariant = "financial_seal"

    def __init__(self, claim_number: str, operation: str, *, status: Any = None) -> None:
        detail = f"Claim {claim_number} is sealed; {operation} is not permitted"
        if status is not None:
            detail = f"{detail} (status {_label(status)})"
        super().__init__(detail)
        self.claim_number = claim_number
        self.operation = operation


class ConcurrentModificationError(ClaimServiceError):
    """Raised when a transition loses a race against another writer."""

    invariant = "single_writer"

    def __init__(self, claim_id: str, *, expected_version: int, actual_version: int | None = None) -> None:
        detail = f"Claim {claim_id} was modified concurrently (expected version {expected_version}"
        if actual_version is not None:
            detail = f"{detail}, found {actual_version}"
        super().__init__(f"{detail})")
        self.claim_id = claim_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ClaimValidationError(ClaimServiceError):
    """Raised when a field-level value is invalid."""

    invariant = "field_validation"
