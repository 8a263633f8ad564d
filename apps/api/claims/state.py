from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Mapping, Sequence

from .errors import InvalidTransitionError

if TYPE_CHECKING:
    from .models import Claim, TransitionPayload


class ClaimStatus(str, Enum):
    """Canonical states of the claim lifecycle."""

    NEW = "new"
    IN_REVIEW = "in_review"
    SUBMITTED_TO_SUPPLIER = "submitted_to_supplier"
    AWAITING_RESPONSE = "awaiting_response"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIAL = "partial"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class PartStatus(str, Enum):
    """States of a replacement part request."""

    PENDING = "pending"
    ORDERED = "ordered"
    RECEIVED = "received"
    INSTALLED = "installed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ClaimStatus.CLOSED, ClaimStatus.CANCELLED})
SEALED_STATUSES = frozenset({ClaimStatus.RESOLVED, ClaimStatus.CLOSED})
SUPPLIER_DECISIONS = frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED, ClaimStatus.PARTIAL})


class ClaimStateMachine:
    """Validate claim status transitions and their preconditions."""

    _DEFAULT_TRANSITIONS: Mapping[ClaimStatus, Sequence[ClaimStatus]] = {
        ClaimStatus.NEW: (ClaimStatus.IN_REVIEW, ClaimStatus.CANCELLED),
        ClaimStatus.IN_REVIEW: (ClaimStatus.SUBMITTED_TO_SUPPLIER, ClaimStatus.CANCELLED),
        ClaimStatus.SUBMITTED_TO_SUPPLIER: (ClaimStatus.AWAITING_RESPONSE, ClaimStatus.CANCELLED),
        ClaimStatus.AWAITING_RESPONSE: (
            ClaimStatus.APPROVED,
            ClaimStatus.REJECTED,
            ClaimStatus.PARTIAL,
            ClaimStatus.CANCELLED,
        ),
        ClaimStatus.APPROVED: (ClaimStatus.RESOLVED, ClaimStatus.CANCELLED),
        ClaimStatus.REJECTED: (ClaimStatus.RESOLVED, ClaimStatus.CANCELLED),
        ClaimStatus.PARTIAL: (ClaimStatus.RESOLVED, ClaimStatus.CANCELLED),
        ClaimStatus.RESOLVED: (ClaimStatus.CLOSED,),
        ClaimStatus.CLOSED: (),
        ClaimStatus.CANCELLED: (),
    }

    def __init__(self, transitions: Mapping[ClaimStatus, Sequence[ClaimStatus]] | None = None) -> None:
        self._transitions = transitions or self._DEFAULT_TRANSITIONS

    @staticmethod
    def initial_state() -> ClaimStatus:
        return ClaimStatus.NEW

    def allowed_targets(self, current: ClaimStatus) -> tuple[ClaimStatus, ...]:
        return tuple(self._transitions.get(current, ()))

    def can_transition(self, current: ClaimStatus, target: ClaimStatus) -> bool:
        return target in self._transitions.get(current, ())

    def assert_transition(self, current: ClaimStatus, target: ClaimStatus) -> None:
        if current == target:
            raise InvalidTransitionError(current, target, f"claim is already {current.value}")
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(current, target, f"{current.value} is a terminal state")
        if not self.can_transition(current, target):
            allowed = ", ".join(status.value for status in self.allowed_targets(current)) or "none"
            raise InvalidTransitionError(current, target, f"allowed targets are: {allowed}")

    def assert_preconditions(self, claim: "Claim", target: ClaimStatus, payload: "TransitionPayload") -> None:
        """Check the data a claim must carry before entering ``target``.

        Monetary rules for supplier decisions and resolution are enforced by the
        resolution engine; this covers the remaining per-state requirements.
        """

        current = claim.status
        if target == ClaimStatus.IN_REVIEW:
            if not claim.supplier_id:
                raise InvalidTransitionError(current, target, "a supplier is required", invariant="supplier_required")
            if not claim.has_product:
                raise InvalidTransitionError(
                    current,
                    target,
                    "a product reference or product description is required",
                    invariant="product_required",
                )
        elif target == ClaimStatus.SUBMITTED_TO_SUPPLIER:
            if not (claim.problem_description or "").strip():
                raise InvalidTransitionError(
                    current,
                    target,
                    "a problem description is required",
                    invariant="problem_description_required",
                )
        elif target in SUPPLIER_DECISIONS:
            if not (payload.resolution or "").strip():
                raise InvalidTransitionError(
                    current,
                    target,
                    "a resolution narrative is required",
                    invariant="resolution_narrative_required",
                )
        elif target == ClaimStatus.CANCELLED:
            if not (payload.cancellation_reason or "").strip():
                raise InvalidTransitionError(
                    current,
                    target,
                    "a cancellation reason is required",
                    invariant="cancellation_reason_required",
                )


class PartStateMachine:
    """Validate part status transitions, independent of the claim status."""

    _TRANSITIONS: Mapping[PartStatus, Sequence[PartStatus]] = {
        PartStatus.PENDING: (PartStatus.ORDERED, PartStatus.CANCELLED),
        PartStatus.ORDERED: (PartStatus.RECEIVED, PartStatus.CANCELLED),
        PartStatus.RECEIVED: (PartStatus.INSTALLED, PartStatus.CANCELLED),
        PartStatus.INSTALLED: (),
        PartStatus.CANCELLED: (),
    }

    @classmethod
    def initial_state(cls) -> PartStatus:
        return PartStatus.PENDING

    @classmethod
    def can_transition(cls, current: PartStatus, target: PartStatus) -> bool:
        return target in cls._TRANSITIONS.get(current, ())

    @classmethod
    def assert_transition(cls, current: PartStatus, target: PartStatus) -> None:
        if not cls.can_transition(current, target):
            raise InvalidTransitionError(
                current,
                target,
                f"part cannot move from {current.value} to {target.value}",
                invariant="part_transition_table",
            )
