from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import ClaimSealedError, ClaimValidationError, InvalidTransitionError
from .models import Claim, ResolutionOutcome, TransitionPayload
from .state import ClaimStatus

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_CENT = Decimal("0.01")


@dataclass(slots=True)
class CreditFields:
    """Normalized credit values ready to be written to a claim."""

    amount: Decimal | None
    currency: str | None
    reference: str | None

    def as_changes(self) -> dict[str, Any]:
        return {
            "credit_amount": self.amount,
            "credit_currency": self.currency,
            "credit_reference": self.reference,
        }


def normalize_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ClaimValidationError(f"Invalid credit amount: {value!r}") from exc
    if not amount.is_finite():
        raise ClaimValidationError(f"Invalid credit amount: {value!r}")
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def normalize_currency(value: str | None) -> str | None:
    if value is None:
        return None
    currency = value.strip().upper()
    if not _CURRENCY_RE.match(currency):
        raise ClaimValidationError(f"Invalid currency code: {value!r}", invariant="currency_format")
    return currency


class ResolutionEngine:
    """Compute, validate and seal the financial outcome of a claim.

    Sealing runs exactly once, when a claim enters ``resolved``. Afterwards any
    attempt to change the credit fields raises :class:`ClaimSealedError`.
    """

    def __init__(self, *, base_currency: str = "NOK") -> None:
        currency = normalize_currency(base_currency)
        if currency is None:  # pragma: no cover - normalize_currency only returns None for None
            raise ClaimValidationError("A base currency is required")
        self._base_currency = currency

    @property
    def base_currency(self) -> str:
        return self._base_currency

    def decide(self, claim: Claim, target: ClaimStatus, payload: TransitionPayload) -> CreditFields:
        """Validate the credit carried by a supplier decision (approved/partial/rejected)."""

        try:
            amount = normalize_amount(payload.credit_amount)
            currency = normalize_currency(payload.credit_currency)
        except ClaimValidationError as exc:
            raise InvalidTransitionError(claim.status, target, str(exc), invariant="credit_consistency") from exc
        reference = _clean(payload.credit_reference)

        if target == ClaimStatus.REJECTED:
            if amount is not None or claim.credit_amount is not None:
                raise InvalidTransitionError(
                    claim.status,
                    target,
                    "a rejected claim cannot carry a credit amount",
                    invariant="rejected_without_credit",
                )
            if reference is not None:
                raise InvalidTransitionError(
                    claim.status,
                    target,
                    "a rejected claim cannot carry a credit reference",
                    invariant="rejected_without_credit",
                )
            return CreditFields(amount=None, currency=None, reference=None)

        if amount is None:
            amount = claim.credit_amount
        if amount is None:
            raise InvalidTransitionError(
                claim.status,
                target,
                f"{target.value} requires a credit amount",
                invariant="credit_required",
            )
        if amount < 0:
            raise InvalidTransitionError(
                claim.status,
                target,
                "credit amount must not be negative",
                invariant="credit_non_negative",
            )
        return CreditFields(
            amount=amount,
            currency=currency or claim.credit_currency or self._base_currency,
            reference=reference if reference is not None else claim.credit_reference,
        )

    def seal(self, claim: Claim, *, now: datetime) -> ResolutionOutcome:
        """Snapshot the final monetary outcome of ``claim``."""

        if claim.sealed_at is not None:
            raise ClaimSealedError(claim.claim_number, "sealing the resolution again", status=claim.status)

        target = ClaimStatus.RESOLVED
        amount = claim.credit_amount
        reference = _clean(claim.credit_reference)
        if claim.status == ClaimStatus.REJECTED:
            if amount not in (None, Decimal("0")):
                raise InvalidTransitionError(
                    claim.status, target, "a rejected claim resolves with zero credit", invariant="rejected_without_credit"
                )
            amount = Decimal("0.00")
        elif amount is None:
            raise InvalidTransitionError(
                claim.status, target, "a credit amount is required to resolve", invariant="credit_required"
            )

        if amount < 0:
            raise InvalidTransitionError(
                claim.status, target, "credit amount must not be negative", invariant="credit_non_negative"
            )
        if reference is not None and amount == 0:
            raise InvalidTransitionError(
                claim.status,
                target,
                "a credit reference requires a positive credit amount",
                invariant="credit_consistency",
            )

        try:
            currency = normalize_currency(claim.credit_currency) or self._base_currency
        except ClaimValidationError as exc:
            raise InvalidTransitionError(claim.status, target, str(exc), invariant="credit_consistency") from exc

        return ResolutionOutcome(
            resolution_type=claim.resolution_type or self._default_resolution_type(claim.status, amount),
            amount=amount.quantize(_CENT, rounding=ROUND_HALF_UP),
            currency=currency,
            reference=reference,
            sealed_at=now,
        )

    def validate_credit_update(
        self,
        claim: Claim,
        *,
        amount: Any,
        currency: str | None,
        reference: str | None,
    ) -> CreditFields:
        """Validate a direct write to the credit fields of an unsealed claim."""

        if claim.is_sealed or claim.is_terminal:
            raise ClaimSealedError(claim.claim_number, "changing credit fields", status=claim.status)

        normalized = normalize_amount(amount)
        normalized_currency = normalize_currency(currency)
        cleaned_reference = _clean(reference)
        if normalized is not None and normalized < 0:
            raise ClaimValidationError("Credit amount must not be negative", invariant="credit_non_negative")
        if claim.status == ClaimStatus.REJECTED and normalized is not None:
            raise ClaimValidationError(
                "A rejected claim cannot carry a credit amount", invariant="rejected_without_credit"
            )
        if cleaned_reference is not None and not normalized:
            raise ClaimValidationError(
                "A credit reference requires a positive credit amount", invariant="credit_consistency"
            )
        if normalized is not None and normalized_currency is None:
            normalized_currency = self._base_currency
        return CreditFields(amount=normalized, currency=normalized_currency, reference=cleaned_reference)

    @staticmethod
    def _default_resolution_type(status: ClaimStatus, amount: Decimal) -> str:
        if status == ClaimStatus.REJECTED:
            return "rejected"
        if status == ClaimStatus.PARTIAL:
            return "partial_credit"
        return "credit" if amount > 0 else "replacement"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
