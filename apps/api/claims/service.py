from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from packages.db.models import ClaimTable

from .errors import (
    ClaimNotFoundError,
    ClaimSealedError,
    ClaimValidationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingSupplierError,
    ReferenceNotFoundError,
)
from .ledger import AttachmentLedger
from .models import (
    Claim,
    ClaimCategory,
    ClaimFilters,
    ClaimPriority,
    ClaimStats,
    CustomerSnapshot,
    ProductSnapshot,
    SupplierSnapshot,
    TimelineEntry,
    TransitionPayload,
)
from .numbering import ClaimNumberSequence, generate_portal_code
from .references import ReferenceRegistry
from .repository import ClaimRepository
from .resolution import ResolutionEngine
from .state import SUPPLIER_DECISIONS, ClaimStateMachine, ClaimStatus
from .timeline import TimelineEvent, TimelineRecorder, TimelineReplay

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_PORTAL_CODE_ATTEMPTS = 5

_EDITABLE_FIELDS = (
    "priority",
    "category",
    "problem_description",
    "internal_notes",
    "assigned_to",
    "serial_number",
    "invoice_number",
    "purchase_date",
    "product_name_text",
    "product_model_number",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClaimService:
    """High level orchestration for the claim lifecycle.

    Every accepted transition is written together with its timeline entry in a
    single database transaction. Concurrent writers are detected through the
    claim's ``version`` column; the loser gets :class:`ConcurrentModificationError`
    and nothing is retried here.
    """

    def __init__(
        self,
        repository: ClaimRepository,
        *,
        references: ReferenceRegistry | None = None,
        timeline: TimelineRecorder | None = None,
        ledger: AttachmentLedger | None = None,
        resolution: ResolutionEngine | None = None,
        numbers: ClaimNumberSequence | None = None,
        state_machine: ClaimStateMachine | None = None,
    ) -> None:
        session_factory = repository.session_factory
        self._repository = repository
        self._session_factory: async_sessionmaker[AsyncSession] = session_factory
        self._references = references or ReferenceRegistry(session_factory)
        self._timeline = timeline or TimelineRecorder(session_factory)
        self._ledger = ledger or AttachmentLedger(session_factory, timeline=self._timeline)
        self._resolution = resolution or ResolutionEngine()
        self._numbers = numbers or ClaimNumberSequence(session_factory)
        self._state_machine = state_machine or ClaimStateMachine()

    @property
    def references(self) -> ReferenceRegistry:
        return self._references

    @property
    def ledger(self) -> AttachmentLedger:
        return self._ledger

    @property
    def timeline(self) -> TimelineRecorder:
        return self._timeline

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    async def create_claim(
        self,
        *,
        supplier_id: str,
        actor: str,
        product_id: str | None = None,
        customer_id: str | None = None,
        product: ProductSnapshot | None = None,
        customer: CustomerSnapshot | None = None,
        serial_number: str | None = None,
        purchase_date: datetime | None = None,
        invoice_number: str | None = None,
        problem_description: str | None = None,
        category: ClaimCategory | None = None,
        priority: ClaimPriority = ClaimPriority.MEDIUM,
    ) -> Claim:
        with tracer.start_as_current_span("claims.create") as span:
            span.set_attribute("claim.supplier_id", supplier_id)

            supplier = await self._references.get_supplier(supplier_id)
            if supplier is None:
                raise MissingSupplierError(supplier_id)
            if not supplier.is_active:
                raise MissingSupplierError(supplier_id, reason="supplier is inactive")
            supplier_snapshot = SupplierSnapshot(name=supplier.name, short_code=supplier.short_code)
            product_snapshot = await self._product_snapshot(supplier_id, product_id, product)
            customer_snapshot = await self._customer_snapshot(customer_id, customer)

            claim_number = await self._numbers.next_number(supplier.short_code)
            span.set_attribute("claim.number", claim_number)
            now = _utcnow()
            claim_id = str(uuid.uuid4())

            async with self._session_factory() as session:
                async with session.begin():
                    portal_code = await self._unique_portal_code(session)
                    row = ClaimTable(
                        id=claim_id,
                        claim_number=claim_number,
                        status=self._state_machine.initial_state().value,
                        priority=priority.value,
                        category=category.value if category else None,
                        supplier_id=supplier_id,
                        supplier_name=supplier_snapshot.name,
                        supplier_short_code=supplier_snapshot.short_code,
                        supplier_portal_code=portal_code,
                        product_id=product_id,
                        product_name_text=product_snapshot.name,
                        product_model_number=product_snapshot.model_number,
                        serial_number=serial_number,
                        purchase_date=purchase_date,
                        invoice_number=invoice_number,
                        customer_id=customer_id,
                        customer_company_name=customer_snapshot.company_name,
                        customer_contact_name=customer_snapshot.contact_name,
                        customer_email=customer_snapshot.email,
                        customer_phone=customer_snapshot.phone,
                        customer_address=customer_snapshot.address,
                        customer_postal_code=customer_snapshot.postal_code,
                        customer_city=customer_snapshot.city,
                        problem_description=problem_description,
                        created_by=actor,
                        updated_by=actor,
                        version=1,
                        timeline_seq=0,
                        created_at=now,
                        updated_at=now,
                    )
                    await self._repository.insert_claim(session, row)
                    await self._timeline.append(
                        session,
                        claim_id=claim_id,
                        event_type=TimelineEvent.CREATED,
                        description=f"Claim {claim_number} created",
                        actor=actor,
                        metadata={"claim_number": claim_number, "supplier_id": supplier_id},
                        created_at=now,
                    )
                    claim = await self._repository.reload(session, claim_id)

        logger.info("Claim %s created for supplier %s", claim_number, supplier.short_code)
        return claim

    async def get_claim(self, claim_id: str) -> Claim:
        claim = await self._repository.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        return claim

    async def get_claim_by_portal_code(self, code: str) -> Claim:
        claim = await self._repository.get_by_portal_code(code)
        if claim is None:
            raise ClaimNotFoundError(f"No claim for portal code {code.strip().upper()}")
        return claim

    async def list_claims(self, filters: ClaimFilters | None = None) -> Sequence[Claim]:
        return await self._repository.list_claims(filters or ClaimFilters())

    async def get_stats(self) -> ClaimStats:
        counts = {status.value: 0 for status in ClaimStatus}
        counts.update(await self._repository.count_by_status())
        return ClaimStats(counts=counts, total=sum(counts.values()))

    async def transition(
        self,
        claim_id: str,
        target: ClaimStatus,
        payload: TransitionPayload | None = None,
        *,
        actor: str,
        expected_version: int | None = None,
    ) -> Claim:
        payload = payload or TransitionPayload()
        with tracer.start_as_current_span("claims.transition") as span:
            span.set_attribute("claim.id", claim_id)
            span.set_attribute("claim.target_status", target.value)

            async with self._session_factory() as session:
                async with session.begin():
                    claim = await self._lock_for_write(session, claim_id, expected_version)
                    span.set_attribute("claim.current_status", claim.status.value)
                    updated = await self._apply_transition(session, claim, target, payload, actor=actor)

        logger.info(
            "Claim %s moved %s -> %s by %s", updated.claim_number, claim.status.value, target.value, actor
        )
        return updated

    async def respond_via_portal(
        self,
        code: str,
        decision: ClaimStatus,
        *,
        message: str,
        credit_amount: Decimal | None = None,
        credit_currency: str | None = None,
        credit_reference: str | None = None,
    ) -> Claim:
        """Record the supplier's answer submitted through the public portal.

        The answer moves an ``awaiting_response`` claim to ``approved``,
        ``partial`` or ``rejected``. A supplier answers once; a second answer
        raises :class:`InvalidTransitionError`.
        """

        if decision not in SUPPLIER_DECISIONS:
            raise ClaimValidationError(
                f"A supplier response cannot move a claim to {decision.value}", invariant="supplier_decision"
            )
        message = message.strip()
        if not message:
            raise ClaimValidationError("A response message is required")

        claim = await self.get_claim_by_portal_code(code)
        actor = f"supplier:{claim.supplier.short_code}"
        payload = TransitionPayload(
            resolution=message,
            credit_amount=credit_amount,
            credit_currency=credit_currency,
            credit_reference=credit_reference,
            metadata={"channel": "supplier_portal"},
        )
        with tracer.start_as_current_span("claims.portal_response") as span:
            span.set_attribute("claim.id", claim.id)
            span.set_attribute("claim.target_status", decision.value)

            async with self._session_factory() as session:
                async with session.begin():
                    locked = await self._lock_for_write(session, claim.id, claim.version)
                    if locked.supplier_responded_at is not None:
                        raise InvalidTransitionError(
                            locked.status,
                            decision,
                            "the supplier has already responded",
                            invariant="single_supplier_response",
                        )
                    updated = await self._apply_transition(
                        session, locked, decision, payload, actor=actor, event_type=TimelineEvent.SUPPLIER_RESPONSE
                    )

        logger.info("Supplier responded %s to claim %s via portal", decision.value, updated.claim_number)
        return updated

    async def update_claim(
        self,
        claim_id: str,
        *,
        actor: str,
        expected_version: int | None = None,
        **fields: Any,
    ) -> Claim:
        """Update descriptive, non-monetary fields of a claim.

        Allowed until the claim is closed or cancelled. ``supplier_id`` and the
        claim number are immutable; credit fields go through :meth:`update_credit`.
        """

        unknown = sorted(set(fields) - set(_EDITABLE_FIELDS))
        if unknown:
            raise ClaimValidationError(f"Fields cannot be updated: {', '.join(unknown)}", invariant="immutable_fields")
        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if value is None:
                continue
            if name in ("priority", "category"):
                value = getattr(value, "value", value)
            changes[name] = value
        if not changes:
            raise ClaimValidationError("No fields provided for update")

        async with self._session_factory() as session:
            async with session.begin():
                claim = await self._lock_for_write(session, claim_id, expected_version)
                if claim.is_terminal:
                    raise ClaimSealedError(claim.claim_number, "updating claim details", status=claim.status)
                now = _utcnow()
                await self._apply_or_conflict(session, claim, changes, actor=actor, now=now)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.UPDATED,
                    description=f"Claim updated: {', '.join(sorted(changes))}",
                    actor=actor,
                    metadata={"fields": sorted(changes)},
                    created_at=now,
                )
                updated = await self._repository.reload(session, claim_id)
        return updated

    async def update_credit(
        self,
        claim_id: str,
        *,
        actor: str,
        credit_amount: Decimal | None,
        credit_currency: str | None = None,
        credit_reference: str | None = None,
        expected_version: int | None = None,
    ) -> Claim:
        """Replace the credit fields of an unsealed claim."""

        async with self._session_factory() as session:
            async with session.begin():
                claim = await self._lock_for_write(session, claim_id, expected_version)
                credit = self._resolution.validate_credit_update(
                    claim,
                    amount=credit_amount,
                    currency=credit_currency,
                    reference=credit_reference,
                )
                now = _utcnow()
                await self._apply_or_conflict(session, claim, credit.as_changes(), actor=actor, now=now)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.CREDIT_UPDATED,
                    description=_describe_credit(credit.amount, credit.currency, credit.reference),
                    actor=actor,
                    metadata={
                        "credit_amount": _money(credit.amount),
                        "credit_currency": credit.currency,
                        "credit_reference": credit.reference,
                    },
                    created_at=now,
                )
                updated = await self._repository.reload(session, claim_id)
        return updated

    async def add_note(
        self,
        claim_id: str,
        description: str,
        *,
        actor: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> TimelineEntry:
        """Record a manual annotation; notes are accepted in every state."""

        if not description.strip():
            raise ClaimValidationError("A note cannot be empty")
        async with self._session_factory() as session:
            async with session.begin():
                entry = await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.NOTE,
                    description=description.strip(),
                    actor=actor,
                    metadata=metadata,
                )
        return entry

    async def get_timeline(self, claim_id: str) -> list[TimelineEntry]:
        await self.get_claim(claim_id)
        return await self._timeline.list_entries(claim_id)

    async def replay_timeline(self, claim_id: str) -> TimelineReplay:
        await self.get_claim(claim_id)
        return self._timeline.replay(claim_id)

    async def _apply_transition(
        self,
        session: AsyncSession,
        claim: Claim,
        target: ClaimStatus,
        payload: TransitionPayload,
        *,
        actor: str,
        event_type: TimelineEvent | None = None,
    ) -> Claim:
        if claim.is_sealed and _carries_credit(payload):
            raise ClaimSealedError(claim.claim_number, "changing credit fields", status=claim.status)
        self._state_machine.assert_transition(claim.status, target)
        self._state_machine.assert_preconditions(claim, target, payload)

        now = _utcnow()
        changes, planned_event, description, metadata = self._plan_transition(claim, target, payload, now)
        await self._apply_or_conflict(session, claim, changes, actor=actor, now=now)
        await self._timeline.append(
            session,
            claim_id=claim.id,
            event_type=event_type or planned_event,
            description=description,
            actor=actor,
            metadata=metadata,
            created_at=now,
        )
        return await self._repository.reload(session, claim.id)

    def _plan_transition(
        self,
        claim: Claim,
        target: ClaimStatus,
        payload: TransitionPayload,
        now: datetime,
    ) -> tuple[dict[str, Any], TimelineEvent, str, dict[str, Any]]:
        changes: dict[str, Any] = {"status": target.value}
        metadata: dict[str, Any] = dict(payload.metadata)
        metadata.update(from_status=claim.status.value, to_status=target.value)
        description = f"Status changed from {claim.status.value} to {target.value}"
        event_type = TimelineEvent.STATUS_CHANGED

        if target == ClaimStatus.SUBMITTED_TO_SUPPLIER:
            changes["submitted_at"] = now
        elif target == ClaimStatus.AWAITING_RESPONSE:
            if payload.supplier_claim_number:
                changes["supplier_claim_number"] = payload.supplier_claim_number.strip()
                metadata["supplier_claim_number"] = changes["supplier_claim_number"]
        elif target in SUPPLIER_DECISIONS:
            credit = self._resolution.decide(claim, target, payload)
            changes.update(credit.as_changes())
            changes["supplier_responded_at"] = now
            changes["resolution"] = (payload.resolution or "").strip()
            if payload.resolution_type:
                changes["resolution_type"] = payload.resolution_type.strip()
            metadata.update(credit_amount=_money(credit.amount), credit_currency=credit.currency)
            description = f"Supplier responded: {target.value}. {changes['resolution']}"
        elif target == ClaimStatus.RESOLVED:
            outcome = self._resolution.seal(claim, now=now)
            changes.update(
                resolved_at=now,
                sealed_at=outcome.sealed_at,
                resolution_type=outcome.resolution_type,
                credit_amount=outcome.amount,
                credit_currency=outcome.currency,
                credit_reference=outcome.reference,
            )
            metadata.update(outcome.as_metadata())
            description = outcome.describe()
            event_type = TimelineEvent.RESOLUTION_SEALED
        elif target == ClaimStatus.CLOSED:
            changes["closed_at"] = now
        elif target == ClaimStatus.CANCELLED:
            reason = (payload.cancellation_reason or "").strip()
            changes.update(cancelled_at=now, cancellation_reason=reason)
            metadata["reason"] = reason
            description = f"Claim cancelled: {reason}"
            event_type = TimelineEvent.CANCELLED

        if payload.note:
            description = f"{description} ({payload.note.strip()})"
        return changes, event_type, description, metadata

    async def _lock_for_write(self, session: AsyncSession, claim_id: str, expected_version: int | None) -> Claim:
        """Lock the claim row at the version read before the lock was requested.

        Raises :class:`ConcurrentModificationError` when another writer
        committed while this one waited for the lock.
        """

        observed = await self._repository.current_version(session, claim_id)
        if observed is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        if expected_version is not None and observed != expected_version:
            raise ConcurrentModificationError(claim_id, expected_version=expected_version, actual_version=observed)
        claim = await self._repository.lock_claim(session, claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        if claim.version != observed:
            raise ConcurrentModificationError(claim_id, expected_version=observed, actual_version=claim.version)
        return claim

    async def _apply_or_conflict(
        self,
        session: AsyncSession,
        claim: Claim,
        changes: Mapping[str, Any],
        *,
        actor: str,
        now: datetime,
    ) -> None:
        applied = await self._repository.apply_changes(
            session, claim.id, version=claim.version, changes=changes, actor=actor, now=now
        )
        if not applied:
            raise ConcurrentModificationError(claim.id, expected_version=claim.version)

    async def _product_snapshot(
        self, supplier_id: str, product_id: str | None, provided: ProductSnapshot | None
    ) -> ProductSnapshot:
        provided = provided or ProductSnapshot()
        if product_id is None:
            return provided
        product = await self._references.get_product(product_id)
        if product is None:
            raise ReferenceNotFoundError("product", product_id)
        if product.supplier_id != supplier_id:
            raise ReferenceNotFoundError("product", product_id, reason="product belongs to another supplier")
        return ProductSnapshot(
            name=provided.name or product.name,
            model_number=provided.model_number or product.model_number,
        )

    async def _customer_snapshot(self, customer_id: str | None, provided: CustomerSnapshot | None) -> CustomerSnapshot:
        provided = provided or CustomerSnapshot()
        if customer_id is None:
            return provided
        customer = await self._references.get_customer(customer_id)
        if customer is None:
            raise ReferenceNotFoundError("customer", customer_id)
        return CustomerSnapshot(
            company_name=provided.company_name or customer.name,
            contact_name=provided.contact_name or customer.contact_person,
            email=provided.email or customer.email,
            phone=provided.phone or customer.phone,
            address=provided.address or customer.address,
            postal_code=provided.postal_code or customer.postal_code,
            city=provided.city or customer.city,
        )

    async def _unique_portal_code(self, session: AsyncSession) -> str:
        for _ in range(_PORTAL_CODE_ATTEMPTS):
            code = generate_portal_code()
            if not await self._repository.portal_code_exists(session, code):
                return code
        raise RuntimeError("Could not allocate a unique supplier portal code")


def _money(value: Decimal | None) -> str | None:
    return f"{value:.2f}" if value is not None else None


def _carries_credit(payload: TransitionPayload) -> bool:
    return any(
        value is not None for value in (payload.credit_amount, payload.credit_currency, payload.credit_reference)
    )


def _describe_credit(amount: Decimal | None, currency: str | None, reference: str | None) -> str:
    if amount is None:
        return "Credit cleared"
    description = f"Credit set to {amount:.2f} {currency}"
    if reference:
        description = f"{description}, reference {reference}"
    return description
