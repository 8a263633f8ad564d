"""Attachments and replacement parts bound to a claim.

Once a claim is resolved or closed, financial-impacting changes freeze: part
writes and evidence uploads raise :class:`ClaimSealedError`. Supplementary
documentation may still be attached after closure, and reads always work.

The sealed check runs after the claim row has been write-locked (by reserving
the timeline sequence), inside the same transaction that performs the write, so
a ledger write can never slip in after a concurrent sealing commit.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import ClaimAttachmentTable, ClaimPartTable, ClaimTable

from .errors import (
    AttachmentNotFoundError,
    ClaimNotFoundError,
    ClaimSealedError,
    ClaimValidationError,
    PartNotFoundError,
)
from .models import Attachment, AttachmentKind, Part
from .resolution import normalize_amount
from .state import SEALED_STATUSES, ClaimStatus, PartStateMachine, PartStatus
from .timeline import TimelineEvent, TimelineRecorder, ensure_datetime

logger = logging.getLogger(__name__)


class AttachmentLedger:
    """Add/update/remove operations for claim attachments and parts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeline: TimelineRecorder,
    ) -> None:
        self._session_factory = session_factory
        self._timeline = timeline

    async def add_attachment(
        self,
        claim_id: str,
        *,
        file_name: str,
        file_url: str,
        actor: str,
        file_type: str | None = None,
        file_size: int | None = None,
        thumbnail_url: str | None = None,
        kind: AttachmentKind = AttachmentKind.EVIDENCE,
    ) -> Attachment:
        if not file_name.strip() or not file_url.strip():
            raise ClaimValidationError("An attachment needs a file name and a file URL")
        if file_size is not None and file_size < 0:
            raise ClaimValidationError("File size must not be negative")

        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(
                    session,
                    claim_id,
                    "uploading evidence attachments",
                    allow_sealed=kind == AttachmentKind.SUPPLEMENTARY,
                )
                row = ClaimAttachmentTable(
                    id=str(uuid.uuid4()),
                    claim_id=claim_id,
                    file_name=file_name,
                    file_type=file_type,
                    file_size=file_size,
                    file_url=file_url,
                    thumbnail_url=thumbnail_url,
                    kind=kind.value,
                    uploaded_by=actor,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.ATTACHMENT_ADDED,
                    description=f"Attachment {file_name} added",
                    actor=actor,
                    metadata={"attachment_id": row.id, "kind": kind.value},
                    sequence=sequence,
                    created_at=now,
                )
                attachment = self._to_attachment(row)
        logger.info("Attachment %s added to claim %s", attachment.id, claim_id)
        return attachment

    async def update_attachment(
        self,
        claim_id: str,
        attachment_id: str,
        *,
        actor: str,
        file_name: str | None = None,
        file_type: str | None = None,
        thumbnail_url: str | None = None,
    ) -> Attachment:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "changing attachments")
                row = await self._get_attachment_row(session, claim_id, attachment_id)
                changed: list[str] = []
                for name, value in (("file_name", file_name), ("file_type", file_type), ("thumbnail_url", thumbnail_url)):
                    if value is not None and getattr(row, name) != value:
                        setattr(row, name, value)
                        changed.append(name)
                row.updated_at = now
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.ATTACHMENT_UPDATED,
                    description=f"Attachment {row.file_name} updated",
                    actor=actor,
                    metadata={"attachment_id": attachment_id, "fields": changed},
                    sequence=sequence,
                    created_at=now,
                )
                attachment = self._to_attachment(row)
        return attachment

    async def remove_attachment(self, claim_id: str, attachment_id: str, *, actor: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "removing attachments")
                row = await self._get_attachment_row(session, claim_id, attachment_id)
                file_name, file_url = row.file_name, row.file_url
                await session.delete(row)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.ATTACHMENT_REMOVED,
                    description=f"Attachment {file_name} removed",
                    actor=actor,
                    metadata={"attachment_id": attachment_id, "file_url": file_url},
                    sequence=sequence,
                )
        logger.info("Attachment %s removed from claim %s", attachment_id, claim_id)

    async def list_attachments(self, claim_id: str) -> Sequence[Attachment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimAttachmentTable)
                .where(ClaimAttachmentTable.claim_id == claim_id)
                .order_by(ClaimAttachmentTable.created_at.asc())
            )
            return [self._to_attachment(row) for row in result.scalars().all()]

    async def add_part(
        self,
        claim_id: str,
        *,
        part_name: str,
        actor: str,
        part_number: str | None = None,
        quantity: int = 1,
        unit_price: Decimal | None = None,
    ) -> Part:
        if not part_name.strip():
            raise ClaimValidationError("A part needs a name")
        price = self._validate_part_values(quantity, unit_price)

        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "adding parts")
                row = ClaimPartTable(
                    id=str(uuid.uuid4()),
                    claim_id=claim_id,
                    part_number=part_number,
                    part_name=part_name,
                    quantity=quantity,
                    unit_price=price,
                    status=PartStateMachine.initial_state().value,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.PART_ADDED,
                    description=f"Part {part_name} x{quantity} requested",
                    actor=actor,
                    metadata={"part_id": row.id, "quantity": quantity, "unit_price": _money(price)},
                    sequence=sequence,
                    created_at=now,
                )
                part = self._to_part(row)
        logger.info("Part %s added to claim %s", part.id, claim_id)
        return part

    async def update_part(
        self,
        claim_id: str,
        part_id: str,
        *,
        actor: str,
        part_name: str | None = None,
        part_number: str | None = None,
        quantity: int | None = None,
        unit_price: Decimal | None = None,
    ) -> Part:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "changing parts")
                row = await self._get_part_row(session, claim_id, part_id)
                price = self._validate_part_values(
                    quantity if quantity is not None else row.quantity,
                    unit_price,
                )
                changes: dict[str, Any] = {}
                if part_name is not None and part_name.strip():
                    changes["part_name"] = part_name
                if part_number is not None:
                    changes["part_number"] = part_number
                if quantity is not None:
                    changes["quantity"] = quantity
                if price is not None:
                    changes["unit_price"] = price
                for name, value in changes.items():
                    setattr(row, name, value)
                row.updated_at = now
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.PART_UPDATED,
                    description=f"Part {row.part_name} updated",
                    actor=actor,
                    metadata={"part_id": part_id, "fields": sorted(changes)},
                    sequence=sequence,
                    created_at=now,
                )
                part = self._to_part(row)
        return part

    async def update_part_status(self, claim_id: str, part_id: str, *, status: PartStatus, actor: str) -> Part:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "changing part status")
                row = await self._get_part_row(session, claim_id, part_id)
                current = PartStatus(row.status)
                PartStateMachine.assert_transition(current, status)
                row.status = status.value
                row.updated_at = now
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.PART_STATUS_CHANGED,
                    description=f"Part {row.part_name}: {current.value} -> {status.value}",
                    actor=actor,
                    metadata={"part_id": part_id, "from_status": current.value, "to_status": status.value},
                    sequence=sequence,
                    created_at=now,
                )
                part = self._to_part(row)
        logger.info("Part %s on claim %s moved %s -> %s", part_id, claim_id, current.value, status.value)
        return part

    async def remove_part(self, claim_id: str, part_id: str, *, actor: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                sequence = await self._guard(session, claim_id, "removing parts")
                row = await self._get_part_row(session, claim_id, part_id)
                part_name = row.part_name
                await session.delete(row)
                await self._timeline.append(
                    session,
                    claim_id=claim_id,
                    event_type=TimelineEvent.PART_REMOVED,
                    description=f"Part {part_name} removed",
                    actor=actor,
                    metadata={"part_id": part_id},
                    sequence=sequence,
                )

    async def list_parts(self, claim_id: str) -> Sequence[Part]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimPartTable)
                .where(ClaimPartTable.claim_id == claim_id)
                .order_by(ClaimPartTable.created_at.asc())
            )
            return [self._to_part(row) for row in result.scalars().all()]

    async def _guard(
        self,
        session: AsyncSession,
        claim_id: str,
        operation: str,
        *,
        allow_sealed: bool = False,
    ) -> int:
        # Reserving the sequence write-locks the claim row before status is read.
        sequence = await self._timeline.reserve_sequence(session, claim_id)
        result = await session.execute(
            select(ClaimTable.claim_number, ClaimTable.status, ClaimTable.sealed_at).where(ClaimTable.id == claim_id)
        )
        found = result.first()
        if found is None:  # pragma: no cover - reserve_sequence already checked existence
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        claim_number, status, sealed_at = found
        sealed = sealed_at is not None or ClaimStatus(status) in SEALED_STATUSES
        if sealed and not allow_sealed:
            raise ClaimSealedError(claim_number, operation, status=ClaimStatus(status))
        return sequence

    @staticmethod
    async def _get_attachment_row(session: AsyncSession, claim_id: str, attachment_id: str) -> ClaimAttachmentTable:
        row = await session.get(ClaimAttachmentTable, attachment_id)
        if row is None or row.claim_id != claim_id:
            raise AttachmentNotFoundError(f"Attachment {attachment_id} not found on claim {claim_id}")
        return row

    @staticmethod
    async def _get_part_row(session: AsyncSession, claim_id: str, part_id: str) -> ClaimPartTable:
        row = await session.get(ClaimPartTable, part_id)
        if row is None or row.claim_id != claim_id:
            raise PartNotFoundError(f"Part {part_id} not found on claim {claim_id}")
        return row

    @staticmethod
    def _validate_part_values(quantity: int, unit_price: Any) -> Decimal | None:
        if quantity < 1:
            raise ClaimValidationError("Part quantity must be at least 1")
        price = normalize_amount(unit_price)
        if price is not None and price < 0:
            raise ClaimValidationError("Unit price must not be negative")
        return price

    @staticmethod
    def _to_attachment(row: ClaimAttachmentTable) -> Attachment:
        return Attachment(
            id=row.id,
            claim_id=row.claim_id,
            file_name=row.file_name,
            file_type=row.file_type,
            file_size=row.file_size,
            file_url=row.file_url,
            thumbnail_url=row.thumbnail_url,
            kind=AttachmentKind(row.kind),
            uploaded_by=row.uploaded_by,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _to_part(row: ClaimPartTable) -> Part:
        return Part(
            id=row.id,
            claim_id=row.claim_id,
            part_number=row.part_number,
            part_name=row.part_name,
            quantity=row.quantity,
            unit_price=row.unit_price,
            status=PartStatus(row.status),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )


def _money(value: Decimal | None) -> str | None:
    return f"{value:.2f}" if value is not None else None
