"""Append-only claim timeline.

Entries are never edited or deleted; corrections are recorded as new entries.
Sequence numbers are drawn from a counter on the claim row, so every writer that
appends an entry also takes the claim row's write lock for the rest of its
transaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import ClaimTable, ClaimTimelineTable

from .errors import ClaimNotFoundError
from .models import TimelineEntry


class TimelineEvent(str, Enum):
    """Event types written to the claim timeline."""

    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    RESOLUTION_SEALED = "resolution_sealed"
    SUPPLIER_RESPONSE = "supplier_response"
    CANCELLED = "cancelled"
    UPDATED = "updated"
    CREDIT_UPDATED = "credit_updated"
    NOTE = "note"
    ATTACHMENT_ADDED = "attachment_added"
    ATTACHMENT_UPDATED = "attachment_updated"
    ATTACHMENT_REMOVED = "attachment_removed"
    PART_ADDED = "part_added"
    PART_UPDATED = "part_updated"
    PART_STATUS_CHANGED = "part_status_changed"
    PART_REMOVED = "part_removed"


class TimelineReplay:
    """Lazy, restartable stream of a claim's timeline.

    Each ``async for`` starts from the first entry and pages through the log in
    ``(created_at, sequence)`` order, so the same object can be replayed any
    number of times (e.g. for audit export).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        claim_id: str,
        *,
        batch_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._claim_id = claim_id
        self._batch_size = max(1, batch_size)

    def __aiter__(self) -> AsyncIterator[TimelineEntry]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[TimelineEntry]:
        last: tuple[datetime, int] | None = None
        while True:
            statement = select(ClaimTimelineTable).where(ClaimTimelineTable.claim_id == self._claim_id)
            if last is not None:
                created_at, sequence = last
                statement = statement.where(
                    or_(
                        ClaimTimelineTable.created_at > created_at,
                        and_(
                            ClaimTimelineTable.created_at == created_at,
                            ClaimTimelineTable.sequence > sequence,
                        ),
                    )
                )
            statement = statement.order_by(
                ClaimTimelineTable.created_at.asc(), ClaimTimelineTable.sequence.asc()
            ).limit(self._batch_size)

            async with self._session_factory() as session:
                result = await session.execute(statement)
                rows = list(result.scalars().all())

            for row in rows:
                yield TimelineRecorder.to_entry(row)
            if len(rows) < self._batch_size:
                return
            last = (rows[-1].created_at, rows[-1].sequence)


class TimelineRecorder:
    """Writes and reads the per-claim audit timeline."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        replay_batch_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._replay_batch_size = replay_batch_size

    async def reserve_sequence(self, session: AsyncSession, claim_id: str) -> int:
        """Atomically bump the claim's timeline counter and return the new value.

        Raises :class:`ClaimNotFoundError` when the claim does not exist.
        """

        result = await session.execute(
            update(ClaimTable)
            .where(ClaimTable.id == claim_id)
            .values(timeline_seq=ClaimTable.timeline_seq + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        sequence = await session.scalar(select(ClaimTable.timeline_seq).where(ClaimTable.id == claim_id))
        return int(sequence)

    async def append(
        self,
        session: AsyncSession,
        *,
        claim_id: str,
        event_type: TimelineEvent | str,
        description: str,
        actor: str,
        metadata: Mapping[str, Any] | None = None,
        sequence: int | None = None,
        created_at: datetime | None = None,
    ) -> TimelineEntry:
        """Append an entry inside the caller's transaction."""

        if sequence is None:
            sequence = await self.reserve_sequence(session, claim_id)
        row = ClaimTimelineTable(
            id=str(uuid.uuid4()),
            claim_id=claim_id,
            sequence=sequence,
            event_type=event_type.value if isinstance(event_type, TimelineEvent) else str(event_type),
            description=description,
            actor=actor,
            metadata_=dict(metadata or {}),
            created_at=created_at or datetime.now(timezone.utc),
        )
        session.add(row)
        await session.flush()
        return self.to_entry(row)

    async def record(
        self,
        claim_id: str,
        event_type: TimelineEvent | str,
        description: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        actor: str,
    ) -> int:
        """Append an entry in its own transaction and return its sequence position."""

        async with self._session_factory() as session:
            async with session.begin():
                entry = await self.append(
                    session,
                    claim_id=claim_id,
                    event_type=event_type,
                    description=description,
                    actor=actor,
                    metadata=metadata,
                )
        return entry.sequence

    async def list_entries(self, claim_id: str) -> list[TimelineEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ClaimTimelineTable)
                .where(ClaimTimelineTable.claim_id == claim_id)
                .order_by(ClaimTimelineTable.created_at.asc(), ClaimTimelineTable.sequence.asc())
            )
            return [self.to_entry(row) for row in result.scalars().all()]

    def replay(self, claim_id: str) -> TimelineReplay:
        return TimelineReplay(self._session_factory, claim_id, batch_size=self._replay_batch_size)

    @staticmethod
    def to_entry(row: ClaimTimelineTable) -> TimelineEntry:
        return TimelineEntry(
            id=row.id,
            claim_id=row.claim_id,
            sequence=row.sequence,
            event_type=row.event_type,
            description=row.description,
            actor=row.actor,
            metadata=dict(row.metadata_ or {}),
            created_at=ensure_datetime(row.created_at),
        )


def ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
