from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import ClaimNumberSequenceTable

logger = logging.getLogger(__name__)

PORTAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PORTAL_CODE_LENGTH = 6

_SHORT_CODE_RE = re.compile(r"[^A-Z0-9]")


def generate_portal_code(length: int = PORTAL_CODE_LENGTH) -> str:
    """Return a random supplier portal code without ambiguous characters."""

    return "".join(secrets.choice(PORTAL_CODE_ALPHABET) for _ in range(length))


def claim_number_prefix(short_code: str, now: datetime, *, fallback: str = "UNK") -> str:
    code = _SHORT_CODE_RE.sub("", (short_code or "").upper()) or fallback
    return f"{code}-{now:%y%m}"


class ClaimNumberSequence:
    """Issue unique, human-readable claim numbers.

    Numbers look like ``ELX-2610-0001``: supplier short code, year and month,
    and a counter per prefix. The counter lives in its own table and is bumped in
    a dedicated transaction so a number is never handed out twice, even if the
    claim insert that follows is rolled back (numbers are never reused).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        fallback_code: str = "UNK",
        max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._fallback_code = fallback_code
        self._max_attempts = max(1, max_attempts)

    async def next_number(self, short_code: str, *, now: datetime | None = None) -> str:
        prefix = claim_number_prefix(short_code, now or datetime.now(timezone.utc), fallback=self._fallback_code)
        for attempt in range(1, self._max_attempts + 1):
            try:
                value = await self._increment(prefix)
            except IntegrityError:
                # Another writer created the prefix row first; the next attempt updates it.
                logger.debug("Claim number prefix %s created concurrently (attempt %d)", prefix, attempt)
                continue
            return f"{prefix}-{value:04d}"
        raise RuntimeError(f"Could not allocate a claim number for prefix {prefix}")

    async def _increment(self, prefix: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ClaimNumberSequenceTable)
                    .where(ClaimNumberSequenceTable.prefix == prefix)
                    .values(last_value=ClaimNumberSequenceTable.last_value + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    session.add(ClaimNumberSequenceTable(prefix=prefix, last_value=1))
                    await session.flush()
                    return 1
                value = await session.scalar(
                    select(ClaimNumberSequenceTable.last_value).where(ClaimNumberSequenceTable.prefix == prefix)
                )
                return int(value)
