from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from apps.api.claims import ClaimNumberSequence, generate_portal_code
from apps.api.claims.numbering import PORTAL_CODE_ALPHABET, claim_number_prefix


def test_prefix_uses_short_code_and_month():
    now = datetime(2026, 3, 5, tzinfo=timezone.utc)
    assert claim_number_prefix("elx", now) == "ELX-2603"
    assert claim_number_prefix("", now) == "UNK-2603"
    assert claim_number_prefix("--", now, fallback="GEN") == "GEN-2603"


def test_portal_codes_avoid_ambiguous_characters():
    code = generate_portal_code()
    assert len(code) == 6
    assert set(code) <= set(PORTAL_CODE_ALPHABET)
    assert not set("01IO") & set(PORTAL_CODE_ALPHABET)


@pytest.mark.asyncio
async def test_sequence_restarts_per_prefix(session_factory):
    numbers = ClaimNumberSequence(session_factory)
    october = datetime(2026, 10, 1, tzinfo=timezone.utc)
    november = datetime(2026, 11, 1, tzinfo=timezone.utc)

    assert await numbers.next_number("ELX", now=october) == "ELX-2610-0001"
    assert await numbers.next_number("ELX", now=october) == "ELX-2610-0002"
    assert await numbers.next_number("RAT", now=october) == "RAT-2610-0001"
    assert await numbers.next_number("ELX", now=november) == "ELX-2611-0001"


@pytest.mark.asyncio
async def test_concurrent_numbers_are_unique(session_factory):
    numbers = ClaimNumberSequence(session_factory)
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    issued = await asyncio.gather(*(numbers.next_number("ELX", now=now) for _ in range(8)))
    assert sorted(issued) == [f"ELX-2610-{value:04d}" for value in range(1, 9)]
