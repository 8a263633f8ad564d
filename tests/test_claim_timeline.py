from __future__ import annotations

import asyncio

import pytest

from apps.api.claims import ClaimNotFoundError, ClaimStatus, TimelineEvent, TimelineRecorder


@pytest.mark.asyncio
async def test_record_returns_next_sequence(session_factory, new_claim):
    recorder = TimelineRecorder(session_factory)

    first = await recorder.record(new_claim.id, TimelineEvent.NOTE, "Customer called", actor="alice")
    second = await recorder.record(new_claim.id, "note", "Supplier called back", {"channel": "phone"}, actor="bob")

    assert (first, second) == (2, 3)
    entries = await recorder.list_entries(new_claim.id)
    assert [entry.sequence for entry in entries] == [1, 2, 3]
    assert entries[-1].metadata == {"channel": "phone"}
    assert entries[-1].actor == "bob"


@pytest.mark.asyncio
async def test_record_for_unknown_claim_fails(session_factory):
    recorder = TimelineRecorder(session_factory)
    with pytest.raises(ClaimNotFoundError):
        await recorder.record("missing", TimelineEvent.NOTE, "orphan", actor="alice")


@pytest.mark.asyncio
async def test_concurrent_appends_get_distinct_sequences(session_factory, new_claim):
    recorder = TimelineRecorder(session_factory)
    sequences = await asyncio.gather(
        *(recorder.record(new_claim.id, TimelineEvent.NOTE, f"note {index}", actor="alice") for index in range(6))
    )
    assert sorted(sequences) == [2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_replay_is_lazy_ordered_and_restartable(service, session_factory, new_claim):
    await service.transition(new_claim.id, ClaimStatus.IN_REVIEW, actor="handler")
    for index in range(3):
        await service.add_note(new_claim.id, f"note {index}", actor="alice")

    replay = TimelineRecorder(session_factory, replay_batch_size=2).replay(new_claim.id)

    first_pass = [entry.sequence async for entry in replay]
    second_pass = [entry.event_type async for entry in replay]

    assert first_pass == [1, 2, 3, 4, 5]
    assert second_pass == ["created", "status_changed", "note", "note", "note"]


@pytest.mark.asyncio
async def test_service_replay_checks_claim(service, new_claim):
    with pytest.raises(ClaimNotFoundError):
        await service.replay_timeline("missing")

    replay = await service.replay_timeline(new_claim.id)
    entries = [entry async for entry in replay]
    assert [entry.event_type for entry in entries] == ["created"]
