from __future__ import annotations

from decimal import Decimal

import pytest

from apps.api.claims import (
    AttachmentKind,
    AttachmentNotFoundError,
    ClaimNotFoundError,
    ClaimSealedError,
    ClaimStatus,
    ClaimValidationError,
    InvalidTransitionError,
    PartNotFoundError,
    PartStatus,
    TransitionPayload,
)


async def _resolve(service, claim, walk_to):
    claim = await walk_to(service, claim, ClaimStatus.AWAITING_RESPONSE)
    claim = await service.transition(
        claim.id,
        ClaimStatus.APPROVED,
        TransitionPayload(resolution="Approved", credit_amount=Decimal("200")),
        actor="handler",
    )
    return await service.transition(claim.id, ClaimStatus.RESOLVED, actor="handler")


@pytest.mark.asyncio
async def test_attachment_lifecycle_is_recorded(service, new_claim):
    ledger = service.ledger
    attachment = await ledger.add_attachment(
        new_claim.id,
        file_name="nameplate.jpg",
        file_url="https://blobs.example/claims/nameplate.jpg",
        file_type="image/jpeg",
        file_size=2048,
        actor="alice",
    )
    assert attachment.kind == AttachmentKind.EVIDENCE
    assert attachment.uploaded_by == "alice"

    renamed = await ledger.update_attachment(new_claim.id, attachment.id, actor="alice", file_name="plate.jpg")
    assert renamed.file_name == "plate.jpg"

    await ledger.remove_attachment(new_claim.id, attachment.id, actor="alice")
    assert await ledger.list_attachments(new_claim.id) == []

    timeline = await service.get_timeline(new_claim.id)
    assert [entry.event_type for entry in timeline] == [
        "created",
        "attachment_added",
        "attachment_updated",
        "attachment_removed",
    ]
    assert timeline[-1].metadata["file_url"] == "https://blobs.example/claims/nameplate.jpg"

    claim = await service.get_claim(new_claim.id)
    assert claim.version == 1


@pytest.mark.asyncio
async def test_attachment_validation_and_lookup(service, new_claim):
    ledger = service.ledger
    with pytest.raises(ClaimValidationError):
        await ledger.add_attachment(new_claim.id, file_name=" ", file_url="https://x", actor="alice")
    with pytest.raises(ClaimNotFoundError):
        await ledger.add_attachment("missing", file_name="a.pdf", file_url="https://x/a.pdf", actor="alice")
    with pytest.raises(AttachmentNotFoundError):
        await ledger.remove_attachment(new_claim.id, "missing", actor="alice")


@pytest.mark.asyncio
async def test_sealed_claim_only_accepts_supplementary_documents(service, new_claim, walk_to):
    ledger = service.ledger
    evidence = await ledger.add_attachment(
        new_claim.id, file_name="photo.jpg", file_url="https://x/photo.jpg", actor="alice"
    )
    claim = await _resolve(service, new_claim, walk_to)

    with pytest.raises(ClaimSealedError):
        await ledger.add_attachment(claim.id, file_name="late.jpg", file_url="https://x/late.jpg", actor="alice")
    with pytest.raises(ClaimSealedError):
        await ledger.remove_attachment(claim.id, evidence.id, actor="alice")
    with pytest.raises(ClaimSealedError):
        await ledger.update_attachment(claim.id, evidence.id, actor="alice", file_name="renamed.jpg")

    credit_note = await ledger.add_attachment(
        claim.id,
        file_name="credit-note.pdf",
        file_url="https://x/credit-note.pdf",
        kind=AttachmentKind.SUPPLEMENTARY,
        actor="alice",
    )
    assert credit_note.kind == AttachmentKind.SUPPLEMENTARY
    names = [item.file_name for item in await ledger.list_attachments(claim.id)]
    assert names == ["photo.jpg", "credit-note.pdf"]


@pytest.mark.asyncio
async def test_parts_follow_their_own_state_machine(service, new_claim):
    ledger = service.ledger
    part = await ledger.add_part(
        new_claim.id, part_name="Heating element", part_number="0S1234", quantity=2, unit_price="149.5", actor="bob"
    )
    assert part.status == PartStatus.PENDING
    assert part.unit_price == Decimal("149.50")
    assert part.total_price == Decimal("299.00")

    part = await ledger.update_part_status(new_claim.id, part.id, status=PartStatus.ORDERED, actor="bob")
    assert part.status == PartStatus.ORDERED

    with pytest.raises(InvalidTransitionError):
        await ledger.update_part_status(new_claim.id, part.id, status=PartStatus.INSTALLED, actor="bob")

    part = await ledger.update_part(new_claim.id, part.id, quantity=3, actor="bob")
    assert part.quantity == 3
    assert part.unit_price == Decimal("149.50")

    claim = await service.get_claim(new_claim.id)
    assert claim.status == ClaimStatus.NEW

    timeline = await service.get_timeline(new_claim.id)
    assert [entry.event_type for entry in timeline][1:] == ["part_added", "part_status_changed", "part_updated"]
    assert timeline[2].metadata["to_status"] == "ordered"


@pytest.mark.asyncio
async def test_part_validation(service, new_claim):
    ledger = service.ledger
    with pytest.raises(ClaimValidationError):
        await ledger.add_part(new_claim.id, part_name="Fan", quantity=0, actor="bob")
    with pytest.raises(ClaimValidationError):
        await ledger.add_part(new_claim.id, part_name="Fan", unit_price=Decimal("-1"), actor="bob")
    with pytest.raises(PartNotFoundError):
        await ledger.update_part_status(new_claim.id, "missing", status=PartStatus.ORDERED, actor="bob")


@pytest.mark.asyncio
async def test_parts_are_frozen_once_sealed(service, new_claim, walk_to):
    ledger = service.ledger
    part = await ledger.add_part(new_claim.id, part_name="Door gasket", actor="bob")
    claim = await _resolve(service, new_claim, walk_to)

    with pytest.raises(ClaimSealedError):
        await ledger.add_part(claim.id, part_name="Fan", actor="bob")
    with pytest.raises(ClaimSealedError):
        await ledger.update_part_status(claim.id, part.id, status=PartStatus.ORDERED, actor="bob")
    with pytest.raises(ClaimSealedError):
        await ledger.remove_part(claim.id, part.id, actor="bob")

    parts = await ledger.list_parts(claim.id)
    assert [item.status for item in parts] == [PartStatus.PENDING]
