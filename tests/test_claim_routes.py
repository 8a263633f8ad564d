from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from apps.api.claims import (
    Attachment,
    AttachmentKind,
    ClaimNotFoundError,
    ClaimSealedError,
    ClaimStats,
    ClaimStatus,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingSupplierError,
    Part,
    PartStatus,
    TimelineEntry,
)
from apps.api.dependencies import claims as claim_deps
from apps.api.dependencies.auth import Role, User
from apps.api.main import create_app


@pytest.fixture
def claim_client():
    app = create_app()
    service = AsyncMock()
    service.ledger = AsyncMock()

    handler = User("handler", (Role.HANDLER, Role.VIEWER))
    viewer = User("viewer", (Role.VIEWER,))

    async def override_service():
        return service

    app.dependency_overrides[claim_deps.get_claim_service] = override_service
    app.dependency_overrides[claim_deps.require_handler] = lambda: handler
    app.dependency_overrides[claim_deps.require_viewer] = lambda: viewer

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_create_claim_returns_created(claim_client, make_claim):
    client, service = claim_client
    claim = make_claim()
    service.create_claim = AsyncMock(return_value=claim)

    response = client.post(
        "/claims",
        json={"supplier_id": "supplier-1", "product": {"name": "Combi steamer"}, "priority": "high"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["claim_number"] == "ELX-2610-0001"
    assert body["supplier_short_code"] == "ELX"
    assert body["sealed"] is False
    kwargs = service.create_claim.await_args.kwargs
    assert kwargs["actor"] == "handler"
    assert kwargs["product"].name == "Combi steamer"
    assert kwargs["priority"].value == "high"


def test_create_claim_with_unknown_supplier_is_unprocessable(claim_client):
    client, service = claim_client
    service.create_claim = AsyncMock(side_effect=MissingSupplierError("missing"))

    response = client.post("/claims", json={"supplier_id": "missing"})

    assert response.status_code == 422
    assert response.json()["detail"]["invariant"] == "supplier_required"


def test_list_claims_builds_filters(claim_client, make_claim):
    client, service = claim_client
    service.list_claims = AsyncMock(return_value=[make_claim(status=ClaimStatus.IN_REVIEW)])

    response = client.get(
        "/claims",
        params={"status": "in_review", "search": "steamer", "limit": 5, "sort_by": "claim_number", "sort_order": "asc"},
    )

    assert response.status_code == 200
    assert response.json()[0]["status"] == "in_review"
    filters = service.list_claims.await_args.args[0]
    assert filters.status == ClaimStatus.IN_REVIEW
    assert filters.search == "steamer"
    assert filters.limit == 5
    assert filters.sort_by == "claim_number"


def test_list_claims_caps_page_size(claim_client):
    client, _ = claim_client
    response = client.get("/claims", params={"limit": 500})
    assert response.status_code == 422


def test_stats_endpoint(claim_client):
    client, service = claim_client
    service.get_stats = AsyncMock(return_value=ClaimStats(counts={"new": 2, "closed": 1}, total=3))

    response = client.get("/claims/stats")

    assert response.status_code == 200
    assert response.json() == {"counts": {"new": 2, "closed": 1}, "total": 3}


def test_transition_conflicts_map_to_409(claim_client):
    client, service = claim_client
    service.transition = AsyncMock(
        side_effect=InvalidTransitionError(ClaimStatus.NEW, ClaimStatus.CLOSED, "allowed targets are: in_review")
    )
    response = client.post("/claims/claim-1/transitions", json={"status": "closed"})
    assert response.status_code == 409
    assert "new -> closed" in response.json()["detail"]["message"]

    service.transition = AsyncMock(side_effect=ConcurrentModificationError("claim-1", expected_version=3))
    response = client.post("/claims/claim-1/transitions", json={"status": "approved", "expected_version": 3})
    assert response.status_code == 409
    assert response.json()["detail"]["invariant"] == "single_writer"


def test_transition_passes_payload_and_version(claim_client, make_claim):
    client, service = claim_client
    service.transition = AsyncMock(
        return_value=make_claim(status=ClaimStatus.APPROVED, credit_amount=Decimal("1250.00"), version=5)
    )

    response = client.post(
        "/claims/claim-1/transitions",
        json={
            "status": "approved",
            "resolution": "Full credit",
            "credit_amount": "1250",
            "expected_version": 4,
        },
    )

    assert response.status_code == 200
    assert Decimal(response.json()["credit_amount"]) == Decimal("1250.00")
    args = service.transition.await_args
    assert args.args[1] == ClaimStatus.APPROVED
    assert args.args[2].resolution == "Full credit"
    assert args.args[2].credit_amount == Decimal("1250")
    assert args.kwargs == {"actor": "handler", "expected_version": 4}


def test_sealed_credit_update_maps_to_412(claim_client):
    client, service = claim_client
    service.update_credit = AsyncMock(side_effect=ClaimSealedError("ELX-2610-0001", "changing credit fields"))

    response = client.put("/claims/claim-1/credit", json={"credit_amount": "10"})

    assert response.status_code == 412
    assert response.json()["detail"]["invariant"] == "financial_seal"


def test_update_claim_only_forwards_provided_fields(claim_client, make_claim):
    client, service = claim_client
    service.update_claim = AsyncMock(return_value=make_claim(internal_notes="Called"))

    response = client.patch("/claims/claim-1", json={"internal_notes": "Called", "expected_version": 2})

    assert response.status_code == 200
    service.update_claim.assert_awaited_with(
        "claim-1", actor="handler", expected_version=2, internal_notes="Called"
    )


def test_get_missing_claim_returns_404(claim_client):
    client, service = claim_client
    service.get_claim = AsyncMock(side_effect=ClaimNotFoundError("Claim x not found"))
    assert client.get("/claims/x").status_code == 404


def test_portal_view_hides_customer_data(claim_client, make_claim):
    client, service = claim_client
    service.get_claim_by_portal_code = AsyncMock(return_value=make_claim(internal_notes="secret"))
    service.ledger.list_attachments = AsyncMock(return_value=[_attachment()])

    response = client.get("/claims/portal/abc234")

    assert response.status_code == 200
    body = response.json()
    assert body["claim_number"] == "ELX-2610-0001"
    assert "internal_notes" not in body
    assert "customer" not in body
    assert body["has_responded"] is False
    assert body["attachments"] == [
        {
            "id": "att-1",
            "file_name": "nameplate.jpg",
            "file_url": "https://files.example/nameplate.jpg",
            "file_type": "image/jpeg",
        }
    ]
    service.get_claim_by_portal_code.assert_awaited_with("abc234")


def test_timeline_endpoint_returns_entries(claim_client):
    client, service = claim_client
    entry = TimelineEntry(
        id="entry-1",
        claim_id="claim-1",
        sequence=1,
        event_type="created",
        description="Claim ELX-2610-0001 created",
        actor="handler",
        metadata={"claim_number": "ELX-2610-0001"},
        created_at=datetime.now(timezone.utc),
    )
    service.get_timeline = AsyncMock(return_value=[entry])

    response = client.get("/claims/claim-1/timeline")

    assert response.status_code == 200
    assert response.json()[0]["event_type"] == "created"
    assert response.json()[0]["sequence"] == 1


def test_part_status_change_uses_ledger(claim_client):
    client, service = claim_client
    now = datetime.now(timezone.utc)
    part = Part(
        id="part-1",
        claim_id="claim-1",
        part_number="0S1234",
        part_name="Heating element",
        quantity=2,
        unit_price=Decimal("149.50"),
        status=PartStatus.ORDERED,
        created_at=now,
        updated_at=now,
    )
    service.ledger.update_part_status = AsyncMock(return_value=part)

    response = client.post("/claims/claim-1/parts/part-1/status", json={"status": "ordered"})

    assert response.status_code == 200
    assert Decimal(response.json()["total_price"]) == Decimal("299.00")
    service.ledger.update_part_status.assert_awaited_with(
        "claim-1", "part-1", status=PartStatus.ORDERED, actor="handler"
    )


def test_sealed_part_write_maps_to_412(claim_client):
    client, service = claim_client
    service.ledger.add_part = AsyncMock(side_effect=ClaimSealedError("ELX-2610-0001", "adding parts"))

    response = client.post("/claims/claim-1/parts", json={"part_name": "Fan"})

    assert response.status_code == 412


def test_claim_routes_require_authentication():
    app = create_app()
    service = MagicMock()

    async def override_service():
        return service

    app.dependency_overrides[claim_deps.get_claim_service] = override_service
    client = TestClient(app)

    assert client.get("/claims").status_code == 401
    assert client.get("/claims", headers={"Authorization": "Bearer nope"}).status_code == 401
    response = client.post(
        "/claims", json={"supplier_id": "s"}, headers={"Authorization": "Bearer viewer-token"}
    )
    assert response.status_code == 403


def test_service_unavailable_without_database():
    client = TestClient(create_app())
    response = client.get("/claims/stats", headers={"Authorization": "Bearer viewer-token"})
    assert response.status_code == 503


def _attachment() -> Attachment:
    now = datetime.now(timezone.utc)
    return Attachment(
        id="att-1",
        claim_id="claim-1",
        file_name="nameplate.jpg",
        file_type="image/jpeg",
        file_size=2048,
        file_url="https://files.example/nameplate.jpg",
        thumbnail_url=None,
        kind=AttachmentKind.EVIDENCE,
        uploaded_by="handler",
        created_at=now,
        updated_at=now,
    )


def test_portal_response_is_public_and_forwards_decision(claim_client, make_claim):
    client, service = claim_client
    responded = make_claim(
        status=ClaimStatus.APPROVED,
        resolution="Credit note issued",
        credit_amount=Decimal("800.00"),
        supplier_responded_at=datetime.now(timezone.utc),
    )
    service.respond_via_portal = AsyncMock(return_value=responded)
    service.ledger.list_attachments = AsyncMock(return_value=[])

    response = client.post(
        "/claims/portal/abc234/response",
        json={"response": "approved", "message": "Credit note issued", "credit_amount": "800"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "approved"
    assert body["has_responded"] is True
    args = service.respond_via_portal.await_args
    assert args.args == ("abc234", ClaimStatus.APPROVED)
    assert args.kwargs["message"] == "Credit note issued"
    assert args.kwargs["credit_amount"] == Decimal("800")


def test_second_portal_response_conflicts(claim_client):
    client, service = claim_client
    service.respond_via_portal = AsyncMock(
        side_effect=InvalidTransitionError(
            ClaimStatus.APPROVED,
            ClaimStatus.REJECTED,
            "the supplier has already responded",
            invariant="single_supplier_response",
        )
    )

    response = client.post("/claims/portal/abc234/response", json={"response": "rejected", "message": "No"})

    assert response.status_code == 409
    assert response.json()["detail"]["invariant"] == "single_supplier_response"


def test_portal_response_rejects_unknown_decision(claim_client):
    client, _ = claim_client
    response = client.post("/claims/portal/abc234/response", json={"response": "closed", "message": "Done"})
    assert response.status_code == 422
