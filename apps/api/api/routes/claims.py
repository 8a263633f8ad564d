from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Sequence

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from apps.api.claims import (
    Attachment,
    AttachmentKind,
    AttachmentNotFoundError,
    Claim,
    ClaimCategory,
    ClaimFilters,
    ClaimNotFoundError,
    ClaimPriority,
    ClaimSealedError,
    ClaimServiceError,
    ClaimStatus,
    ClaimValidationError,
    ConcurrentModificationError,
    CustomerSnapshot,
    InvalidTransitionError,
    Part,
    PartNotFoundError,
    PartStatus,
    ProductSnapshot,
    ReferenceNotFoundError,
    TimelineEntry,
    TransitionPayload,
)
from apps.api.dependencies.claims import ClaimServiceDep, HandlerUser, ViewerUser

router = APIRouter(prefix="/claims", tags=["claims"])

_STATUS_CODES: tuple[tuple[type[ClaimServiceError], int], ...] = (
    (ClaimNotFoundError, status.HTTP_404_NOT_FOUND),
    (AttachmentNotFoundError, status.HTTP_404_NOT_FOUND),
    (PartNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT),
    (ClaimSealedError, status.HTTP_412_PRECONDITION_FAILED),
    (ReferenceNotFoundError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ClaimValidationError, status.HTTP_400_BAD_REQUEST),
)


def _http_error(exc: ClaimServiceError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail={"message": str(exc), "invariant": exc.invariant})
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(exc), "invariant": exc.invariant})


class ProductSnapshotModel(BaseModel):
    name: str | None = None
    model_number: str | None = None


class CustomerSnapshotModel(BaseModel):
    company_name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None


class ClaimModel(BaseModel):
    id: str
    claim_number: str
    status: ClaimStatus
    priority: ClaimPriority
    category: ClaimCategory | None = None
    supplier_id: str
    supplier_name: str
    supplier_short_code: str
    supplier_claim_number: str | None = None
    supplier_portal_code: str
    product_id: str | None = None
    product: ProductSnapshotModel
    serial_number: str | None = None
    purchase_date: datetime | None = None
    invoice_number: str | None = None
    customer_id: str | None = None
    customer: CustomerSnapshotModel
    problem_description: str | None = None
    internal_notes: str | None = None
    assigned_to: str | None = None
    resolution: str | None = None
    resolution_type: str | None = None
    credit_amount: Decimal | None = None
    credit_currency: str | None = None
    credit_reference: str | None = None
    sealed: bool
    sealed_at: datetime | None = None
    cancellation_reason: str | None = None
    submitted_at: datetime | None = None
    supplier_responded_at: datetime | None = None
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_by: str
    updated_by: str
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, claim: Claim) -> "ClaimModel":
        return cls(
            id=claim.id,
            claim_number=claim.claim_number,
            status=claim.status,
            priority=claim.priority,
            category=claim.category,
            supplier_id=claim.supplier_id,
            supplier_name=claim.supplier.name,
            supplier_short_code=claim.supplier.short_code,
            supplier_claim_number=claim.supplier_claim_number,
            supplier_portal_code=claim.supplier_portal_code,
            product_id=claim.product_id,
            product=ProductSnapshotModel(name=claim.product.name, model_number=claim.product.model_number),
            serial_number=claim.serial_number,
            purchase_date=claim.purchase_date,
            invoice_number=claim.invoice_number,
            customer_id=claim.customer_id,
            customer=CustomerSnapshotModel(
                company_name=claim.customer.company_name,
                contact_name=claim.customer.contact_name,
                email=claim.customer.email,
                phone=claim.customer.phone,
                address=claim.customer.address,
                postal_code=claim.customer.postal_code,
                city=claim.customer.city,
            ),
            problem_description=claim.problem_description,
            internal_notes=claim.internal_notes,
            assigned_to=claim.assigned_to,
            resolution=claim.resolution,
            resolution_type=claim.resolution_type,
            credit_amount=claim.credit_amount,
            credit_currency=claim.credit_currency,
            credit_reference=claim.credit_reference,
            sealed=claim.is_sealed,
            sealed_at=claim.sealed_at,
            cancellation_reason=claim.cancellation_reason,
            submitted_at=claim.submitted_at,
            supplier_responded_at=claim.supplier_responded_at,
            resolved_at=claim.resolved_at,
            closed_at=claim.closed_at,
            cancelled_at=claim.cancelled_at,
            created_by=claim.created_by,
            updated_by=claim.updated_by,
            version=claim.version,
            created_at=claim.created_at,
            updated_at=claim.updated_at,
        )


class PortalAttachmentModel(BaseModel):
    id: str
    file_name: str
    file_url: str
    file_type: str | None = None


class SupplierPortalClaimModel(BaseModel):
    """What a supplier sees through the portal code: no customer or internal data."""

    claim_number: str
    status: ClaimStatus
    supplier_name: str
    supplier_claim_number: str | None = None
    product: ProductSnapshotModel
    serial_number: str | None = None
    purchase_date: datetime | None = None
    problem_description: str | None = None
    resolution: str | None = None
    submitted_at: datetime | None = None
    created_at: datetime
    attachments: list[PortalAttachmentModel] = Field(default_factory=list)
    has_responded: bool = False

    @classmethod
    def from_entity(
        cls, claim: Claim, attachments: Sequence[Attachment] = ()
    ) -> "SupplierPortalClaimModel":
        return cls(
            claim_number=claim.claim_number,
            status=claim.status,
            supplier_name=claim.supplier.name,
            supplier_claim_number=claim.supplier_claim_number,
            product=ProductSnapshotModel(name=claim.product.name, model_number=claim.product.model_number),
            serial_number=claim.serial_number,
            purchase_date=claim.purchase_date,
            problem_description=claim.problem_description,
            resolution=claim.resolution,
            submitted_at=claim.submitted_at,
            created_at=claim.created_at,
            attachments=[
                PortalAttachmentModel(
                    id=attachment.id,
                    file_name=attachment.file_name,
                    file_url=attachment.file_url,
                    file_type=attachment.file_type,
                )
                for attachment in attachments
            ],
            has_responded=claim.supplier_responded_at is not None,
        )


class TimelineEntryModel(BaseModel):
    id: str
    sequence: int
    event_type: str
    description: str
    actor: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entity(cls, entry: TimelineEntry) -> "TimelineEntryModel":
        return cls(
            id=entry.id,
            sequence=entry.sequence,
            event_type=entry.event_type,
            description=entry.description,
            actor=entry.actor,
            metadata=dict(entry.metadata),
            created_at=entry.created_at,
        )


class AttachmentModel(BaseModel):
    id: str
    file_name: str
    file_type: str | None = None
    file_size: int | None = None
    file_url: str
    thumbnail_url: str | None = None
    kind: AttachmentKind
    uploaded_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, attachment: Attachment) -> "AttachmentModel":
        return cls(
            id=attachment.id,
            file_name=attachment.file_name,
            file_type=attachment.file_type,
            file_size=attachment.file_size,
            file_url=attachment.file_url,
            thumbnail_url=attachment.thumbnail_url,
            kind=attachment.kind,
            uploaded_by=attachment.uploaded_by,
            created_at=attachment.created_at,
            updated_at=attachment.updated_at,
        )


class PartModel(BaseModel):
    id: str
    part_number: str | None = None
    part_name: str
    quantity: int
    unit_price: Decimal | None = None
    total_price: Decimal | None = None
    status: PartStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, part: Part) -> "PartModel":
        return cls(
            id=part.id,
            part_number=part.part_number,
            part_name=part.part_name,
            quantity=part.quantity,
            unit_price=part.unit_price,
            total_price=part.total_price,
            status=part.status,
            created_at=part.created_at,
            updated_at=part.updated_at,
        )


class ClaimStatsModel(BaseModel):
    counts: dict[str, int]
    total: int


class ClaimCreateRequest(BaseModel):
    supplier_id: str
    product_id: str | None = None
    customer_id: str | None = None
    product: ProductSnapshotModel | None = None
    customer: CustomerSnapshotModel | None = None
    serial_number: str | None = None
    purchase_date: datetime | None = None
    invoice_number: str | None = None
    problem_description: str | None = None
    category: ClaimCategory | None = None
    priority: ClaimPriority = ClaimPriority.MEDIUM


class ClaimUpdateRequest(BaseModel):
    priority: ClaimPriority | None = None
    category: ClaimCategory | None = None
    problem_description: str | None = None
    internal_notes: str | None = None
    assigned_to: str | None = None
    serial_number: str | None = None
    invoice_number: str | None = None
    purchase_date: datetime | None = None
    product_name_text: str | None = None
    product_model_number: str | None = None
    expected_version: int | None = None


class CreditUpdateRequest(BaseModel):
    credit_amount: Decimal | None = None
    credit_currency: str | None = None
    credit_reference: str | None = None
    expected_version: int | None = None


class TransitionRequest(BaseModel):
    status: ClaimStatus
    note: str | None = None
    supplier_claim_number: str | None = None
    resolution: str | None = None
    resolution_type: str | None = None
    credit_amount: Decimal | None = None
    credit_currency: str | None = None
    credit_reference: str | None = None
    cancellation_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    expected_version: int | None = None


class PortalResponseRequest(BaseModel):
    response: Literal["approved", "partial", "rejected"]
    message: str = Field(min_length=1, max_length=2000)
    credit_amount: Decimal | None = Field(default=None, ge=0)
    credit_currency: str | None = None
    credit_reference: str | None = None


class NoteCreateRequest(BaseModel):
    description: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AttachmentCreateRequest(BaseModel):
    file_name: str
    file_url: str
    file_type: str | None = None
    file_size: int | None = None
    thumbnail_url: str | None = None
    kind: AttachmentKind = AttachmentKind.EVIDENCE


class AttachmentUpdateRequest(BaseModel):
    file_name: str | None = None
    file_type: str | None = None
    thumbnail_url: str | None = None


class PartCreateRequest(BaseModel):
    part_name: str
    part_number: str | None = None
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal | None = None


class PartUpdateRequest(BaseModel):
    part_name: str | None = None
    part_number: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    unit_price: Decimal | None = None


class PartStatusRequest(BaseModel):
    status: PartStatus


@router.post("", response_model=ClaimModel, status_code=status.HTTP_201_CREATED, summary="Register a claim")
async def create_claim(payload: ClaimCreateRequest, service: ClaimServiceDep, user: HandlerUser) -> ClaimModel:
    try:
        claim = await service.create_claim(
            supplier_id=payload.supplier_id,
            actor=user.username,
            product_id=payload.product_id,
            customer_id=payload.customer_id,
            product=ProductSnapshot(**payload.product.model_dump()) if payload.product else None,
            customer=CustomerSnapshot(**payload.customer.model_dump()) if payload.customer else None,
            serial_number=payload.serial_number,
            purchase_date=payload.purchase_date,
            invoice_number=payload.invoice_number,
            problem_description=payload.problem_description,
            category=payload.category,
            priority=payload.priority,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return ClaimModel.from_entity(claim)


@router.get("", response_model=list[ClaimModel], summary="List claims")
async def list_claims(
    service: ClaimServiceDep,
    user: ViewerUser,
    status_filter: ClaimStatus | None = Query(default=None, alias="status"),
    supplier_id: str | None = None,
    customer_id: str | None = None,
    priority: ClaimPriority | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: Literal["created_at", "updated_at", "claim_number", "status"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
) -> list[ClaimModel]:
    filters = ClaimFilters(
        status=status_filter,
        supplier_id=supplier_id,
        customer_id=customer_id,
        priority=priority,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    claims = await service.list_claims(filters)
    return [ClaimModel.from_entity(claim) for claim in claims]


@router.get("/stats", response_model=ClaimStatsModel, summary="Claim counts per status")
async def get_stats(service: ClaimServiceDep, user: ViewerUser) -> ClaimStatsModel:
    stats = await service.get_stats()
    return ClaimStatsModel(counts=stats.counts, total=stats.total)


@router.get("/portal/{code}", response_model=SupplierPortalClaimModel, summary="Supplier portal view")
async def get_portal_claim(code: str, service: ClaimServiceDep) -> SupplierPortalClaimModel:
    try:
        claim = await service.get_claim_by_portal_code(code)
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    attachments = await service.ledger.list_attachments(claim.id)
    return SupplierPortalClaimModel.from_entity(claim, attachments)


@router.post("/portal/{code}/response", response_model=SupplierPortalClaimModel, summary="Supplier portal response")
async def respond_via_portal(
    code: str,
    payload: PortalResponseRequest,
    service: ClaimServiceDep,
) -> SupplierPortalClaimModel:
    try:
        claim = await service.respond_via_portal(
            code,
            ClaimStatus(payload.response),
            message=payload.message,
            credit_amount=payload.credit_amount,
            credit_currency=payload.credit_currency,
            credit_reference=payload.credit_reference,
        )
        attachments = await service.ledger.list_attachments(claim.id)
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return SupplierPortalClaimModel.from_entity(claim, attachments)


@router.get("/{claim_id}", response_model=ClaimModel)
async def get_claim(claim_id: str, service: ClaimServiceDep, user: ViewerUser) -> ClaimModel:
    try:
        claim = await service.get_claim(claim_id)
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ClaimModel.from_entity(claim)


@router.patch("/{claim_id}", response_model=ClaimModel)
async def update_claim(
    claim_id: str,
    payload: ClaimUpdateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> ClaimModel:
    fields = payload.model_dump(exclude_unset=True, exclude={"expected_version"})
    try:
        claim = await service.update_claim(
            claim_id,
            actor=user.username,
            expected_version=payload.expected_version,
            **fields,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return ClaimModel.from_entity(claim)


@router.put("/{claim_id}/credit", response_model=ClaimModel)
async def update_credit(
    claim_id: str,
    payload: CreditUpdateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> ClaimModel:
    try:
        claim = await service.update_credit(
            claim_id,
            actor=user.username,
            credit_amount=payload.credit_amount,
            credit_currency=payload.credit_currency,
            credit_reference=payload.credit_reference,
            expected_version=payload.expected_version,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return ClaimModel.from_entity(claim)


@router.post("/{claim_id}/transitions", response_model=ClaimModel, summary="Move a claim to another status")
async def transition_claim(
    claim_id: str,
    payload: TransitionRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> ClaimModel:
    transition_payload = TransitionPayload(
        note=payload.note,
        supplier_claim_number=payload.supplier_claim_number,
        resolution=payload.resolution,
        resolution_type=payload.resolution_type,
        credit_amount=payload.credit_amount,
        credit_currency=payload.credit_currency,
        credit_reference=payload.credit_reference,
        cancellation_reason=payload.cancellation_reason,
        metadata=payload.metadata,
    )
    try:
        claim = await service.transition(
            claim_id,
            payload.status,
            transition_payload,
            actor=user.username,
            expected_version=payload.expected_version,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return ClaimModel.from_entity(claim)


@router.get("/{claim_id}/timeline", response_model=list[TimelineEntryModel])
async def get_timeline(claim_id: str, service: ClaimServiceDep, user: ViewerUser) -> list[TimelineEntryModel]:
    try:
        entries = await service.get_timeline(claim_id)
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [TimelineEntryModel.from_entity(entry) for entry in entries]


@router.post("/{claim_id}/notes", response_model=TimelineEntryModel, status_code=status.HTTP_201_CREATED)
async def add_note(
    claim_id: str,
    payload: NoteCreateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> TimelineEntryModel:
    try:
        entry = await service.add_note(claim_id, payload.description, actor=user.username, metadata=payload.metadata)
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return TimelineEntryModel.from_entity(entry)


@router.get("/{claim_id}/attachments", response_model=list[AttachmentModel])
async def list_attachments(claim_id: str, service: ClaimServiceDep, user: ViewerUser) -> list[AttachmentModel]:
    try:
        await service.get_claim(claim_id)
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    attachments = await service.ledger.list_attachments(claim_id)
    return [AttachmentModel.from_entity(item) for item in attachments]


@router.post("/{claim_id}/attachments", response_model=AttachmentModel, status_code=status.HTTP_201_CREATED)
async def add_attachment(
    claim_id: str,
    payload: AttachmentCreateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> AttachmentModel:
    try:
        attachment = await service.ledger.add_attachment(
            claim_id,
            file_name=payload.file_name,
            file_url=payload.file_url,
            actor=user.username,
            file_type=payload.file_type,
            file_size=payload.file_size,
            thumbnail_url=payload.thumbnail_url,
            kind=payload.kind,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return AttachmentModel.from_entity(attachment)


@router.patch("/{claim_id}/attachments/{attachment_id}", response_model=AttachmentModel)
async def update_attachment(
    claim_id: str,
    attachment_id: str,
    payload: AttachmentUpdateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> AttachmentModel:
    try:
        attachment = await service.ledger.update_attachment(
            claim_id,
            attachment_id,
            actor=user.username,
            file_name=payload.file_name,
            file_type=payload.file_type,
            thumbnail_url=payload.thumbnail_url,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return AttachmentModel.from_entity(attachment)


@router.delete("/{claim_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_attachment(
    claim_id: str,
    attachment_id: str,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> Response:
    try:
        await service.ledger.remove_attachment(claim_id, attachment_id, actor=user.username)
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{claim_id}/parts", response_model=list[PartModel])
async def list_parts(claim_id: str, service: ClaimServiceDep, user: ViewerUser) -> list[PartModel]:
    try:
        await service.get_claim(claim_id)
    except ClaimNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    parts = await service.ledger.list_parts(claim_id)
    return [PartModel.from_entity(item) for item in parts]


@router.post("/{claim_id}/parts", response_model=PartModel, status_code=status.HTTP_201_CREATED)
async def add_part(
    claim_id: str,
    payload: PartCreateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> PartModel:
    try:
        part = await service.ledger.add_part(
            claim_id,
            part_name=payload.part_name,
            actor=user.username,
            part_number=payload.part_number,
            quantity=payload.quantity,
            unit_price=payload.unit_price,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return PartModel.from_entity(part)


@router.patch("/{claim_id}/parts/{part_id}", response_model=PartModel)
async def update_part(
    claim_id: str,
    part_id: str,
    payload: PartUpdateRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> PartModel:
    try:
        part = await service.ledger.update_part(
            claim_id,
            part_id,
            actor=user.username,
            part_name=payload.part_name,
            part_number=payload.part_number,
            quantity=payload.quantity,
            unit_price=payload.unit_price,
        )
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return PartModel.from_entity(part)


@router.post("/{claim_id}/parts/{part_id}/status", response_model=PartModel)
async def change_part_status(
    claim_id: str,
    part_id: str,
    payload: PartStatusRequest,
    service: ClaimServiceDep,
    user: HandlerUser,
) -> PartModel:
    try:
        part = await service.ledger.update_part_status(claim_id, part_id, status=payload.status, actor=user.username)
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return PartModel.from_entity(part)


@router.delete("/{claim_id}/parts/{part_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_part(claim_id: str, part_id: str, service: ClaimServiceDep, user: HandlerUser) -> Response:
    try:
        await service.ledger.remove_part(claim_id, part_id, actor=user.username)
    except ClaimServiceError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
