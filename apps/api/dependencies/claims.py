from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.api.claims import ClaimService, ReferenceRegistry
from apps.api.dependencies.auth import Role, User, role_required

require_admin = role_required(Role.ADMIN)
require_handler = role_required(Role.HANDLER)
require_viewer = role_required(Role.VIEWER)

AdminUser = Annotated[User, Depends(require_admin)]
HandlerUser = Annotated[User, Depends(require_handler)]
ViewerUser = Annotated[User, Depends(require_viewer)]


async def get_claim_service(request: Request) -> ClaimService:
    service = getattr(request.app.state, "claim_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Claim service is not configured")
    return service


async def get_reference_registry(request: Request) -> ReferenceRegistry:
    service = getattr(request.app.state, "claim_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Reference registry is not configured")
    return service.references


ClaimServiceDep = Annotated[ClaimService, Depends(get_claim_service)]
ReferenceRegistryDep = Annotated[ReferenceRegistry, Depends(get_reference_registry)]
