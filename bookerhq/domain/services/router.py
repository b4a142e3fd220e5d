"""Service router - FastAPI endpoints for stylist services"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from supabase import AsyncClient

from ...auth_context import STYLIST, TENANT_ADMIN, AuthStore
from ...guards import get_supabase_client, require_roles
from .schemas import ServiceCreate, ServiceDeleteResponse, ServiceResponse, ServiceUpdate
from .service import ServiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])

require_service_owner = require_roles(STYLIST, TENANT_ADMIN)


def get_service_service(client: AsyncClient = Depends(get_supabase_client)) -> ServiceService:
    """Dependency injection for ServiceService"""
    return ServiceService(client)


# ============================================================================
# PUBLIC LISTINGS
# ============================================================================


@router.get("", response_model=list[ServiceResponse])
async def get_services(
    stylist_id: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    service: ServiceService = Depends(get_service_service),
):
    """List services: one stylist's, one tenant's, or all public ones"""
    if stylist_id:
        return await service.list_stylist_services(stylist_id, include_inactive)
    if tenant_id:
        return await service.list_tenant_services(tenant_id, include_inactive)
    return await service.list_public_services(include_inactive)


@router.get("/mine", response_model=list[ServiceResponse])
async def get_my_services(
    include_inactive: bool = Query(True),
    store: AuthStore = Depends(require_service_owner),
    service: ServiceService = Depends(get_service_service),
):
    """Services owned by the signed-in stylist or business"""
    return await service.list_user_services(include_inactive)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(service_id: str, service: ServiceService = Depends(get_service_service)):
    return await service.get_service(service_id)


# ============================================================================
# OWNER OPERATIONS
# ============================================================================


@router.post("", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    store: AuthStore = Depends(require_roles(STYLIST)),
    service: ServiceService = Depends(get_service_service),
):
    return await service.create_service(data, store)


@router.patch("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceService = Depends(get_service_service),
):
    return await service.update_service(service_id, data)


@router.post("/{service_id}/activate", response_model=ServiceResponse)
async def activate_service(
    service_id: str,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceService = Depends(get_service_service),
):
    return await service.activate_service(service_id)


@router.post("/{service_id}/deactivate", response_model=ServiceResponse)
async def deactivate_service(
    service_id: str,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceService = Depends(get_service_service),
):
    return await service.deactivate_service(service_id)


@router.delete("/{service_id}", response_model=ServiceDeleteResponse)
async def delete_service(
    service_id: str,
    hard: bool = Query(False, description="Remove the row instead of deactivating it"),
    store: AuthStore = Depends(require_service_owner),
    service: ServiceService = Depends(get_service_service),
):
    return await service.delete_service(service_id, soft_delete=not hard)
