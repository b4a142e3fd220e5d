"""Service option router - FastAPI endpoints for service options"""

import logging

from fastapi import APIRouter, Depends, Query
from supabase import AsyncClient

from ...auth_context import STYLIST, TENANT_ADMIN, AuthStore
from ...guards import get_supabase_client, require_roles
from ..services.schemas import ServiceDeleteResponse
from .schemas import ReorderRequest, ServiceOptionCreate, ServiceOptionResponse, ServiceOptionUpdate
from .service import ServiceOptionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Service Options"])

require_service_owner = require_roles(STYLIST, TENANT_ADMIN)


def get_option_service(client: AsyncClient = Depends(get_supabase_client)) -> ServiceOptionService:
    """Dependency injection for ServiceOptionService"""
    return ServiceOptionService(client)


@router.get("/services/{service_id}/options", response_model=list[ServiceOptionResponse])
async def get_service_options(service_id: str, service: ServiceOptionService = Depends(get_option_service)):
    return await service.get_options(service_id)


@router.post("/services/{service_id}/options", response_model=ServiceOptionResponse, status_code=201)
async def create_service_option(
    service_id: str,
    data: ServiceOptionCreate,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.create_option(service_id, data)


@router.put("/services/{service_id}/options/order", response_model=list[ServiceOptionResponse])
async def reorder_service_options(
    service_id: str,
    data: ReorderRequest,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.reorder_options(service_id, data.optionIds)


@router.get("/service-options/{option_id}", response_model=ServiceOptionResponse)
async def get_service_option(option_id: str, service: ServiceOptionService = Depends(get_option_service)):
    return await service.get_option(option_id)


@router.patch("/service-options/{option_id}", response_model=ServiceOptionResponse)
async def update_service_option(
    option_id: str,
    data: ServiceOptionUpdate,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.update_option(option_id, data)


@router.post("/service-options/{option_id}/activate", response_model=ServiceOptionResponse)
async def activate_service_option(
    option_id: str,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.activate_option(option_id)


@router.post("/service-options/{option_id}/deactivate", response_model=ServiceOptionResponse)
async def deactivate_service_option(
    option_id: str,
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.deactivate_option(option_id)


@router.delete("/service-options/{option_id}", response_model=ServiceDeleteResponse)
async def delete_service_option(
    option_id: str,
    soft: bool = Query(False, description="Deactivate instead of removing the row"),
    store: AuthStore = Depends(require_service_owner),
    service: ServiceOptionService = Depends(get_option_service),
):
    return await service.delete_option(option_id, soft_delete=soft)
