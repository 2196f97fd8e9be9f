"""Directory routers - clients, engineers and materials"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Client, Engineer, Material, User
from ...shared.pagination import DEFAULT_PAGE_SIZE, page_envelope
from .schemas import (
    ClientCreate,
    ClientResponse,
    ClientTypeCreate,
    ClientTypeResponse,
    ClientUpdate,
    EngineerCreate,
    EngineerResponse,
    EngineerUpdate,
    MaterialCreate,
    MaterialResponse,
    MaterialUpdate,
    serialize_client,
    serialize_client_type,
    serialize_engineer,
    serialize_material,
)
from .service import DirectoryService

logger = logging.getLogger(__name__)

clients_router = APIRouter(prefix="/clients", tags=["Clients"])
engineers_router = APIRouter(prefix="/engineers", tags=["Engineers"])
materials_router = APIRouter(prefix="/materials", tags=["Materials"])


def get_directory_service(db: Session = Depends(get_db)) -> DirectoryService:
    """Dependency injection for DirectoryService"""
    return DirectoryService(db)


# ============================================================================
# CLIENTS
# ============================================================================


@clients_router.get("")
async def list_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    search: Optional[str] = Query(None),
    activeOnly: bool = Query(False),
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    items, total = service.list_entries(Client, page, limit, activeOnly, search)
    return page_envelope(items, total, page, limit, serialize_client)


@clients_router.get("/types")
async def list_client_types(
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    return {"data": [serialize_client_type(t) for t in service.list_client_types()]}


@clients_router.post("/types", response_model=ClientTypeResponse, status_code=201)
async def create_client_type(
    data: ClientTypeCreate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_client_type(service.create_client_type(data))


@clients_router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_client(service.get_client(client_id))


@clients_router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_client(service.create_client(data))


@clients_router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str,
    data: ClientUpdate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_client(service.update_client(client_id, data))


@clients_router.delete("/{client_id}")
async def deactivate_client(
    client_id: str,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    service.deactivate(service.get_client(client_id))
    return {"message": "Client deactivated"}


# ============================================================================
# ENGINEERS
# ============================================================================


@engineers_router.get("")
async def list_engineers(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    search: Optional[str] = Query(None),
    activeOnly: bool = Query(False),
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    items, total = service.list_entries(Engineer, page, limit, activeOnly, search)
    return page_envelope(items, total, page, limit, serialize_engineer)


@engineers_router.get("/{engineer_id}", response_model=EngineerResponse)
async def get_engineer(
    engineer_id: str,
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_engineer(service.get_engineer(engineer_id))


@engineers_router.post("", response_model=EngineerResponse, status_code=201)
async def create_engineer(
    data: EngineerCreate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_engineer(service.create_engineer(data))


@engineers_router.put("/{engineer_id}", response_model=EngineerResponse)
async def update_engineer(
    engineer_id: str,
    data: EngineerUpdate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_engineer(service.update_engineer(engineer_id, data))


@engineers_router.delete("/{engineer_id}")
async def deactivate_engineer(
    engineer_id: str,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    service.deactivate(service.get_engineer(engineer_id))
    return {"message": "Engineer deactivated"}


# ============================================================================
# MATERIALS
# ============================================================================


@materials_router.get("")
async def list_materials(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    search: Optional[str] = Query(None),
    activeOnly: bool = Query(False),
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    items, total = service.list_entries(Material, page, limit, activeOnly, search)
    return page_envelope(items, total, page, limit, serialize_material)


@materials_router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(
    material_id: str,
    _: User = Depends(get_current_user),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_material(service.get_material(material_id))


@materials_router.post("", response_model=MaterialResponse, status_code=201)
async def create_material(
    data: MaterialCreate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_material(service.create_material(data))


@materials_router.put("/{material_id}", response_model=MaterialResponse)
async def update_material(
    material_id: str,
    data: MaterialUpdate,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    return serialize_material(service.update_material(material_id, data))


@materials_router.delete("/{material_id}")
async def deactivate_material(
    material_id: str,
    _: User = Depends(require_admin),
    service: DirectoryService = Depends(get_directory_service),
):
    service.deactivate(service.get_material(material_id))
    return {"message": "Material deactivated"}
