"""Directory service - lookups used by the lifecycle managers plus admin maintenance"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Client, ClientType, Engineer, Material
from ...shared.errors import NotFound, ValidationFailed
from ...shared.pagination import paginate
from ...shared.timeutils import utcnow
from .repository import DirectoryRepository
from .schemas import (
    ClientCreate,
    ClientTypeCreate,
    ClientUpdate,
    EngineerCreate,
    EngineerUpdate,
    MaterialCreate,
    MaterialUpdate,
)

logger = logging.getLogger(__name__)


class DirectoryService:
    """Service layer for client, engineer and material directories"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DirectoryRepository()

    # Lookups

    def _get(self, model, entry_id: str, label: str):
        entry = self.repo.get(self.db, model, entry_id)
        if not entry:
            raise NotFound(f"{label} not found")
        return entry

    def get_client(self, client_id: str) -> Client:
        return self._get(Client, client_id, "Client")

    def get_engineer(self, engineer_id: str) -> Engineer:
        return self._get(Engineer, engineer_id, "Engineer")

    def get_material(self, material_id: str) -> Material:
        return self._get(Material, material_id, "Material")

    def require_active_client(self, client_id: str) -> Client:
        client = self.get_client(client_id)
        if not client.is_active:
            raise ValidationFailed("Client is inactive")
        return client

    def require_active_engineer(self, engineer_id: str) -> Engineer:
        engineer = self.get_engineer(engineer_id)
        if not engineer.is_active:
            raise ValidationFailed("Engineer is inactive")
        return engineer

    def require_active_material(self, material_id: str) -> Material:
        material = self.get_material(material_id)
        if not material.is_active:
            raise ValidationFailed("Material is inactive")
        return material

    # Listing

    def list_entries(
        self, model, page: int, limit: int, active_only: bool = False, search: Optional[str] = None
    ):
        query = self.repo.search(self.db, model, active_only=active_only, search=search)
        return paginate(query, page, limit)

    # Client types

    def list_client_types(self) -> list[ClientType]:
        return self.repo.list_client_types(self.db)

    def get_client_type(self, client_type_id: str) -> ClientType:
        return self._get(ClientType, client_type_id, "Client type")

    def create_client_type(self, data: ClientTypeCreate) -> ClientType:
        if self.repo.get_client_type_by_name(self.db, data.name):
            raise ValidationFailed("A client type with this name already exists")
        client_type = self.repo.create(self.db, ClientType, name=data.name)
        logger.info(f"Created client type {client_type.id}")
        return client_type

    # Clients

    def create_client(self, data: ClientCreate) -> Client:
        if data.clientTypeId:
            self.get_client_type(data.clientTypeId)
        client = self.repo.create(
            self.db,
            Client,
            name=data.name.strip(),
            primary_contact=data.primaryContact,
            secondary_contact=data.secondaryContact,
            address=data.address,
            client_type_id=data.clientTypeId,
        )
        logger.info(f"Created client {client.id}")
        return client

    def update_client(self, client_id: str, data: ClientUpdate) -> Client:
        client = self.get_client(client_id)
        if data.clientTypeId:
            self.get_client_type(data.clientTypeId)
        return self.repo.update(
            self.db,
            client,
            name=data.name,
            primary_contact=data.primaryContact,
            secondary_contact=data.secondaryContact,
            address=data.address,
            client_type_id=data.clientTypeId,
            is_active=data.isActive,
        )

    # Engineers

    def create_engineer(self, data: EngineerCreate) -> Engineer:
        if self.repo.get_engineer_by_email(self.db, data.email):
            raise ValidationFailed("An engineer with this email already exists")
        engineer = self.repo.create(
            self.db,
            Engineer,
            name=data.name.strip(),
            email=data.email,
            mobile_number=data.mobileNumber,
        )
        logger.info(f"Created engineer {engineer.id}")
        return engineer

    def update_engineer(self, engineer_id: str, data: EngineerUpdate) -> Engineer:
        engineer = self.get_engineer(engineer_id)
        email = data.email.strip().lower() if data.email else None
        if email and email != engineer.email and self.repo.get_engineer_by_email(self.db, email):
            raise ValidationFailed("An engineer with this email already exists")
        return self.repo.update(
            self.db,
            engineer,
            name=data.name,
            email=email,
            mobile_number=data.mobileNumber,
            is_active=data.isActive,
        )

    # Materials

    def create_material(self, data: MaterialCreate) -> Material:
        material = self.repo.create(
            self.db,
            Material,
            name=data.name.strip(),
            unit=data.unit,
            reorder_level=data.reorderLevel,
        )
        logger.info(f"Created material {material.id}")
        return material

    def update_material(self, material_id: str, data: MaterialUpdate) -> Material:
        material = self.get_material(material_id)
        return self.repo.update(
            self.db,
            material,
            name=data.name,
            unit=data.unit,
            reorder_level=data.reorderLevel,
            is_active=data.isActive,
        )

    # Soft delete

    def deactivate(self, entry) -> None:
        """Entries are never removed; they are flagged inactive"""
        self.repo.update(self.db, entry, is_active=False, deleted_at=utcnow())
        logger.info(f"Deactivated {type(entry).__name__} {entry.id}")
