"""Directory schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import Client, ClientType, Engineer, Material
from ...shared.validators import validate_mobile_number


class ClientCreate(BaseModel):
    name: str
    primaryContact: str
    secondaryContact: Optional[str] = None
    address: Optional[str] = None
    clientTypeId: Optional[str] = None

    @field_validator("primaryContact", "secondaryContact")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_mobile_number(v)
        return v


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    primaryContact: Optional[str] = None
    secondaryContact: Optional[str] = None
    address: Optional[str] = None
    clientTypeId: Optional[str] = None
    isActive: Optional[bool] = None

    @field_validator("primaryContact", "secondaryContact")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_mobile_number(v)
        return v


class ClientTypeCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Client type name is required")
        return v


class ClientTypeResponse(BaseModel):
    id: str
    name: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class ClientResponse(BaseModel):
    id: str
    name: str
    primaryContact: str
    secondaryContact: Optional[str] = None
    address: Optional[str] = None
    clientTypeId: Optional[str] = None
    clientType: Optional[ClientTypeResponse] = None
    isActive: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class EngineerCreate(BaseModel):
    name: str
    email: str
    mobileNumber: str

    @field_validator("mobileNumber")
    @classmethod
    def validate_phone(cls, v):
        return validate_mobile_number(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class EngineerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    mobileNumber: Optional[str] = None
    isActive: Optional[bool] = None

    @field_validator("mobileNumber")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_mobile_number(v)
        return v


class EngineerResponse(BaseModel):
    id: str
    name: str
    email: str
    mobileNumber: str
    isActive: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class MaterialCreate(BaseModel):
    name: str
    unit: str = "pcs"
    reorderLevel: Optional[int] = None

    @field_validator("reorderLevel")
    @classmethod
    def validate_reorder_level(cls, v):
        if v is not None and v < 0:
            raise ValueError("Reorder level cannot be negative")
        return v


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    reorderLevel: Optional[int] = None
    isActive: Optional[bool] = None

    @field_validator("reorderLevel")
    @classmethod
    def validate_reorder_level(cls, v):
        if v is not None and v < 0:
            raise ValueError("Reorder level cannot be negative")
        return v


class MaterialResponse(BaseModel):
    id: str
    name: str
    unit: str
    reorderLevel: Optional[int] = None
    isActive: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


def serialize_client_type(t: ClientType) -> ClientTypeResponse:
    return ClientTypeResponse(id=t.id, name=t.name, createdAt=t.created_at, updatedAt=t.updated_at)


def serialize_client(c: Client) -> ClientResponse:
    return ClientResponse(
        id=c.id,
        name=c.name,
        primaryContact=c.primary_contact,
        secondaryContact=c.secondary_contact,
        address=c.address,
        clientTypeId=c.client_type_id,
        clientType=serialize_client_type(c.client_type) if c.client_type else None,
        isActive=c.is_active,
        createdAt=c.created_at,
        updatedAt=c.updated_at,
    )


def serialize_engineer(e: Engineer) -> EngineerResponse:
    return EngineerResponse(
        id=e.id,
        name=e.name,
        email=e.email,
        mobileNumber=e.mobile_number,
        isActive=e.is_active,
        createdAt=e.created_at,
        updatedAt=e.updated_at,
    )


def serialize_material(m: Material) -> MaterialResponse:
    return MaterialResponse(
        id=m.id,
        name=m.name,
        unit=m.unit,
        reorderLevel=m.reorder_level,
        isActive=m.is_active,
        createdAt=m.created_at,
        updatedAt=m.updated_at,
    )
