"""Inventory schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import InventoryTransaction, User
from ...shared.timeutils import to_naive_utc
from ...shared.validators import validate_non_blank
from ..directory.schemas import (
    ClientResponse,
    MaterialResponse,
    serialize_client,
    serialize_material,
)


class StockInRequest(BaseModel):
    materialId: str
    quantity: int  # Positivity is checked by the ledger (InvalidQuantity)
    remarks: Optional[str] = None
    transactionDate: Optional[datetime] = None  # Defaults to now

    @field_validator("transactionDate")
    @classmethod
    def normalize_date(cls, v):
        return to_naive_utc(v) if v else v

    @field_validator("remarks")
    @classmethod
    def strip_text(cls, v):
        return validate_non_blank(v)


class StockOutRequest(StockInRequest):
    clientId: Optional[str] = None
    siteAddress: Optional[str] = None
    appointmentId: Optional[str] = None

    @field_validator("siteAddress")
    @classmethod
    def strip_site(cls, v):
        return validate_non_blank(v)


class UserSummary(BaseModel):
    id: str
    name: str
    email: str
    role: str


class TransactionResponse(BaseModel):
    id: str
    materialId: str
    material: Optional[MaterialResponse] = None
    transactionType: str
    quantity: int
    clientId: Optional[str] = None
    client: Optional[ClientResponse] = None
    siteAddress: Optional[str] = None
    appointmentId: Optional[str] = None
    remarks: Optional[str] = None
    transactionDate: datetime
    createdBy: str
    createdByUser: Optional[UserSummary] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class StockBalanceResponse(BaseModel):
    materialId: str
    material: MaterialResponse
    totalIn: int
    totalOut: int
    currentStock: int
    reorderLevel: Optional[int] = None
    isLowStock: bool


def serialize_user_summary(u: User) -> UserSummary:
    return UserSummary(id=u.id, name=u.name, email=u.email, role=u.role)


def serialize_transaction(t: InventoryTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=t.id,
        materialId=t.material_id,
        material=serialize_material(t.material) if t.material else None,
        transactionType=t.transaction_type,
        quantity=t.quantity,
        clientId=t.client_id,
        client=serialize_client(t.client) if t.client else None,
        siteAddress=t.site_address,
        appointmentId=t.appointment_id,
        remarks=t.remarks,
        transactionDate=t.transaction_date,
        createdBy=t.created_by,
        createdByUser=serialize_user_summary(t.created_by_user) if t.created_by_user else None,
        createdAt=t.created_at,
        updatedAt=t.updated_at,
    )


def serialize_balance(balance) -> StockBalanceResponse:
    return StockBalanceResponse(
        materialId=balance.material.id,
        material=serialize_material(balance.material),
        totalIn=balance.total_in,
        totalOut=balance.total_out,
        currentStock=balance.current_stock,
        reorderLevel=balance.reorder_level,
        isLowStock=balance.is_low_stock,
    )
