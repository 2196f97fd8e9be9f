"""Inventory router - FastAPI endpoints for the stock ledger"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...shared.pagination import DEFAULT_PAGE_SIZE, page_envelope
from ...shared.timeutils import Clock, get_clock
from .schemas import (
    StockBalanceResponse,
    StockInRequest,
    StockOutRequest,
    TransactionResponse,
    serialize_balance,
    serialize_transaction,
)
from .service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def get_inventory_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> InventoryService:
    """Dependency injection for InventoryService"""
    return InventoryService(db, clock=clock)


# ============================================================================
# STOCK BALANCES
# ============================================================================


@router.get("/stock")
async def list_stock(
    search: Optional[str] = Query(None),
    lowStockOnly: bool = Query(False),
    _: User = Depends(get_current_user),
    service: InventoryService = Depends(get_inventory_service),
):
    balances = service.list_balances(search, lowStockOnly)
    return {"data": [serialize_balance(b) for b in balances]}


@router.get("/stock/{material_id}", response_model=StockBalanceResponse)
async def get_stock(
    material_id: str,
    _: User = Depends(get_current_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return serialize_balance(service.get_balance(material_id))


@router.post("/stock-in", response_model=TransactionResponse, status_code=201)
async def stock_in(
    data: StockInRequest,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    txn = service.stock_in(data, current_user)
    return serialize_transaction(service.get_transaction(txn.id))


@router.post("/stock-out", response_model=TransactionResponse, status_code=201)
async def stock_out(
    data: StockOutRequest,
    current_user: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    txn = service.stock_out(data, current_user)
    return serialize_transaction(service.get_transaction(txn.id))


# ============================================================================
# TRANSACTIONS
# ============================================================================


@router.get("/transactions")
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    transactionType: Optional[str] = Query(None, alias="type"),
    materialId: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(get_current_user),
    service: InventoryService = Depends(get_inventory_service),
):
    filters = service.transaction_filter(transactionType, materialId, startDate, endDate)
    items, total = service.list_transactions(filters, page, limit)
    return page_envelope(items, total, page, limit, serialize_transaction)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: str,
    _: User = Depends(get_current_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return serialize_transaction(service.get_transaction(transaction_id))


# ============================================================================
# REPORTS (admin)
# ============================================================================


@router.get("/reports/usage")
async def usage_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    return {"data": service.usage_report(startDate, endDate)}


@router.get("/reports/by-site")
async def by_site_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    return {"data": service.by_site_report(startDate, endDate)}


@router.get("/reports/balance")
async def balance_report(
    lowStockOnly: bool = Query(False),
    _: User = Depends(require_admin),
    service: InventoryService = Depends(get_inventory_service),
):
    balances = service.list_balances(low_stock_only=lowStockOnly)
    return {"data": [serialize_balance(b) for b in balances]}
