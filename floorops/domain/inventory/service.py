"""
Inventory Ledger

Append-only STOCK_IN / STOCK_OUT log. Balances are never stored; they are
folded from the log on every read so they always reconcile with it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from ...config import INVENTORY_ALLOW_NEGATIVE_STOCK
from ...models import InventoryTransaction, Material, TransactionType, User
from ...shared.errors import (
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    ValidationFailed,
)
from ...shared.pagination import DEFAULT_PAGE_SIZE, clamp_page, paginate
from ...shared.timeutils import Clock, date_range, utcnow
from ..appointments.repository import AppointmentRepository
from ..directory.service import DirectoryService
from .repository import InventoryRepository
from .schemas import StockInRequest, StockOutRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockBalance:
    material: Material
    total_in: int
    total_out: int

    @property
    def current_stock(self) -> int:
        return self.total_in - self.total_out

    @property
    def reorder_level(self) -> Optional[int]:
        return self.material.reorder_level

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level is not None and self.current_stock < self.reorder_level


@dataclass(frozen=True)
class TransactionFilter:
    transaction_type: Optional[str] = None
    material_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TransactionStream:
    """Lazy view over a filtered slice of the ledger.

    Each iteration starts again from the newest transaction and fetches
    one page at a time, so the stream can be walked more than once.
    """

    def __init__(self, db: Session, filters: TransactionFilter, page_size: int = DEFAULT_PAGE_SIZE):
        self.db = db
        self.filters = filters
        _, self.page_size = clamp_page(1, page_size)

    def pages(self) -> Iterator[list[InventoryTransaction]]:
        query = InventoryRepository.search(
            self.db,
            self.filters.transaction_type,
            self.filters.material_id,
            self.filters.start_date,
            self.filters.end_date,
        )
        offset = 0
        while True:
            batch = query.offset(offset).limit(self.page_size).all()
            if not batch:
                return
            yield batch
            if len(batch) < self.page_size:
                return
            offset += self.page_size

    def __iter__(self) -> Iterator[InventoryTransaction]:
        for batch in self.pages():
            yield from batch


class InventoryService:
    """Service layer for the inventory ledger"""

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        allow_negative_stock: bool = INVENTORY_ALLOW_NEGATIVE_STOCK,
    ):
        self.db = db
        self.repo = InventoryRepository()
        self.directory = DirectoryService(db)
        self.clock = clock
        self.allow_negative_stock = allow_negative_stock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def stock_in(self, data: StockInRequest, user: User) -> InventoryTransaction:
        self._check_quantity(data.quantity)
        material = self.directory.require_active_material(data.materialId)

        txn = self.repo.append(
            self.db,
            material_id=material.id,
            transaction_type=TransactionType.STOCK_IN.value,
            quantity=data.quantity,
            remarks=data.remarks,
            transaction_date=data.transactionDate or self.clock(),
            created_by=user.id,
        )
        logger.info(f"Stock in: {data.quantity} {material.unit} of {material.name} ({txn.id})")
        return txn

    def stock_out(self, data: StockOutRequest, user: User) -> InventoryTransaction:
        self._check_quantity(data.quantity)
        material = self.directory.require_active_material(data.materialId)

        client_id = data.clientId
        site_address = data.siteAddress
        if data.appointmentId:
            appointment = AppointmentRepository.get_by_id(self.db, data.appointmentId)
            if not appointment:
                raise NotFound("Appointment not found")
            if client_id and client_id != appointment.client_id:
                raise ValidationFailed("Appointment belongs to a different client")
            client_id = appointment.client_id
            site_address = site_address or appointment.site_address
        if client_id:
            client = self.directory.get_client(client_id)
            site_address = site_address or client.address

        if not self.allow_negative_stock:
            # Held until the append commits; concurrent stock-outs of this material queue here
            self.repo.lock_material(self.db, material.id)
            current = self.get_balance(material.id).current_stock
            if current - data.quantity < 0:
                logger.warning(
                    f"Stock out of {data.quantity} rejected for {material.name}: only {current} left"
                )
                error = InsufficientStock(f"Insufficient stock for {material.name}", currentStock=current)
                self.db.rollback()
                raise error

        txn = self.repo.append(
            self.db,
            material_id=material.id,
            transaction_type=TransactionType.STOCK_OUT.value,
            quantity=data.quantity,
            client_id=client_id,
            site_address=site_address,
            appointment_id=data.appointmentId,
            remarks=data.remarks,
            transaction_date=data.transactionDate or self.clock(),
            created_by=user.id,
        )
        logger.info(f"Stock out: {data.quantity} {material.unit} of {material.name} ({txn.id})")
        return txn

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_balance(self, material_id: str) -> StockBalance:
        material = self.directory.get_material(material_id)
        total_in, total_out = self.repo.totals_for(self.db, material.id)
        return StockBalance(material, total_in, total_out)

    def list_balances(
        self, search: Optional[str] = None, low_stock_only: bool = False
    ) -> list[StockBalance]:
        balances = [
            StockBalance(material, int(total_in), int(total_out))
            for material, total_in, total_out in self.repo.balances(self.db, search)
        ]
        if low_stock_only:
            balances = [b for b in balances if b.is_low_stock]
        return balances

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transaction_filter(
        self,
        transaction_type: Optional[str] = None,
        material_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> TransactionFilter:
        if transaction_type and transaction_type != "all":
            valid = {t.value for t in TransactionType}
            if transaction_type not in valid:
                raise ValidationFailed(f"Invalid transaction type: {transaction_type}")
        start_date, end_date = date_range(start_date, end_date)
        return TransactionFilter(transaction_type, material_id, start_date, end_date)

    def list_transactions(
        self, filters: TransactionFilter, page: int, limit: int
    ) -> tuple[list[InventoryTransaction], int]:
        query = self.repo.search(
            self.db,
            filters.transaction_type,
            filters.material_id,
            filters.start_date,
            filters.end_date,
        )
        return paginate(query, page, limit)

    def iter_transactions(
        self, filters: TransactionFilter, page_size: int = DEFAULT_PAGE_SIZE
    ) -> TransactionStream:
        return TransactionStream(self.db, filters, page_size)

    def get_transaction(self, transaction_id: str) -> InventoryTransaction:
        txn = self.repo.get_by_id(self.db, transaction_id)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def usage_report(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[dict]:
        rows = self.repo.usage(self.db, *date_range(start_date, end_date))
        return [
            {"materialId": mid, "materialName": name, "unit": unit, "totalOut": int(total)}
            for mid, name, unit, total in rows
        ]

    def by_site_report(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[dict]:
        rows = self.repo.usage_by_site(self.db, *date_range(start_date, end_date))
        return [
            {
                "siteAddress": site or None,
                "materialId": mid,
                "materialName": name,
                "unit": unit,
                "quantity": int(total),
            }
            for site, mid, name, unit, total in rows
        ]

    @staticmethod
    def _check_quantity(quantity) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity()
