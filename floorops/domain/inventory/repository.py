"""Inventory repository - Append-only ledger storage and balance aggregates"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Client, InventoryTransaction, Material, TransactionType


def _signed_totals():
    """SUM(STOCK_IN quantities), SUM(STOCK_OUT quantities), both 0 when empty"""
    total_in = func.coalesce(
        func.sum(
            case(
                (
                    InventoryTransaction.transaction_type == TransactionType.STOCK_IN.value,
                    InventoryTransaction.quantity,
                ),
                else_=0,
            )
        ),
        0,
    )
    total_out = func.coalesce(
        func.sum(
            case(
                (
                    InventoryTransaction.transaction_type == TransactionType.STOCK_OUT.value,
                    InventoryTransaction.quantity,
                ),
                else_=0,
            )
        ),
        0,
    )
    return total_in, total_out


def _date_range(query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.filter(InventoryTransaction.transaction_date >= start_date)
    if end_date:
        query = query.filter(InventoryTransaction.transaction_date <= end_date)
    return query


class InventoryRepository:
    """Repository for ledger inserts and read-side projections"""

    @staticmethod
    def append(db: Session, **data) -> InventoryTransaction:
        """Insert a transaction. Rows are never updated or deleted afterwards."""
        txn = InventoryTransaction(**data)
        db.add(txn)
        db.commit()
        db.refresh(txn)
        return txn

    @staticmethod
    def lock_material_query(db: Session, material_id: str) -> Query:
        return db.query(Material).filter(Material.id == material_id).with_for_update()

    @staticmethod
    def lock_material(db: Session, material_id: str) -> Material:
        """Row-lock the material until the next commit so balance checks on it serialize"""
        return InventoryRepository.lock_material_query(db, material_id).one()

    @staticmethod
    def get_by_id(db: Session, transaction_id: str) -> Optional[InventoryTransaction]:
        return (
            db.query(InventoryTransaction)
            .options(
                joinedload(InventoryTransaction.material),
                joinedload(InventoryTransaction.client),
                joinedload(InventoryTransaction.created_by_user),
            )
            .filter(InventoryTransaction.id == transaction_id)
            .first()
        )

    @staticmethod
    def search(
        db: Session,
        transaction_type: Optional[str] = None,
        material_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Query:
        query = db.query(InventoryTransaction).options(
            joinedload(InventoryTransaction.material),
            joinedload(InventoryTransaction.client),
            joinedload(InventoryTransaction.created_by_user),
        )

        if transaction_type and transaction_type != "all":
            query = query.filter(InventoryTransaction.transaction_type == transaction_type)

        if material_id:
            query = query.filter(InventoryTransaction.material_id == material_id)

        query = _date_range(query, start_date, end_date)

        # id breaks ties so offset paging stays stable
        return query.order_by(
            InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc()
        )

    @staticmethod
    def totals_for(db: Session, material_id: str) -> tuple[int, int]:
        total_in, total_out = _signed_totals()
        row = (
            db.query(total_in, total_out)
            .filter(InventoryTransaction.material_id == material_id)
            .one()
        )
        return int(row[0]), int(row[1])

    @staticmethod
    def balances(db: Session, search: Optional[str] = None) -> list[tuple]:
        """(Material, total_in, total_out) for every active material, ordered by name"""
        total_in, total_out = _signed_totals()
        query = (
            db.query(Material, total_in, total_out)
            .outerjoin(InventoryTransaction, InventoryTransaction.material_id == Material.id)
            .filter(Material.is_active.is_(True))
        )
        if search:
            query = query.filter(Material.name.ilike(f"%{search.lower()}%"))
        return query.group_by(Material.id).order_by(Material.name.asc()).all()

    @staticmethod
    def usage(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[tuple]:
        total_out = func.sum(InventoryTransaction.quantity)
        query = (
            db.query(Material.id, Material.name, Material.unit, total_out)
            .select_from(InventoryTransaction)
            .join(Material, InventoryTransaction.material_id == Material.id)
            .filter(InventoryTransaction.transaction_type == TransactionType.STOCK_OUT.value)
        )
        query = _date_range(query, start_date, end_date)
        return (
            query.group_by(Material.id, Material.name, Material.unit)
            .order_by(total_out.desc(), Material.name.asc())
            .all()
        )

    @staticmethod
    def usage_by_site(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[tuple]:
        site = func.coalesce(InventoryTransaction.site_address, Client.address, "")
        query = (
            db.query(
                site.label("site_address"),
                Material.id,
                Material.name,
                Material.unit,
                func.sum(InventoryTransaction.quantity),
            )
            .select_from(InventoryTransaction)
            .join(Material, InventoryTransaction.material_id == Material.id)
            .outerjoin(Client, InventoryTransaction.client_id == Client.id)
            .filter(InventoryTransaction.transaction_type == TransactionType.STOCK_OUT.value)
        )
        query = _date_range(query, start_date, end_date)
        return (
            query.group_by(site, Material.id, Material.name, Material.unit)
            .order_by(site, Material.name)
            .all()
        )
