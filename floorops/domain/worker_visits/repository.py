"""Worker visit repository - Database operations and report aggregates"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from ...models import Client, VisitStatus, WorkerVisit
from ...shared.errors import Conflict


def _date_range(query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.filter(WorkerVisit.visit_date >= start_date)
    if end_date:
        query = query.filter(WorkerVisit.visit_date <= end_date)
    return query


class WorkerVisitRepository:
    """Repository for worker visit database operations"""

    @staticmethod
    def get_by_id(db: Session, visit_id: str) -> Optional[WorkerVisit]:
        return (
            db.query(WorkerVisit)
            .options(joinedload(WorkerVisit.client), joinedload(WorkerVisit.engineer))
            .filter(WorkerVisit.id == visit_id)
            .first()
        )

    @staticmethod
    def create(db: Session, visit: WorkerVisit) -> WorkerVisit:
        db.add(visit)
        db.commit()
        db.refresh(visit)
        return visit

    @staticmethod
    def save(db: Session, visit: WorkerVisit) -> WorkerVisit:
        """Commit guarded by the version column; concurrent writers get Conflict"""
        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise Conflict() from e
        db.refresh(visit)
        return visit

    @staticmethod
    def search(
        db: Session,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        engineer_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> Query:
        query = db.query(WorkerVisit).options(
            joinedload(WorkerVisit.client), joinedload(WorkerVisit.engineer)
        )

        if status and status != "all":
            query = query.filter(WorkerVisit.status == status)

        if client_id:
            query = query.filter(WorkerVisit.client_id == client_id)

        if engineer_id:
            query = query.filter(WorkerVisit.engineer_id == engineer_id)

        query = _date_range(query, start_date, end_date)

        if search:
            search_term = f"%{search.lower()}%"
            query = query.join(Client, WorkerVisit.client_id == Client.id).filter(
                or_(WorkerVisit.site_address.ilike(search_term), Client.name.ilike(search_term))
            )

        return query.order_by(WorkerVisit.visit_date.desc())

    @staticmethod
    def get_pending(db: Session, engineer_id: Optional[str] = None) -> list[WorkerVisit]:
        query = (
            db.query(WorkerVisit)
            .options(joinedload(WorkerVisit.client), joinedload(WorkerVisit.engineer))
            .filter(
                WorkerVisit.status.in_(
                    [VisitStatus.PENDING.value, VisitStatus.OTP_VERIFIED.value]
                )
            )
        )
        if engineer_id:
            query = query.filter(WorkerVisit.engineer_id == engineer_id)
        return query.order_by(WorkerVisit.visit_date.asc()).all()

    # Reports

    @staticmethod
    def status_counts(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> dict[str, int]:
        query = db.query(WorkerVisit.status, func.count(WorkerVisit.id))
        query = _date_range(query, start_date, end_date)
        return {status: count for status, count in query.group_by(WorkerVisit.status).all()}

    @staticmethod
    def worker_totals(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> tuple[int, Optional[float]]:
        query = db.query(
            func.coalesce(func.sum(WorkerVisit.worker_count), 0),
            func.avg(WorkerVisit.worker_count),
        ).filter(WorkerVisit.status == VisitStatus.COMPLETED.value)
        total, average = _date_range(query, start_date, end_date).one()
        return int(total or 0), (float(average) if average is not None else None)

    @staticmethod
    def completed_by_site(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[tuple]:
        site = func.coalesce(WorkerVisit.site_address, Client.address, "")
        query = (
            db.query(
                site.label("site_address"),
                func.count(WorkerVisit.id),
                func.coalesce(func.sum(WorkerVisit.worker_count), 0),
            )
            .select_from(WorkerVisit)
            .join(Client, WorkerVisit.client_id == Client.id)
            .filter(WorkerVisit.status == VisitStatus.COMPLETED.value)
        )
        query = _date_range(query, start_date, end_date)
        return query.group_by(site).order_by(site).all()

    @staticmethod
    def completed_by_date(
        db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[tuple]:
        day = func.date(WorkerVisit.visit_date)
        query = db.query(
            day.label("day"),
            func.count(WorkerVisit.id),
            func.coalesce(func.sum(WorkerVisit.worker_count), 0),
        ).filter(WorkerVisit.status == VisitStatus.COMPLETED.value)
        query = _date_range(query, start_date, end_date)
        return query.group_by(day).order_by(day.desc()).all()
