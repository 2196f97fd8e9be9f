"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from ...models import Appointment, AppointmentStatus, Client
from ...shared.errors import Conflict


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_by_id(db: Session, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.client), joinedload(Appointment.engineer))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def create(db: Session, **data) -> Appointment:
        appointment = Appointment(**data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        """
        Commit pending changes to an appointment.
        The version column makes the UPDATE conditional on the state we read;
        a concurrent writer turns into Conflict.
        """
        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise Conflict() from e
        db.refresh(appointment)
        return appointment

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
        """Search and filter appointments, newest visit first"""
        query = db.query(Appointment).options(
            joinedload(Appointment.client), joinedload(Appointment.engineer)
        )

        if status and status != "all":
            query = query.filter(Appointment.status == status)

        if client_id:
            query = query.filter(Appointment.client_id == client_id)

        if engineer_id:
            query = query.filter(Appointment.engineer_id == engineer_id)

        if start_date:
            query = query.filter(Appointment.visit_date >= start_date)

        if end_date:
            query = query.filter(Appointment.visit_date <= end_date)

        if search:
            search_term = f"%{search.lower()}%"
            query = query.join(Client, Appointment.client_id == Client.id).filter(
                or_(
                    Appointment.purpose.ilike(search_term),
                    Appointment.site_address.ilike(search_term),
                    Client.name.ilike(search_term),
                )
            )

        return query.order_by(Appointment.visit_date.desc())

    @staticmethod
    def get_engineer_open_appointments(db: Session, engineer_id: str) -> list[Appointment]:
        """Appointments still needing action from the engineer, soonest first"""
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.client), joinedload(Appointment.engineer))
            .filter(
                Appointment.engineer_id == engineer_id,
                Appointment.status.in_(
                    [
                        AppointmentStatus.SCHEDULED.value,
                        AppointmentStatus.OTP_SENT.value,
                        AppointmentStatus.VERIFIED.value,
                    ]
                ),
            )
            .order_by(Appointment.visit_date.asc())
            .all()
        )

    @staticmethod
    def count(db: Session, *criteria) -> int:
        return db.query(func.count(Appointment.id)).filter(*criteria).scalar() or 0
