"""
Appointment Lifecycle Manager

SCHEDULED → OTP_SENT → VERIFIED → COMPLETED, with CANCELLED as an
administrative terminal state. Every transition checks its legal source
state and commits through the versioned save.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import ensure_assigned_or_admin
from ...models import Appointment, AppointmentStatus, User
from ...shared.errors import (
    AttemptsExceeded,
    InvalidCode,
    InvalidState,
    NotFound,
    ValidationFailed,
)
from ...shared.pagination import paginate
from ...shared.timeutils import Clock, day_bounds, date_range, utcnow
from ..directory.service import DirectoryService
from ..otp.service import APPOINTMENT_OTP_POLICY, OtpDispatcher, OtpIssuer, OtpPolicy
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentUpdate

logger = logging.getLogger(__name__)

SUBJECT_TYPE = "Appointment"

# Request field -> column for details editable while SCHEDULED
UPDATABLE_COLUMNS = {
    "visitDate": "visit_date",
    "purpose": "purpose",
    "siteAddress": "site_address",
    "googleMapsLink": "google_maps_link",
    "otpMobileNumber": "otp_mobile_number",
}


class AppointmentService:
    """Service layer for the appointment state machine"""

    def __init__(
        self,
        db: Session,
        dispatcher: OtpDispatcher,
        clock: Clock = utcnow,
        otp_policy: OtpPolicy = APPOINTMENT_OTP_POLICY,
    ):
        self.db = db
        self.repo = AppointmentRepository()
        self.directory = DirectoryService(db)
        self.dispatcher = dispatcher
        self.clock = clock
        self.otp = OtpIssuer(otp_policy, clock=clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: str, user: Optional[User] = None) -> Appointment:
        appointment = self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        if user is not None:
            ensure_assigned_or_admin(user, appointment.engineer_id)
        return appointment

    def list_appointments(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        engineer_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> tuple[list[Appointment], int]:
        start_date, end_date = date_range(start_date, end_date)
        query = self.repo.search(
            self.db,
            status=status,
            client_id=client_id,
            engineer_id=engineer_id,
            start_date=start_date,
            end_date=end_date,
            search=search,
        )
        return paginate(query, page, limit)

    def engineer_dashboard(self, engineer_id: str) -> list[Appointment]:
        return self.repo.get_engineer_open_appointments(self.db, engineer_id)

    def dashboard_stats(self) -> dict:
        now = self.clock()
        today_start, today_end = day_bounds(now)
        return {
            "totalAppointments": self.repo.count(self.db),
            "pendingVerifications": self.repo.count(
                self.db, Appointment.status == AppointmentStatus.OTP_SENT.value
            ),
            "completedToday": self.repo.count(
                self.db,
                Appointment.status == AppointmentStatus.COMPLETED.value,
                Appointment.completed_at >= today_start,
                Appointment.completed_at <= today_end,
            ),
            "upcomingAppointments": self.repo.count(
                self.db,
                Appointment.status == AppointmentStatus.SCHEDULED.value,
                Appointment.visit_date >= now,
            ),
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def schedule(self, data: AppointmentCreate) -> Appointment:
        """Create an appointment in SCHEDULED. visitDate may be in the past (backfill)."""
        self.directory.require_active_client(data.clientId)
        self.directory.require_active_engineer(data.engineerId)

        appointment = self.repo.create(
            self.db,
            client_id=data.clientId,
            engineer_id=data.engineerId,
            visit_date=data.visitDate,
            purpose=data.purpose,
            site_address=data.siteAddress,
            google_maps_link=data.googleMapsLink,
            otp_mobile_number=data.otpMobileNumber,
            status=AppointmentStatus.SCHEDULED.value,
            otp_attempts=0,
        )
        logger.info(f"Appointment {appointment.id} scheduled for {appointment.visit_date}")
        return appointment

    def update_details(
        self, appointment_id: str, data: AppointmentUpdate
    ) -> Appointment:
        """Apply the fields present in the request; an explicit null clears an optional field"""
        appointment = self.get_appointment(appointment_id)
        self._require_status(appointment, AppointmentStatus.SCHEDULED)

        fields = data.model_dump(exclude_unset=True)
        engineer_id = fields.pop("engineerId", None)
        if engineer_id is not None and engineer_id != appointment.engineer_id:
            self.directory.require_active_engineer(engineer_id)
            appointment.engineer_id = engineer_id

        if fields.get("visitDate") is None:
            fields.pop("visitDate", None)

        for key, value in fields.items():
            setattr(appointment, UPDATABLE_COLUMNS[key], value)

        return self.repo.save(self.db, appointment)

    def send_otp(self, appointment_id: str, user: Optional[User] = None) -> Appointment:
        appointment = self.get_appointment(appointment_id, user)
        self._require_open(appointment)
        self.otp.ensure_not_verified(appointment)
        self._require_status(appointment, AppointmentStatus.SCHEDULED)

        destination = self._otp_destination(appointment)
        code = self.otp.issue(appointment)
        appointment.status = AppointmentStatus.OTP_SENT.value
        self.repo.save(self.db, appointment)

        logger.info(f"Appointment {appointment.id} OTP issued")
        self.otp.deliver(self.dispatcher, SUBJECT_TYPE, appointment, code, [destination])
        return appointment

    def resend_otp(self, appointment_id: str, user: Optional[User] = None) -> Appointment:
        appointment = self.get_appointment(appointment_id, user)
        self._require_open(appointment)
        self.otp.ensure_not_verified(appointment)
        self._require_status(appointment, AppointmentStatus.OTP_SENT)

        destination = self._otp_destination(appointment)
        code = self.otp.resend(appointment)
        self.repo.save(self.db, appointment)

        logger.info(f"Appointment {appointment.id} OTP re-issued")
        self.otp.deliver(self.dispatcher, SUBJECT_TYPE, appointment, code, [destination])
        return appointment

    def verify_otp(self, appointment_id: str, code: str, user: Optional[User] = None) -> Appointment:
        appointment = self.get_appointment(appointment_id, user)
        self._require_open(appointment)
        self.otp.ensure_not_verified(appointment)
        self._require_status(appointment, AppointmentStatus.OTP_SENT)

        try:
            self.otp.verify(appointment, code)
        except (InvalidCode, AttemptsExceeded):
            # Persist the attempt counter before reporting the failure
            self.repo.save(self.db, appointment)
            logger.warning(
                f"Appointment {appointment.id} OTP mismatch (attempt {appointment.otp_attempts})"
            )
            raise

        appointment.status = AppointmentStatus.VERIFIED.value
        self.repo.save(self.db, appointment)
        logger.info(f"Appointment {appointment.id} verified")
        return appointment

    def submit_feedback(
        self, appointment_id: str, feedback: str, user: Optional[User] = None
    ) -> Appointment:
        """First feedback on a VERIFIED appointment completes it; later calls overwrite the text"""
        appointment = self.get_appointment(appointment_id, user)
        self._require_status(appointment, AppointmentStatus.VERIFIED, AppointmentStatus.COMPLETED)

        feedback = (feedback or "").strip()
        if not feedback:
            raise ValidationFailed("Feedback cannot be empty")

        appointment.feedback = feedback
        if appointment.status == AppointmentStatus.VERIFIED.value:
            appointment.status = AppointmentStatus.COMPLETED.value
            appointment.completed_at = self.clock()
            logger.info(f"Appointment {appointment.id} completed")

        return self.repo.save(self.db, appointment)

    def cancel(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        """Administrative override from any non-terminal state"""
        appointment = self.get_appointment(appointment_id)
        self._require_status(
            appointment,
            AppointmentStatus.SCHEDULED,
            AppointmentStatus.OTP_SENT,
            AppointmentStatus.VERIFIED,
        )

        self.otp.clear(appointment)
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = self.clock()
        appointment.cancellation_reason = (reason or "").strip() or None
        self.repo.save(self.db, appointment)
        logger.info(f"Appointment {appointment.id} cancelled")
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_status(appointment: Appointment, *allowed: AppointmentStatus) -> None:
        if appointment.status not in {s.value for s in allowed}:
            logger.warning(
                f"Rejected transition on appointment {appointment.id} in state {appointment.status}"
            )
            raise InvalidState(
                f"Appointment is {appointment.status}; expected {' or '.join(s.value for s in allowed)}",
                currentStatus=appointment.status,
            )

    def _require_open(self, appointment: Appointment) -> None:
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise InvalidState("Appointment is cancelled", currentStatus=appointment.status)

    def _otp_destination(self, appointment: Appointment) -> str:
        destination = appointment.otp_mobile_number or (
            appointment.client.primary_contact if appointment.client else None
        )
        if not destination:
            raise ValidationFailed("No mobile number available for OTP delivery")
        return destination
