"""Appointment router - FastAPI endpoints for the appointment lifecycle"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...config import OTP_VERIFY_RATE_LIMIT, OTP_VERIFY_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...services.sms_service import get_otp_dispatcher
from ...shared.pagination import DEFAULT_PAGE_SIZE, page_envelope
from ...shared.timeutils import Clock, get_clock
from ..otp.schemas import VerifyOtpRequest
from ..otp.service import OtpDispatcher
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    CancelRequest,
    DashboardStatsResponse,
    FeedbackRequest,
    serialize_appointment,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

verify_rate_limit = create_rate_limiter(
    limit=OTP_VERIFY_RATE_LIMIT,
    window_seconds=OTP_VERIFY_RATE_WINDOW_SECONDS,
    key_prefix="appointment_verify",
)


def get_appointment_service(
    db: Session = Depends(get_db),
    dispatcher: OtpDispatcher = Depends(get_otp_dispatcher),
    clock: Clock = Depends(get_clock),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, dispatcher, clock=clock)


# ============================================================================
# LISTING & DASHBOARD
# ============================================================================


@router.get("")
async def list_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    status: Optional[str] = Query(None),
    clientId: Optional[str] = Query(None),
    engineerId: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """List appointments. Engineers only see their own."""
    if not current_user.is_admin:
        engineerId = current_user.engineer_id
    items, total = service.list_appointments(
        page, limit, status, clientId, engineerId, startDate, endDate, search
    )
    return page_envelope(items, total, page, limit, serialize_appointment)


@router.get("/dashboard")
async def engineer_dashboard(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Open appointments assigned to the calling engineer"""
    if not current_user.engineer_id:
        return {"data": []}
    appointments = service.engineer_dashboard(current_user.engineer_id)
    return {"data": [serialize_appointment(a) for a in appointments]}


@router.get("/dashboard/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.dashboard_stats()


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.get_appointment(appointment_id, current_user))


# ============================================================================
# ADMIN OPERATIONS
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def schedule_appointment(
    data: AppointmentCreate,
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.schedule(data))


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.update_details(appointment_id, data))


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    data: Optional[CancelRequest] = None,
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.cancel(appointment_id, data.reason if data else None))


# ============================================================================
# OTP WORKFLOW
# ============================================================================


@router.post("/{appointment_id}/send-otp", response_model=AppointmentResponse)
async def send_otp(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.send_otp(appointment_id, current_user))


@router.post("/{appointment_id}/resend-otp", response_model=AppointmentResponse)
async def resend_otp(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(service.resend_otp(appointment_id, current_user))


@router.post("/{appointment_id}/verify-otp", response_model=AppointmentResponse)
async def verify_otp(
    appointment_id: str,
    data: VerifyOtpRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
    _: None = Depends(verify_rate_limit),
):
    return serialize_appointment(service.verify_otp(appointment_id, data.otp, current_user))


@router.post("/{appointment_id}/feedback", response_model=AppointmentResponse)
async def submit_feedback(
    appointment_id: str,
    data: FeedbackRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return serialize_appointment(
        service.submit_feedback(appointment_id, data.feedback, current_user)
    )
