"""Worker visit router - FastAPI endpoints for worker count capture"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...config import OTP_VERIFY_RATE_LIMIT, OTP_VERIFY_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import User, VisitStatus
from ...rate_limiter import create_rate_limiter
from ...services.sms_service import get_otp_dispatcher
from ...shared.pagination import DEFAULT_PAGE_SIZE, page_envelope
from ...shared.timeutils import Clock, get_clock
from ..otp.schemas import VerifyOtpRequest
from ..otp.service import OtpDispatcher
from .schemas import (
    SubmitWorkerCountRequest,
    WorkerSummaryResponse,
    WorkerVisitCreate,
    WorkerVisitResponse,
    serialize_worker_visit,
)
from .service import WorkerVisitService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/worker-visits", tags=["Worker Visits"])

otp_rate_limit = create_rate_limiter(
    limit=OTP_VERIFY_RATE_LIMIT,
    window_seconds=OTP_VERIFY_RATE_WINDOW_SECONDS,
    key_prefix="worker_visit_otp",
)


def get_worker_visit_service(
    db: Session = Depends(get_db),
    dispatcher: OtpDispatcher = Depends(get_otp_dispatcher),
    clock: Clock = Depends(get_clock),
) -> WorkerVisitService:
    """Dependency injection for WorkerVisitService"""
    return WorkerVisitService(db, dispatcher, clock=clock)


def _scoped_engineer(current_user: User, engineer_id: Optional[str]) -> Optional[str]:
    if current_user.is_admin:
        return engineer_id
    return current_user.engineer_id


@router.post("", response_model=WorkerVisitResponse, status_code=201)
async def create_worker_visit(
    data: WorkerVisitCreate,
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    """Create a visit; the OTP goes out to the client and the admin contact"""
    return serialize_worker_visit(service.create(data, current_user))


@router.get("/all")
async def list_worker_visits(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    status: Optional[str] = Query(None),
    clientId: Optional[str] = Query(None),
    engineerId: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    items, total = service.list_visits(
        page,
        limit,
        status,
        clientId,
        _scoped_engineer(current_user, engineerId),
        startDate,
        endDate,
        search,
    )
    return page_envelope(items, total, page, limit, serialize_worker_visit)


@router.get("/pending")
async def pending_worker_visits(
    engineerId: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    visits = service.pending_visits(_scoped_engineer(current_user, engineerId))
    return {"data": [serialize_worker_visit(v) for v in visits]}


@router.get("/completed")
async def completed_worker_visits(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    clientId: Optional[str] = Query(None),
    engineerId: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    items, total = service.list_visits(
        page,
        limit,
        VisitStatus.COMPLETED.value,
        clientId,
        _scoped_engineer(current_user, engineerId),
        startDate,
        endDate,
        search,
    )
    return page_envelope(items, total, page, limit, serialize_worker_visit)


# ============================================================================
# REPORTS (admin)
# ============================================================================


@router.get("/reports/summary", response_model=WorkerSummaryResponse)
async def summary_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(require_admin),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    return service.summary_report(startDate, endDate)


@router.get("/reports/by-site")
async def by_site_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(require_admin),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    return {"data": service.by_site_report(startDate, endDate)}


@router.get("/reports/by-date")
async def by_date_report(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    _: User = Depends(require_admin),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    return {"data": service.by_date_report(startDate, endDate)}


@router.get("/{visit_id}", response_model=WorkerVisitResponse)
async def get_worker_visit(
    visit_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    return serialize_worker_visit(service.get_visit(visit_id, current_user))


# ============================================================================
# OTP WORKFLOW
# ============================================================================


@router.post("/{visit_id}/resend-otp", response_model=WorkerVisitResponse)
async def resend_otp(
    visit_id: str,
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    return serialize_worker_visit(service.resend_otp(visit_id, current_user))


@router.post("/{visit_id}/verify-otp", response_model=WorkerVisitResponse)
async def verify_otp(
    visit_id: str,
    data: VerifyOtpRequest,
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
    _: None = Depends(otp_rate_limit),
):
    return serialize_worker_visit(service.verify_otp(visit_id, data.otp, current_user))


@router.post("/{visit_id}/submit-count", response_model=WorkerVisitResponse)
async def submit_count(
    visit_id: str,
    data: SubmitWorkerCountRequest,
    current_user: User = Depends(get_current_user),
    service: WorkerVisitService = Depends(get_worker_visit_service),
    _: None = Depends(otp_rate_limit),
):
    return serialize_worker_visit(service.submit_count(visit_id, data, current_user))
