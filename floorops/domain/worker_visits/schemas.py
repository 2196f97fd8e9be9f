"""Worker visit domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import WorkerVisit
from ...shared.timeutils import to_naive_utc
from ...shared.validators import validate_non_blank
from ..directory.schemas import (
    ClientResponse,
    EngineerResponse,
    serialize_client,
    serialize_engineer,
)
from ..otp.schemas import normalize_otp


class WorkerVisitCreate(BaseModel):
    clientId: str
    engineerId: str
    visitDate: datetime
    siteAddress: Optional[str] = None

    @field_validator("visitDate")
    @classmethod
    def normalize_visit_date(cls, v):
        return to_naive_utc(v)

    @field_validator("siteAddress")
    @classmethod
    def strip_text(cls, v):
        return validate_non_blank(v)


class SubmitWorkerCountRequest(BaseModel):
    workerCount: int = Field(..., ge=0, le=10000)
    otp: Optional[str] = None  # Not needed once the visit is OTP_VERIFIED
    remarks: Optional[str] = None

    @field_validator("otp")
    @classmethod
    def validate_otp(cls, v):
        if v is None or not v.strip():
            return None
        return normalize_otp(v)

    @field_validator("remarks")
    @classmethod
    def strip_text(cls, v):
        return validate_non_blank(v)


class WorkerVisitResponse(BaseModel):
    """Worker visit as returned to clients. The OTP code itself is never exposed."""

    id: str
    clientId: str
    client: Optional[ClientResponse] = None
    engineerId: str
    engineer: Optional[EngineerResponse] = None
    visitDate: datetime
    siteAddress: Optional[str] = None
    otpSentAt: Optional[datetime] = None
    otpExpiresAt: Optional[datetime] = None
    status: str
    verifiedAt: Optional[datetime] = None
    workerCount: Optional[int] = None
    remarks: Optional[str] = None
    completedAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class WorkerSummaryResponse(BaseModel):
    totalVisits: int
    completedVisits: int
    pendingVisits: int
    totalWorkers: int
    averageWorkers: float


def serialize_worker_visit(v: WorkerVisit) -> WorkerVisitResponse:
    return WorkerVisitResponse(
        id=v.id,
        clientId=v.client_id,
        client=serialize_client(v.client) if v.client else None,
        engineerId=v.engineer_id,
        engineer=serialize_engineer(v.engineer) if v.engineer else None,
        visitDate=v.visit_date,
        siteAddress=v.site_address,
        otpSentAt=v.otp_sent_at,
        otpExpiresAt=v.otp_expires_at,
        status=v.status,
        verifiedAt=v.verified_at,
        workerCount=v.worker_count,
        remarks=v.remarks,
        completedAt=v.completed_at,
        createdAt=v.created_at,
        updatedAt=v.updated_at,
    )
