"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import Appointment
from ...shared.timeutils import to_naive_utc
from ...shared.validators import validate_mobile_number, validate_non_blank
from ..directory.schemas import (
    ClientResponse,
    EngineerResponse,
    serialize_client,
    serialize_engineer,
)


class AppointmentCreate(BaseModel):
    """Schema for scheduling an appointment"""

    clientId: str
    engineerId: str
    visitDate: datetime
    purpose: Optional[str] = None
    siteAddress: Optional[str] = None
    googleMapsLink: Optional[str] = None
    otpMobileNumber: Optional[str] = None

    @field_validator("visitDate")
    @classmethod
    def normalize_visit_date(cls, v):
        return to_naive_utc(v)

    @field_validator("purpose", "siteAddress", "googleMapsLink")
    @classmethod
    def strip_text(cls, v):
        return validate_non_blank(v)

    @field_validator("otpMobileNumber")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_mobile_number(v)
        return None


class AppointmentUpdate(BaseModel):
    """Schema for editing a scheduled appointment"""

    engineerId: Optional[str] = None
    visitDate: Optional[datetime] = None
    purpose: Optional[str] = None
    siteAddress: Optional[str] = None
    googleMapsLink: Optional[str] = None
    otpMobileNumber: Optional[str] = None

    @field_validator("visitDate")
    @classmethod
    def normalize_visit_date(cls, v):
        if v is None:
            return v
        return to_naive_utc(v)

    @field_validator("otpMobileNumber")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_mobile_number(v)
        return v


class FeedbackRequest(BaseModel):
    feedback: str


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class AppointmentResponse(BaseModel):
    """Appointment as returned to clients. The OTP code itself is never exposed."""

    id: str
    clientId: str
    client: Optional[ClientResponse] = None
    engineerId: str
    engineer: Optional[EngineerResponse] = None
    visitDate: datetime
    purpose: Optional[str] = None
    siteAddress: Optional[str] = None
    googleMapsLink: Optional[str] = None
    otpMobileNumber: Optional[str] = None
    status: str
    otpSentAt: Optional[datetime] = None
    otpExpiresAt: Optional[datetime] = None
    otpAttempts: int = 0
    verifiedAt: Optional[datetime] = None
    feedback: Optional[str] = None
    completedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    cancellationReason: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class DashboardStatsResponse(BaseModel):
    totalAppointments: int
    pendingVerifications: int
    completedToday: int
    upcomingAppointments: int


def serialize_appointment(a: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=a.id,
        clientId=a.client_id,
        client=serialize_client(a.client) if a.client else None,
        engineerId=a.engineer_id,
        engineer=serialize_engineer(a.engineer) if a.engineer else None,
        visitDate=a.visit_date,
        purpose=a.purpose,
        siteAddress=a.site_address,
        googleMapsLink=a.google_maps_link,
        otpMobileNumber=a.otp_mobile_number,
        status=a.status,
        otpSentAt=a.otp_sent_at,
        otpExpiresAt=a.otp_expires_at,
        otpAttempts=a.otp_attempts or 0,
        verifiedAt=a.verified_at,
        feedback=a.feedback,
        completedAt=a.completed_at,
        cancelledAt=a.cancelled_at,
        cancellationReason=a.cancellation_reason,
        createdAt=a.created_at,
        updatedAt=a.updated_at,
    )
