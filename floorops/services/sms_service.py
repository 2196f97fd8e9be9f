"""
Twilio SMS Service
Outbound messaging gateway used for OTP delivery
"""

import logging
from typing import Optional

import httpx
from fastapi import BackgroundTasks

from ..config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
    TWILIO_MESSAGING_SERVICE_SID,
)

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsGateway:
    """Sends SMS via the Twilio REST API. Never raises; failures are logged."""

    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = TWILIO_FROM_NUMBER,
        messaging_service_sid: Optional[str] = TWILIO_MESSAGING_SERVICE_SID,
        http_client: Optional[httpx.Client] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid
        self.http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(
            self.account_sid
            and self.auth_token
            and (self.from_number or self.messaging_service_sid)
        )

    def send(
        self,
        to_phone: str,
        message_body: str,
        message_type: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Send an SMS

        Args:
            to_phone: Recipient phone number (E.164 format)
            message_body: SMS message content
            message_type: Type of message (appointment_otp, worker_visit_otp)
            entity_type: Optional entity type (Appointment, WorkerVisit)
            entity_id: Optional entity ID

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        if not to_phone:
            logger.debug(f"No phone number provided for {entity_type} {entity_id}")
            return False, "No phone number provided"

        if not to_phone.startswith("+"):
            logger.warning(f"Phone number not in E.164 format: {to_phone}")
            return False, "Phone number must be in E.164 format (e.g., +919876543210)"

        if not self.is_configured:
            logger.warning(
                f"SMS gateway not configured, {message_type} for {entity_type} {entity_id} not delivered"
            )
            return False, "SMS gateway not configured"

        data = {"To": to_phone, "Body": message_body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number

        try:
            logger.info(f"Sending {message_type} SMS to {to_phone} for {entity_type} {entity_id}")
            client = self.http_client or httpx.Client()
            try:
                response = client.post(
                    f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data=data,
                    timeout=10.0,
                )
            finally:
                if self.http_client is None:
                    client.close()

            if response.status_code in [200, 201]:
                message_sid = response.json().get("sid")
                logger.info(f"SMS sent successfully: {message_type} to {to_phone} (SID: {message_sid})")
                return True, None

            error_data = response.json()
            error_message = error_data.get("message", "Unknown error")
            error_code = error_data.get("code")
            logger.error(f"Twilio API error [{error_code}]: {error_message}")
            return False, error_message

        except httpx.HTTPError as e:
            logger.error(f"Twilio API error: {str(e)}")
            return False, str(e)
        except Exception as e:
            logger.error(f"Error sending SMS: {str(e)}")
            return False, str(e)


def build_otp_message(code: str, subject_type: str) -> str:
    if subject_type == "WorkerVisit":
        return (
            f"{code} is your worker count verification code. "
            f"Share it with the engineer only after confirming the worker count on site."
        )
    return (
        f"{code} is your site visit verification code. "
        f"Share it with the engineer when they arrive. Valid for 24 hours."
    )


class SmsOtpDispatcher:
    """Delivers OTP codes over SMS, fire-and-forget"""

    def __init__(self, gateway: Optional[SmsGateway] = None):
        self.gateway = gateway or SmsGateway()

    def dispatch(self, destination: str, code: str, subject_type: str, subject_id: str) -> None:
        ok, error = self.gateway.send(
            to_phone=destination,
            message_body=build_otp_message(code, subject_type),
            message_type=f"{subject_type.lower()}_otp",
            entity_type=subject_type,
            entity_id=subject_id,
        )
        if not ok:
            logger.error(f"OTP delivery failed for {subject_type} {subject_id}: {error}")


class BackgroundOtpDispatcher:
    """Queues delivery to run after the response, so it never blocks issuance"""

    def __init__(self, background_tasks: BackgroundTasks, dispatcher: Optional[SmsOtpDispatcher] = None):
        self.background_tasks = background_tasks
        self.dispatcher = dispatcher or SmsOtpDispatcher()

    def dispatch(self, destination: str, code: str, subject_type: str, subject_id: str) -> None:
        self.background_tasks.add_task(
            self.dispatcher.dispatch, destination, code, subject_type, subject_id
        )


def get_otp_dispatcher(background_tasks: BackgroundTasks) -> BackgroundOtpDispatcher:
    """Dependency injection for OTP delivery"""
    return BackgroundOtpDispatcher(background_tasks)
