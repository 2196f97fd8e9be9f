"""
OTP Issuer & Verifier

One implementation shared by every OTP-gated entity. A subject is any record
carrying the otp / otp_sent_at / otp_expires_at / verified_at columns (and
otp_attempts when the policy has an attempt ceiling). The subject record is the
only store for the code, so issuing always supersedes the previous code.
"""

import hmac
import logging
import math
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from ...config import (
    APPOINTMENT_OTP_MAX_ATTEMPTS,
    OTP_LENGTH,
    OTP_RESEND_COOLDOWN_SECONDS,
    OTP_TTL_HOURS,
)
from ...shared.errors import (
    AlreadyVerified,
    AttemptsExceeded,
    Expired,
    InvalidCode,
    InvalidState,
    RateLimited,
)
from ...shared.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)


class OtpSubject(Protocol):
    id: str
    otp: Optional[str]
    otp_sent_at: Optional[datetime]
    otp_expires_at: Optional[datetime]
    verified_at: Optional[datetime]


class OtpDispatcher(Protocol):
    """Outbound delivery of a code. Implementations must never raise."""

    def dispatch(self, destination: str, code: str, subject_type: str, subject_id: str) -> None: ...


@dataclass(frozen=True)
class OtpPolicy:
    length: int = OTP_LENGTH
    ttl: timedelta = timedelta(hours=OTP_TTL_HOURS)
    resend_cooldown_seconds: int = OTP_RESEND_COOLDOWN_SECONDS
    max_attempts: Optional[int] = None

    @property
    def tracks_attempts(self) -> bool:
        return self.max_attempts is not None


APPOINTMENT_OTP_POLICY = OtpPolicy(max_attempts=APPOINTMENT_OTP_MAX_ATTEMPTS)
# Worker visits record no attempt counter
WORKER_VISIT_OTP_POLICY = OtpPolicy()


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Generate a cryptographically secure random numeric OTP code"""
    return "".join(secrets.choice(string.digits) for _ in range(length))


class OtpIssuer:
    """Issues, re-issues and checks codes on a subject record.

    Methods only mutate the subject; persisting it (with its version check)
    is the caller's job, as is delivering the code after the commit.
    """

    def __init__(self, policy: OtpPolicy, clock: Clock = utcnow):
        self.policy = policy
        self.clock = clock

    def ensure_not_verified(self, subject: OtpSubject) -> None:
        if subject.verified_at is not None:
            raise AlreadyVerified()

    def issue(self, subject: OtpSubject) -> str:
        """Bind a fresh code to the subject and start its expiry window"""
        self.ensure_not_verified(subject)

        now = self.clock()
        code = generate_otp(self.policy.length)
        subject.otp = code
        subject.otp_sent_at = now
        subject.otp_expires_at = now + self.policy.ttl
        if self.policy.tracks_attempts:
            subject.otp_attempts = 0
        return code

    def retry_after(self, subject: OtpSubject) -> int:
        """Seconds left on the resend cooldown, 0 when a resend is allowed"""
        if subject.otp_sent_at is None:
            return 0
        elapsed = (self.clock() - subject.otp_sent_at).total_seconds()
        remaining = self.policy.resend_cooldown_seconds - elapsed
        if remaining <= 0:
            return 0
        return max(1, math.ceil(remaining))

    def resend(self, subject: OtpSubject) -> str:
        self.ensure_not_verified(subject)

        retry_after = self.retry_after(subject)
        if retry_after:
            logger.warning(f"OTP resend for {subject.id} rate limited ({retry_after}s left)")
            raise RateLimited(retry_after)
        return self.issue(subject)

    def verify(self, subject: OtpSubject, submitted_code: str) -> datetime:
        """
        Check a submitted code.

        Raises Expired, AttemptsExceeded or InvalidCode on failure. A mismatch
        increments the attempt counter, so the caller must persist the subject
        before propagating InvalidCode / AttemptsExceeded. On success the code
        is cleared and verified_at is stamped.
        """
        self.ensure_not_verified(subject)

        if subject.otp is None:
            raise InvalidState("No OTP has been issued")

        now = self.clock()
        if now > subject.otp_expires_at:
            raise Expired()

        if self.policy.tracks_attempts:
            if subject.otp_attempts >= self.policy.max_attempts:
                raise AttemptsExceeded()
            subject.otp_attempts += 1

        submitted = (submitted_code or "").strip().encode()
        if not hmac.compare_digest(subject.otp.encode(), submitted):
            if not self.policy.tracks_attempts:
                raise InvalidCode()
            remaining = self.policy.max_attempts - subject.otp_attempts
            if remaining <= 0:
                raise AttemptsExceeded()
            raise InvalidCode(
                f"Invalid OTP. {remaining} attempts remaining", remainingAttempts=remaining
            )

        subject.otp = None
        subject.otp_sent_at = None
        subject.otp_expires_at = None
        subject.verified_at = now
        return now

    def clear(self, subject: OtpSubject) -> None:
        """Drop an outstanding code without verifying it"""
        subject.otp = None
        subject.otp_sent_at = None
        subject.otp_expires_at = None

    @staticmethod
    def deliver(
        dispatcher: OtpDispatcher,
        subject_type: str,
        subject: OtpSubject,
        code: str,
        destinations: Iterable[Optional[str]],
    ) -> None:
        """Hand the code to the dispatcher once per distinct destination"""
        seen = set()
        for destination in destinations:
            if not destination or destination in seen:
                continue
            seen.add(destination)
            dispatcher.dispatch(destination, code, subject_type, subject.id)
