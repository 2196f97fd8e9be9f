"""OTP request schemas shared by the OTP-gated domains"""

from pydantic import BaseModel, field_validator


def normalize_otp(v: str) -> str:
    v = v.strip()
    if not (v.isascii() and v.isdigit()):
        raise ValueError("OTP must contain digits 0-9 only")
    return v


class VerifyOtpRequest(BaseModel):
    otp: str

    @field_validator("otp")
    @classmethod
    def validate_otp(cls, v):
        return normalize_otp(v)
