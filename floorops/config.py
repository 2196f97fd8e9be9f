import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./floorops.db")

# Security - tokens are issued by the external auth service with this shared key
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = "HS256"

# OTP policy
OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
OTP_TTL_HOURS = int(os.getenv("OTP_TTL_HOURS", "24"))
OTP_RESEND_COOLDOWN_SECONDS = int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60"))
APPOINTMENT_OTP_MAX_ATTEMPTS = int(os.getenv("APPOINTMENT_OTP_MAX_ATTEMPTS", "3"))

# Administrative contact that receives a copy of every worker-visit OTP
ADMIN_MOBILE_NUMBER = os.getenv("ADMIN_MOBILE_NUMBER")

# Mobile numbers without a country code get this prefix (India by default)
DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "91")

# Inventory: stock-out may drive the balance negative unless disabled
INVENTORY_ALLOW_NEGATIVE_STOCK = (
    os.getenv("INVENTORY_ALLOW_NEGATIVE_STOCK", "true").lower() == "true"
)

# Twilio SMS gateway (OTP delivery). Delivery is skipped when credentials are missing.
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

# Request throttling on OTP endpoints
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
OTP_VERIFY_RATE_LIMIT = int(os.getenv("OTP_VERIFY_RATE_LIMIT", "10"))
OTP_VERIFY_RATE_WINDOW_SECONDS = int(os.getenv("OTP_VERIFY_RATE_WINDOW_SECONDS", "600"))

# CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


def _feature_enabled(name: str) -> bool:
    """Unset or empty means enabled; otherwise only 'true' / '1' enable the feature"""
    value = os.getenv(name)
    if value is None or value == "":
        return True
    return value.strip().lower() in ("true", "1")


FEATURE_APPOINTMENTS = _feature_enabled("FEATURE_APPOINTMENTS")
FEATURE_INVENTORY = _feature_enabled("FEATURE_INVENTORY")
FEATURE_WORKER_COUNTS = _feature_enabled("FEATURE_WORKER_COUNTS")
FEATURE_DIRECTORY = _feature_enabled("FEATURE_DIRECTORY")
