import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import verify_jwt_token
from .shared.errors import PermissionDenied

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the dashboard user from a bearer token issued by the auth service"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    payload = verify_jwt_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token",
            headers={"X-Token-Expired": "true"},
        )

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user:
        logger.warning(f"Token subject {payload['sub']} has no matching user")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def ensure_assigned_or_admin(user: User, engineer_id: str) -> None:
    """Engineers may only act on records assigned to them"""
    if user.is_admin:
        return
    if not user.engineer_id or user.engineer_id != engineer_id:
        raise PermissionDenied("You are not assigned to this visit")
