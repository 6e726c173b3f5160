"""
API Security
Access token issuing and verification
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from jose import JWTError, jwt

from config import settings
from models import UserRole
from services.patient_service import CurrentUser


logger = logging.getLogger(__name__)


def create_access_token(
    user_id: int,
    role: UserRole,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a signed access token for a patient or doctor"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode: Dict[str, Any] = {
        "sub": str(user_id),
        "id": user_id,
        "role": UserRole(role).value,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: Optional[str]) -> Optional[CurrentUser]:
    """
    Decode a token into the caller's identity.

    Returns None for missing, expired or tampered tokens and for tokens
    without a valid id and role.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None

    try:
        return CurrentUser(id=int(payload["id"]), role=UserRole(payload["role"]))
    except (KeyError, TypeError, ValueError):
        logger.debug("Access token is missing id or role")
        return None
