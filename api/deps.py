"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

import logging
from typing import Optional
from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import get_db
from api.security import verify_token
from services.context import TrackerContext
from services.patient_service import CurrentUser


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> CurrentUser:
    """
    Resolve the caller from the Bearer token
    Raises 401 when the token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = verify_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_doctor(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Only doctors may pass"""
    if not user.is_doctor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Only doctors can access this endpoint",
        )
    return user


def get_context(request: Request) -> TrackerContext:
    """The TrackerContext built at startup"""
    return request.app.state.context


async def opportunistic_checks(
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    context: TrackerContext = Depends(get_context)
) -> CurrentUser:
    """
    Side effects of every patient-facing request: close the caller's past
    pending doses and, when enabled, queue the cooldown-gated reminder
    trigger after the response
    """
    if user.is_patient:
        try:
            await context.check_patient(user.id, db=db)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Missed-dose check failed for patient {user.id}")

    if settings.REMINDERS_ON_REQUEST:
        background_tasks.add_task(context.trigger_reminders)

    return user


__all__ = [
    "get_db",
    "get_current_user",
    "require_doctor",
    "get_context",
    "opportunistic_checks",
]
