"""
Domain Exceptions
Error taxonomy shared by services and the API layer
"""

from fastapi import status


class AdherenceError(Exception):
    """Base class for errors reported back to the caller"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AdherenceError):
    """Missing or malformed identifiers, unparseable status or period"""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AdherenceError):
    """Unknown patient, doctor or prescription"""
    status_code = status.HTTP_404_NOT_FOUND


class AuthorizationError(AdherenceError):
    """Wrong role or wrong patient-doctor pairing"""
    status_code = status.HTTP_403_FORBIDDEN


class AmbiguousUpsertError(AdherenceError):
    """Status update that can neither update an existing dose nor create a new one"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Unable to determine if medication record should be created or updated"):
        super().__init__(message)


class CollaboratorFailure(Exception):
    """Email or notification delivery failure. Logged, never surfaced to users."""
