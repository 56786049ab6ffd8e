"""
Shared route helpers: session auth, role checks, domain error translation.
"""

import logging

from fastapi import HTTPException, Request

from ..errors import (
    AccessDenied,
    ConcurrencyConflict,
    ExamDeskError,
    InsufficientFunds,
    InvalidStateTransition,
    NotFoundError,
    PermissionDenied,
    RecordIntegrityError,
    UploadFailed,
    ValidationFailed,
)
from ..models import Profile
from ..utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def create_auth_dependency(db):
    """Build the ``get_current_user`` dependency bound to a database."""

    async def get_current_user(request: Request) -> Profile:
        """Get current user from session token"""
        session_token = request.cookies.get("session_token")

        if not session_token:
            auth_header = request.headers.get("Authorization")
            if auth_header and auth_header.startswith("Bearer "):
                session_token = auth_header.split(" ")[1]

        if not session_token:
            raise HTTPException(status_code=401, detail="Not authenticated")

        session = await db.user_sessions.find_one(
            {"session_token": session_token},
            {"_id": 0}
        )

        if not session:
            raise HTTPException(status_code=401, detail="Invalid session")

        expires_at = ensure_utc(session.get("expires_at"))
        if expires_at is None or expires_at < utcnow():
            raise HTTPException(status_code=401, detail="Session expired")

        user = await db.profiles.find_one(
            {"user_id": session["user_id"]},
            {"_id": 0}
        )

        if not user:
            raise HTTPException(status_code=401, detail="User not found")

        return Profile(**user)

    return get_current_user


def require_role(user: Profile, *roles: str) -> None:
    if user.role not in roles:
        raise HTTPException(
            status_code=403,
            detail=f"This action is only available to: {', '.join(roles)}"
        )


def http_error(error: ExamDeskError) -> HTTPException:
    """Translate a domain error into an HTTP error."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, AccessDenied):
        return HTTPException(status_code=403, detail={
            "reason": error.reason.value,
            "message": str(error),
            "last_score": error.last_score,
        })
    if isinstance(error, InsufficientFunds):
        return HTTPException(status_code=402, detail={
            "reason": "insufficient_funds",
            "message": "Your wallet balance is too low. Please top up your wallet first.",
            "balance": error.balance,
            "required": error.required,
        })
    if isinstance(error, PermissionDenied):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, ValidationFailed):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, (InvalidStateTransition, ConcurrencyConflict)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, UploadFailed):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, RecordIntegrityError):
        return HTTPException(status_code=500, detail="Stored record is malformed")
    return HTTPException(status_code=500, detail=str(error))


def internal_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"Error {action}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Internal server error while {action}")


async def is_parent_of(db, parent: Profile, student_id: str) -> bool:
    """Parents are linked to students through the student's parent_phone."""
    if parent.role != "parent" or not parent.phone_number:
        return False
    student = await db.profiles.find_one(
        {"user_id": student_id, "role": "student", "parent_phone": parent.phone_number},
        {"_id": 0, "user_id": 1}
    )
    return student is not None
