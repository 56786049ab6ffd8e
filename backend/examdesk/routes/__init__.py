"""HTTP routes for ExamDesk."""

from typing import Optional

from fastapi import APIRouter

from ..services import NotificationService
from .course_routes import create_course_routes
from .deps import create_auth_dependency
from .exam_routes import create_exam_routes
from .file_routes import create_file_routes
from .notification_routes import create_notification_routes
from .parent_routes import create_parent_routes
from .submission_routes import create_submission_routes
from .wallet_routes import create_wallet_routes


def create_api_router(db, storage, notifier: Optional[NotificationService] = None) -> APIRouter:
    """Assemble every route group around one database and one file store."""
    notifier = notifier or NotificationService(db)
    get_current_user = create_auth_dependency(db)

    router = APIRouter()
    router.include_router(create_exam_routes(db, storage, get_current_user))
    router.include_router(create_submission_routes(db, storage, get_current_user))
    router.include_router(create_wallet_routes(db, storage, get_current_user, notifier))
    router.include_router(create_course_routes(db, get_current_user))
    router.include_router(create_file_routes(db, storage, get_current_user))
    router.include_router(create_parent_routes(db, storage, get_current_user))
    router.include_router(create_notification_routes(notifier, get_current_user))
    return router


__all__ = ["create_api_router", "create_auth_dependency"]
