"""
File routes - serve images stored in GridFS.

Endpoints:
- GET /api/files/{file_id}

Files uploaded for a student (essay answers, transfer screenshots) are
visible to that student, their linked parents and teachers only.
"""

from fastapi import APIRouter, Depends, HTTPException, Response

from ..errors import ExamDeskError
from ..models import Profile
from .deps import http_error, internal_error, is_parent_of


def create_file_routes(db, storage, get_current_user) -> APIRouter:

    router = APIRouter(prefix="/api/files", tags=["files"])

    async def can_read(user: Profile, metadata: dict) -> bool:
        owner = metadata.get("student_id")
        if owner is None or user.role == "teacher" or owner == user.user_id:
            return True
        return await is_parent_of(db, user, owner)

    @router.get("/{file_id}")
    async def get_file(file_id: str, user: Profile = Depends(get_current_user)):
        try:
            data, content_type, metadata = await storage.download(file_id)
            if not await can_read(user, metadata):
                raise HTTPException(status_code=404, detail="File not found")
            return Response(
                content=data,
                media_type=content_type,
                headers={"Cache-Control": "private, max-age=3600"}
            )
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("loading file", e)

    return router
