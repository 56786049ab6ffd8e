"""
Submission routes.

Endpoints:
- GET /api/submissions
- GET /api/submissions/{submission_id}
- PUT /api/submissions/{submission_id}/review
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..errors import ExamDeskError
from ..models import Profile, ReviewRequest
from ..services import ExamCatalogService, SubmissionRecorder
from .deps import http_error, internal_error, is_parent_of, require_role


def create_submission_routes(db, storage, get_current_user) -> APIRouter:

    router = APIRouter(prefix="/api/submissions", tags=["submissions"])
    catalog = ExamCatalogService(db)
    recorder = SubmissionRecorder(db, catalog, storage)

    @router.get("")
    async def get_submissions(exam_id: Optional[str] = None, user: Profile = Depends(get_current_user)):
        """Students see their own submissions"""
        require_role(user, "student")
        try:
            submissions = await recorder.list_for_student(user.user_id, exam_id)
            return [s.model_dump(mode="json") for s in submissions]
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing submissions", e)

    @router.get("/{submission_id}")
    async def get_submission(submission_id: str, user: Profile = Depends(get_current_user)):
        try:
            submission = await recorder.get_submission(submission_id)
            allowed = (
                user.role == "teacher"
                or submission.student_id == user.user_id
                or await is_parent_of(db, user, submission.student_id)
            )
            if not allowed:
                raise HTTPException(status_code=404, detail="Submission not found")
            return submission.model_dump(mode="json")
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("loading submission", e)

    @router.put("/{submission_id}/review")
    async def review_submission(
        submission_id: str,
        review: ReviewRequest,
        user: Profile = Depends(get_current_user)
    ):
        """Score essay answers; the submission is graded once every essay has a score."""
        require_role(user, "teacher")
        try:
            submission = await recorder.review(submission_id, user.user_id, review.scores)
            return submission.model_dump(mode="json")
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("reviewing submission", e)

    return router
