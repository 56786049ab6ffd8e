"""
Exam routes.

Endpoints:
- POST /api/exams
- GET /api/exams
- GET /api/exams/{exam_id}
- PUT /api/exams/{exam_id}
- DELETE /api/exams/{exam_id}
- POST /api/exams/{exam_id}/access
- POST /api/exams/{exam_id}/submissions
- GET /api/exams/{exam_id}/submissions
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import UploadFile

from ..errors import ExamDeskError
from ..models import ExamCreate, ExamUpdate, Profile, SubmittedAnswer
from ..services import (
    AccessGate,
    AnswerSheet,
    EssayImage,
    ExamCatalogService,
    SubmissionRecorder,
    WalletLedger,
    exam_state,
)
from .deps import http_error, internal_error, require_role

logger = logging.getLogger(__name__)

_answers_adapter = TypeAdapter(List[SubmittedAnswer])
ESSAY_FIELD_PREFIX = "essay_"


def create_exam_routes(db, storage, get_current_user) -> APIRouter:
    """Create exam routes with database connection."""

    router = APIRouter(prefix="/api/exams", tags=["exams"])
    catalog = ExamCatalogService(db)
    ledger = WalletLedger(db)
    gate = AccessGate(db, catalog, ledger)
    recorder = SubmissionRecorder(db, catalog, storage)

    async def _student_entry(exam, user: Profile) -> dict:
        used = await db.exam_submissions.count_documents(
            {"exam_id": exam.exam_id, "student_id": user.user_id}
        )
        if exam.is_paid and not user.owns_exam(exam.exam_id):
            entry = exam.model_dump(mode="json", exclude={"questions"})
            entry["question_count"] = len(exam.questions)
            entry["locked"] = True
        else:
            entry = exam.student_view()
            entry["locked"] = False
        entry.update(exam_state(exam, used).model_dump())
        return entry

    @router.post("")
    async def create_exam(exam: ExamCreate, user: Profile = Depends(get_current_user)):
        """Create a new exam"""
        require_role(user, "teacher")
        try:
            created = await catalog.create_exam(user.user_id, exam)
            return created.model_dump(mode="json")
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("creating exam", e)

    @router.get("")
    async def list_exams(user: Profile = Depends(get_current_user)):
        """Teacher: every exam with submission counts. Student: exams visible to them."""
        require_role(user, "teacher", "student")
        try:
            if user.role == "teacher":
                return await catalog.list_exams_for_teacher()

            exams = await catalog.list_exams_for_student(user)
            return [await _student_entry(exam, user) for exam in exams]
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing exams", e)

    @router.get("/{exam_id}")
    async def get_exam(exam_id: str, user: Profile = Depends(get_current_user)):
        """Get exam details; answer keys only for the teacher."""
        require_role(user, "teacher", "student")
        try:
            exam = await catalog.get_exam(exam_id)
            if user.role == "teacher":
                return exam.model_dump(mode="json")
            return await _student_entry(exam, user)
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("loading exam", e)

    @router.put("/{exam_id}")
    async def update_exam(exam_id: str, updates: ExamUpdate, user: Profile = Depends(get_current_user)):
        require_role(user, "teacher")
        try:
            exam = await catalog.update_exam(exam_id, updates)
            return exam.model_dump(mode="json")
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("updating exam", e)

    @router.delete("/{exam_id}")
    async def delete_exam(exam_id: str, user: Profile = Depends(get_current_user)):
        """Delete an exam and all its submissions"""
        require_role(user, "teacher")
        try:
            result = await catalog.delete_exam(exam_id)
            return {"message": "Exam deleted successfully", **result}
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("deleting exam", e)

    @router.post("/{exam_id}/access")
    async def request_access(exam_id: str, user: Profile = Depends(get_current_user)):
        """
        Ask to start an attempt. Buys a paid exam from the wallet on first access.

        Denials come back as 403 (expired, attempts exhausted) or 402
        (insufficient funds) with the reason and, if any, the last score.
        """
        require_role(user, "student")
        try:
            decision = await gate.check_access(exam_id, user.user_id)
            if not decision.allowed:
                status = 402 if decision.reason.value == "insufficient_funds" else 403
                raise HTTPException(status_code=status, detail=decision.model_dump(mode="json"))

            exam = await catalog.get_exam(exam_id)
            return {"decision": decision.model_dump(mode="json"), "exam": exam.student_view()}
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("checking exam access", e)

    @router.post("/{exam_id}/submissions")
    async def submit_exam(exam_id: str, request: Request, user: Profile = Depends(get_current_user)):
        """
        Submit an attempt.

        Multipart form:
            answers: JSON list of {"question_id", "selected_options"}
            client_submission_id: optional key making retries safe
            essay_<question_id>: image file for an essay question
        """
        require_role(user, "student")
        try:
            form = await request.form()

            raw_answers = form.get("answers") or "[]"
            if not isinstance(raw_answers, str):
                raise HTTPException(status_code=422, detail="answers must be a JSON string")
            try:
                answers = _answers_adapter.validate_json(raw_answers)
            except ValidationError as e:
                raise HTTPException(status_code=422, detail=f"Invalid answers: {e}")

            client_submission_id = form.get("client_submission_id") or None
            if client_submission_id is not None and not isinstance(client_submission_id, str):
                raise HTTPException(status_code=422, detail="client_submission_id must be text")

            essay_files = {}
            for key, value in form.multi_items():
                if key.startswith(ESSAY_FIELD_PREFIX) and isinstance(value, UploadFile):
                    essay_files[key[len(ESSAY_FIELD_PREFIX):]] = EssayImage(
                        data=await value.read(),
                        filename=value.filename or key,
                        content_type=value.content_type,
                    )

            exam = await catalog.get_exam(exam_id)
            sheet = AnswerSheet.from_payload(exam, answers, essay_files)
            submission = await recorder.record_submission(user, sheet, client_submission_id)
            return submission.model_dump(mode="json")
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("submitting exam", e)

    @router.get("/{exam_id}/submissions")
    async def exam_submissions(exam_id: str, user: Profile = Depends(get_current_user)):
        """All submissions of an exam, best score first."""
        require_role(user, "teacher")
        try:
            submissions = await catalog.list_exam_submissions(exam_id)
            return [s.model_dump(mode="json") for s in submissions]
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing exam submissions", e)

    return router
