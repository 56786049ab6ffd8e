"""
Submission recorder - persists exactly one submission per attempt.

FLOW:
1. Retry of an already stored submit (same client_submission_id) -> return it
2. Expired exam -> refused
3. Paid exam -> entitlement required
4. Reserve an attempt: compare-and-set on the (exam, student) counter
5. Upload essay images
6. Grade and insert the submission
Any failure after step 4 releases the attempt and deletes uploaded images,
so a failed submit leaves nothing behind. An insert that raised but was
applied anyway keeps its attempt and the stored record is returned.
"""

import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..errors import (
    AccessDenied,
    AttemptsExhausted,
    ExamDeskError,
    PermissionDenied,
    SubmissionNotFound,
    ValidationFailed,
)
from ..models import DenialReason, Exam, Profile, Submission
from ..utils import new_id, utcnow
from .access import latest_submission
from .answers import AnswerSheet
from .catalog import ExamCatalogService, decode
from .grading import apply_essay_scores, grade_answers
from .storage import StoredObject

logger = logging.getLogger(__name__)


class SubmissionRecorder:

    def __init__(self, db, catalog: ExamCatalogService, storage):
        self.db = db
        self.catalog = catalog
        self.storage = storage

    # ============ RECORDING ============

    async def record_submission(
        self,
        student: Profile,
        sheet: AnswerSheet,
        client_submission_id: Optional[str] = None,
    ) -> Submission:
        exam = sheet.exam

        if client_submission_id:
            existing = await self._find_by_client_id(student.user_id, client_submission_id)
            if existing is not None:
                if existing.exam_id != exam.exam_id:
                    raise ValidationFailed("client_submission_id already used for another exam")
                logger.info(f"Submit retry for {existing.submission_id}, returning stored record")
                return existing

        if exam.is_expired(utcnow()):
            logger.info(f"Submission to {exam.exam_id} by {student.user_id} refused: expired")
            raise AccessDenied(DenialReason.EXPIRED)

        if exam.is_paid and not student.owns_exam(exam.exam_id):
            raise PermissionDenied("This exam must be purchased before submitting")

        attempt_number = await self.reserve_attempt(exam, student.user_id)
        uploaded: List[StoredObject] = []
        submission: Optional[Submission] = None

        try:
            essay_urls = {}
            for question_id, image in sheet.essay_images():
                stored = await self.storage.upload_image(
                    image.data,
                    image.filename,
                    metadata={
                        "kind": "essay_answer",
                        "exam_id": exam.exam_id,
                        "student_id": student.user_id,
                        "question_id": question_id,
                    },
                )
                uploaded.append(stored)
                essay_urls[question_id] = stored.url

            result = grade_answers(exam.questions, sheet.selections(), essay_urls)

            submission = Submission(
                submission_id=new_id("sub"),
                exam_id=exam.exam_id,
                student_id=student.user_id,
                answers=result.answers,
                total_score=result.total_score,
                status="pending",
                attempt_number=attempt_number,
                client_submission_id=client_submission_id,
                submitted_at=utcnow(),
            )
            await self.db.exam_submissions.insert_one(submission.model_dump())

        except DuplicateKeyError:
            # Concurrent retry with the same client_submission_id won the insert
            await self._rollback(exam, student.user_id, uploaded)
            existing = await self._find_by_client_id(student.user_id, client_submission_id)
            if existing is None:
                raise
            return existing
        except Exception as e:
            if isinstance(e, ExamDeskError):
                logger.info(f"Submission to {exam.exam_id} by {student.user_id} rejected: {e}")
            else:
                logger.error(f"Submission to {exam.exam_id} by {student.user_id} failed: {e}", exc_info=True)
            if submission is not None:
                persisted = await self._find_by_submission_id(submission.submission_id)
                if persisted is not None:
                    logger.warning(f"Insert of {submission.submission_id} raised but was applied, keeping it")
                    return persisted
            await self._rollback(exam, student.user_id, uploaded)
            raise

        logger.info(
            f"Submission {submission.submission_id} recorded: exam {exam.exam_id}, "
            f"student {student.user_id}, attempt {attempt_number}, score {submission.total_score}"
        )
        return submission

    async def _find_by_client_id(self, student_id: str, client_submission_id: str) -> Optional[Submission]:
        doc = await self.db.exam_submissions.find_one(
            {"student_id": student_id, "client_submission_id": client_submission_id},
            {"_id": 0}
        )
        return decode(Submission, "exam_submissions", doc, "submission_id") if doc else None

    async def _find_by_submission_id(self, submission_id: str) -> Optional[Submission]:
        doc = await self.db.exam_submissions.find_one({"submission_id": submission_id}, {"_id": 0})
        return decode(Submission, "exam_submissions", doc, "submission_id") if doc else None

    async def reserve_attempt(self, exam: Exam, student_id: str) -> int:
        """
        Take one attempt slot; returns the attempt number.

        The counter is seeded with the existing submission count so records
        written before the counter existed still count.
        """
        key = {"exam_id": exam.exam_id, "student_id": student_id}
        used = await self.db.exam_submissions.count_documents(key)
        try:
            await self.db.exam_attempts.update_one(
                key,
                {"$setOnInsert": {**key, "attempts_used": used, "created_at": utcnow()}},
                upsert=True
            )
        except DuplicateKeyError:
            pass  # a concurrent request created the counter

        doc = await self.db.exam_attempts.find_one_and_update(
            {**key, "attempts_used": {"$lt": exam.max_attempts}},
            {"$inc": {"attempts_used": 1}, "$set": {"updated_at": utcnow()}},
            projection={"_id": 0, "attempts_used": 1},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            submissions = await self.db.exam_submissions.find(
                key,
                {"_id": 0, "total_score": 1, "submitted_at": 1}
            ).to_list(None)
            latest = latest_submission(submissions)
            logger.info(f"Attempt on {exam.exam_id} refused for {student_id}: limit {exam.max_attempts}")
            raise AttemptsExhausted(exam.max_attempts, latest.get("total_score") if latest else None)

        return doc["attempts_used"]

    async def release_attempt(self, exam: Exam, student_id: str) -> None:
        await self.db.exam_attempts.update_one(
            {"exam_id": exam.exam_id, "student_id": student_id, "attempts_used": {"$gt": 0}},
            {"$inc": {"attempts_used": -1}, "$set": {"updated_at": utcnow()}}
        )

    async def _rollback(self, exam: Exam, student_id: str, uploaded: List[StoredObject]) -> None:
        await self.release_attempt(exam, student_id)
        for stored in uploaded:
            try:
                await self.storage.delete(stored.file_id)
            except Exception as e:
                logger.warning(f"Could not remove orphaned upload {stored.file_id}: {e}")

    # ============ READING ============

    async def get_submission(self, submission_id: str) -> Submission:
        submission = await self._find_by_submission_id(submission_id)
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    async def list_for_student(self, student_id: str, exam_id: Optional[str] = None) -> List[Submission]:
        query = {"student_id": student_id}
        if exam_id:
            query["exam_id"] = exam_id
        docs = await self.db.exam_submissions.find(query, {"_id": 0}).sort("submitted_at", -1).to_list(500)
        return [decode(Submission, "exam_submissions", d, "submission_id") for d in docs]

    # ============ MANUAL REVIEW ============

    async def review(self, submission_id: str, teacher_id: str, scores: dict) -> Submission:
        """Record essay scores; recompute total and settle the status."""
        submission = await self.get_submission(submission_id)
        exam = await self.catalog.get_exam(submission.exam_id)
        outcome = apply_essay_scores(exam, submission, scores)

        update = {
            "answers": [a.model_dump() for a in outcome.answers],
            "total_score": outcome.total_score,
            "status": outcome.status,
        }
        if outcome.status == "graded":
            update["graded_at"] = utcnow()
            update["graded_by"] = teacher_id

        await self.db.exam_submissions.update_one(
            {"submission_id": submission_id},
            {"$set": update}
        )
        logger.info(f"Submission {submission_id} reviewed: total {outcome.total_score}, {outcome.status}")
        return submission.model_copy(update={**update, "answers": outcome.answers})
