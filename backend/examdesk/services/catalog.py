"""
Exam catalog - exams and courses as stored in MongoDB.

Every record read here goes through its Pydantic model; a record that does
not decode raises RecordIntegrityError instead of leaking a half-valid dict.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import (
    CourseNotFound,
    ExamNotFound,
    RecordIntegrityError,
    StudentNotFound,
    ValidationFailed,
)
from ..models import Course, CourseCreate, Exam, ExamCreate, ExamUpdate, Profile, Submission
from ..utils import new_id, utcnow

logger = logging.getLogger(__name__)


def decode(model, collection: str, doc: Dict[str, Any], id_field: str):
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        logger.error(f"Malformed {collection} record {doc.get(id_field)!r}: {e}")
        raise RecordIntegrityError(collection, doc.get(id_field), str(e))


class ExamCatalogService:
    """Reads and writes exam and course definitions."""

    def __init__(self, db):
        self.db = db

    # ============ EXAMS ============

    async def get_exam(self, exam_id: str) -> Exam:
        doc = await self.db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
        if not doc:
            raise ExamNotFound(exam_id)
        return decode(Exam, "exams", doc, "exam_id")

    async def create_exam(self, teacher_id: str, data: ExamCreate) -> Exam:
        if data.course_id:
            await self.get_course(data.course_id)

        exam = Exam(
            exam_id=new_id("exam"),
            teacher_id=teacher_id,
            created_at=utcnow(),
            **data.model_dump(),
        )
        await self.db.exams.insert_one(exam.model_dump())
        logger.info(
            f"Exam {exam.exam_id} created: {len(exam.questions)} questions, "
            f"paid={exam.is_paid}, max_attempts={exam.max_attempts}"
        )
        return exam

    async def update_exam(self, exam_id: str, updates: ExamUpdate) -> Exam:
        existing = await self.get_exam(exam_id)
        changes = updates.model_dump(exclude_unset=True)
        if not changes:
            return existing

        merged = existing.model_dump()
        merged.update(changes)
        merged["updated_at"] = utcnow()
        try:
            exam = Exam.model_validate(merged)
        except ValidationError as e:
            raise ValidationFailed(str(e))

        if exam.course_id and exam.course_id != existing.course_id:
            await self.get_course(exam.course_id)

        await self.db.exams.update_one(
            {"exam_id": exam_id},
            {"$set": exam.model_dump(exclude={"exam_id", "teacher_id", "created_at"})}
        )
        logger.info(f"Exam {exam_id} updated: {sorted(changes)}")
        return exam

    async def delete_exam(self, exam_id: str) -> Dict[str, int]:
        """Delete an exam with its submissions and attempt counters."""
        exam = await self.db.exams.find_one({"exam_id": exam_id}, {"_id": 0, "exam_id": 1})
        if not exam:
            raise ExamNotFound(exam_id)

        submissions = await self.db.exam_submissions.delete_many({"exam_id": exam_id})
        await self.db.exam_attempts.delete_many({"exam_id": exam_id})
        result = await self.db.exams.delete_one({"exam_id": exam_id})
        if result.deleted_count == 0:
            raise ExamNotFound(exam_id)

        logger.info(f"Exam {exam_id} deleted with {submissions.deleted_count} submissions")
        return {"submissions_deleted": submissions.deleted_count}

    async def list_exams_for_teacher(self) -> List[Dict[str, Any]]:
        docs = await self.db.exams.find({}, {"_id": 0}).sort("created_at", -1).to_list(500)
        exams = []
        for doc in docs:
            exam = decode(Exam, "exams", doc, "exam_id")
            entry = exam.model_dump(mode="json")
            entry["submission_count"] = await self.db.exam_submissions.count_documents(
                {"exam_id": exam.exam_id}
            )
            exams.append(entry)
        return exams

    async def list_exams_for_student(self, student: Profile) -> List[Exam]:
        """Standalone exams for the student's grade plus exams of enrolled courses."""
        query: Dict[str, Any] = {"$or": [{"course_id": None, "grade": student.grade}]}
        if student.enrolled_courses:
            query["$or"].append({"course_id": {"$in": student.enrolled_courses}})

        docs = await self.db.exams.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)
        return [decode(Exam, "exams", doc, "exam_id") for doc in docs]

    async def list_exam_submissions(self, exam_id: str) -> List[Submission]:
        """All submissions of an exam, best score first."""
        await self.get_exam(exam_id)
        docs = await self.db.exam_submissions.find(
            {"exam_id": exam_id},
            {"_id": 0}
        ).sort("total_score", -1).to_list(1000)
        return [decode(Submission, "exam_submissions", doc, "submission_id") for doc in docs]

    # ============ COURSES ============

    async def get_course(self, course_id: str) -> Course:
        doc = await self.db.courses.find_one({"course_id": course_id}, {"_id": 0})
        if not doc:
            raise CourseNotFound(course_id)
        return decode(Course, "courses", doc, "course_id")

    async def create_course(self, teacher_id: str, data: CourseCreate) -> Course:
        course = Course(
            course_id=new_id("course"),
            teacher_id=teacher_id,
            created_at=utcnow(),
            **data.model_dump(),
        )
        await self.db.courses.insert_one(course.model_dump())
        logger.info(f"Course {course.course_id} created at price {course.price}")
        return course

    async def list_courses(self, grade: Optional[str] = None) -> List[Course]:
        query = {"grade": grade} if grade else {}
        docs = await self.db.courses.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)
        return [decode(Course, "courses", doc, "course_id") for doc in docs]

    async def enroll(self, student_id: str, course_id: str, activated_by: str) -> None:
        """Grant course access; the profile's enrolled_courses is authoritative."""
        await self.get_course(course_id)
        result = await self.db.profiles.update_one(
            {"user_id": student_id, "role": "student"},
            {"$addToSet": {"enrolled_courses": course_id}}
        )
        if result.matched_count == 0:
            raise StudentNotFound(student_id)

        await self.db.student_enrollments.update_one(
            {"student_id": student_id, "course_id": course_id},
            {"$setOnInsert": {
                "student_id": student_id,
                "course_id": course_id,
                "activated_by": activated_by,
                "activated_at": utcnow(),
            }},
            upsert=True
        )
        logger.info(f"Student {student_id} enrolled in {course_id} ({activated_by})")
