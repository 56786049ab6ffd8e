"""
Course routes.

Endpoints:
- POST /api/courses
- GET /api/courses
- POST /api/courses/{course_id}/purchase
- POST /api/courses/{course_id}/enrollments
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import ExamDeskError
from ..models import CourseCreate, Profile
from ..services import ExamCatalogService, WalletLedger
from .deps import http_error, internal_error, require_role


class EnrollmentCreate(BaseModel):
    student_id: str


def create_course_routes(db, get_current_user) -> APIRouter:

    router = APIRouter(prefix="/api/courses", tags=["courses"])
    catalog = ExamCatalogService(db)
    ledger = WalletLedger(db)

    @router.post("")
    async def create_course(course: CourseCreate, user: Profile = Depends(get_current_user)):
        require_role(user, "teacher")
        try:
            created = await catalog.create_course(user.user_id, course)
            return created.model_dump(mode="json")
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("creating course", e)

    @router.get("")
    async def list_courses(user: Profile = Depends(get_current_user)):
        """Teacher: all courses. Student: courses for their grade, flagged if owned."""
        try:
            if user.role == "teacher":
                courses = await catalog.list_courses()
                return [c.model_dump(mode="json") for c in courses]

            courses = await catalog.list_courses(grade=user.grade)
            return [
                {**c.model_dump(mode="json"), "enrolled": c.course_id in user.enrolled_courses}
                for c in courses
            ]
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing courses", e)

    @router.post("/{course_id}/purchase")
    async def purchase_course(course_id: str, user: Profile = Depends(get_current_user)):
        """Buy a course from the wallet; buying an owned course charges nothing."""
        require_role(user, "student")
        try:
            course = await catalog.get_course(course_id)
            result = await ledger.purchase_course(user.user_id, course)
            await catalog.enroll(user.user_id, course_id, "self_purchase")
            return result.model_dump(mode="json")
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("purchasing course", e)

    @router.post("/{course_id}/enrollments")
    async def enroll_student(course_id: str, body: EnrollmentCreate,
                             user: Profile = Depends(get_current_user)):
        """Teacher grants course access without charging the wallet."""
        require_role(user, "teacher")
        try:
            await catalog.enroll(body.student_id, course_id, "teacher")
            return {"message": "Student enrolled", "student_id": body.student_id, "course_id": course_id}
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("enrolling student", e)

    return router
