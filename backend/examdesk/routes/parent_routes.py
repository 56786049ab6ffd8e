"""
Parent routes - read-only view of linked students.

A parent is linked to every student whose parent_phone equals the
parent's phone_number.

Endpoints:
- GET /api/parents/students
- GET /api/parents/students/{student_id}/overview
"""

from fastapi import APIRouter, Depends, HTTPException

from ..errors import ExamDeskError
from ..models import Profile
from ..services import ExamCatalogService, PaymentRequestService, SubmissionRecorder, WalletLedger
from .deps import http_error, internal_error, is_parent_of, require_role


def create_parent_routes(db, storage, get_current_user) -> APIRouter:

    router = APIRouter(prefix="/api/parents", tags=["parents"])
    catalog = ExamCatalogService(db)
    ledger = WalletLedger(db)
    payments = PaymentRequestService(db, ledger, storage)
    recorder = SubmissionRecorder(db, catalog, storage)

    @router.get("/students")
    async def list_children(user: Profile = Depends(get_current_user)):
        require_role(user, "parent")
        if not user.phone_number:
            return []
        try:
            students = await db.profiles.find(
                {"role": "student", "parent_phone": user.phone_number},
                {"_id": 0, "user_id": 1, "full_name": 1, "grade": 1, "wallet_balance": 1}
            ).to_list(50)
            return students
        except Exception as e:
            raise internal_error("listing linked students", e)

    @router.get("/students/{student_id}/overview")
    async def student_overview(student_id: str, user: Profile = Depends(get_current_user)):
        """Balance, top-up history and exam results of one linked student."""
        require_role(user, "parent")
        try:
            if not await is_parent_of(db, user, student_id):
                raise HTTPException(status_code=404, detail="Student not found")

            student = await ledger.get_student(student_id)
            requests = await payments.list_requests(student_id=student_id)
            submissions = await recorder.list_for_student(student_id)
            return {
                "student_id": student.user_id,
                "full_name": student.full_name,
                "grade": student.grade,
                "balance": student.wallet_balance,
                "payment_requests": [r.model_dump(mode="json") for r in requests],
                "submissions": [s.model_dump(mode="json") for s in submissions],
            }
        except HTTPException:
            raise
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("loading student overview", e)

    return router
