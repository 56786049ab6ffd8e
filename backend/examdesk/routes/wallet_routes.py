"""
Wallet routes.

Endpoints:
- GET /api/wallet
- GET /api/wallet/transactions
- POST /api/wallet/top-up-requests
- GET /api/wallet/top-up-requests
- POST /api/wallet/top-up-requests/{request_id}/approve
- POST /api/wallet/top-up-requests/{request_id}/reject
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..config.settings import settings
from ..errors import ExamDeskError
from ..models import Profile
from ..services import NotificationService, PaymentRequestService, WalletLedger
from .deps import http_error, internal_error, require_role


def create_wallet_routes(db, storage, get_current_user,
                         notifier: Optional[NotificationService] = None) -> APIRouter:

    router = APIRouter(prefix="/api/wallet", tags=["wallet"])
    ledger = WalletLedger(db)
    payments = PaymentRequestService(db, ledger, storage, notifier)

    @router.get("")
    async def get_wallet(user: Profile = Depends(get_current_user)):
        require_role(user, "student")
        try:
            balance = await ledger.get_balance(user.user_id)
            return {
                "student_id": user.user_id,
                "balance": balance,
                "currency": settings.CURRENCY,
                "purchased_exams": user.purchased_exams,
                "enrolled_courses": user.enrolled_courses,
            }
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("loading wallet", e)

    @router.get("/transactions")
    async def get_transactions(limit: int = 50, user: Profile = Depends(get_current_user)):
        require_role(user, "student")
        try:
            transactions = await ledger.list_transactions(user.user_id, min(max(limit, 1), 200))
            return [t.model_dump(mode="json") for t in transactions]
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing wallet transactions", e)

    @router.post("/top-up-requests")
    async def create_top_up_request(
        amount: float = Form(...),
        sender_phone: str = Form(...),
        screenshot: UploadFile = File(...),
        user: Profile = Depends(get_current_user)
    ):
        """Claim a bank transfer; the teacher credits the wallet after checking the screenshot."""
        require_role(user, "student")
        try:
            data = await screenshot.read()
            request = await payments.submit_request(
                user, amount, sender_phone, data, screenshot.filename or "screenshot"
            )
            return request.model_dump(mode="json")
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("submitting top-up request", e)

    @router.get("/top-up-requests")
    async def list_top_up_requests(status: Optional[str] = None, user: Profile = Depends(get_current_user)):
        """Teacher: all requests (optionally by status). Student: their own."""
        require_role(user, "teacher", "student")
        if status and status not in ("pending", "approved", "rejected"):
            raise HTTPException(status_code=400, detail="Invalid status filter")
        try:
            student_id = None if user.role == "teacher" else user.user_id
            requests = await payments.list_requests(student_id=student_id, status=status)
            return [r.model_dump(mode="json") for r in requests]
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("listing top-up requests", e)

    @router.post("/top-up-requests/{request_id}/approve")
    async def approve_top_up(request_id: str, user: Profile = Depends(get_current_user)):
        require_role(user, "teacher")
        try:
            request, balance = await payments.approve(request_id, user.user_id)
            return {"request": request.model_dump(mode="json"), "balance": balance}
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("approving top-up request", e)

    @router.post("/top-up-requests/{request_id}/reject")
    async def reject_top_up(request_id: str, user: Profile = Depends(get_current_user)):
        require_role(user, "teacher")
        try:
            request = await payments.reject(request_id, user.user_id)
            return {"request": request.model_dump(mode="json")}
        except ExamDeskError as e:
            raise http_error(e)
        except Exception as e:
            raise internal_error("rejecting top-up request", e)

    return router
