"""
Top-up requests - manual bank transfer review.

A student uploads a transfer screenshot and claims an amount; the teacher
approves (wallet credited) or rejects. The pending -> approved transition is
a compare-and-set, so only one approval of a request can ever credit money.
"""

import logging
from typing import List, Optional, Tuple

from pymongo import ReturnDocument

from ..errors import InvalidStateTransition, PaymentRequestNotFound, ValidationFailed
from ..models import PaymentRequest, Profile
from ..utils import new_id, utcnow
from .catalog import decode
from .notifications import NotificationService
from .wallet import WalletLedger

logger = logging.getLogger(__name__)


class PaymentRequestService:

    def __init__(self, db, ledger: WalletLedger, storage, notifier: Optional[NotificationService] = None):
        self.db = db
        self.ledger = ledger
        self.storage = storage
        self.notifier = notifier

    async def submit_request(
        self,
        student: Profile,
        amount: float,
        sender_phone: str,
        screenshot: bytes,
        filename: str,
    ) -> PaymentRequest:
        if student.role != "student":
            raise ValidationFailed("Only students can top up a wallet")
        if amount is None or amount <= 0:
            raise ValidationFailed("Amount must be greater than zero")
        if not sender_phone or not sender_phone.strip():
            raise ValidationFailed("Sender phone number is required")

        stored = await self.storage.upload_image(
            screenshot,
            filename,
            metadata={"kind": "payment_proof", "student_id": student.user_id},
        )

        request = PaymentRequest(
            request_id=new_id("pay"),
            student_id=student.user_id,
            student_name=student.full_name,
            amount=amount,
            sender_phone=sender_phone.strip(),
            screenshot_url=stored.url,
            status="pending",
            created_at=utcnow(),
        )
        try:
            await self.db.payment_requests.insert_one(request.model_dump())
        except Exception:
            await self.storage.delete(stored.file_id)
            raise

        logger.info(f"Top-up request {request.request_id}: {amount} from {student.user_id}")

        if self.notifier:
            try:
                await self.notifier.notify_role(
                    "teacher",
                    "top_up_request",
                    "New top-up request",
                    f"{student.full_name or student.user_id} requested a top-up of {amount}",
                    link=f"/wallet/top-up-requests/{request.request_id}",
                )
            except Exception as e:
                logger.warning(f"Could not notify teachers of {request.request_id}: {e}")
        return request

    async def get_request(self, request_id: str) -> PaymentRequest:
        doc = await self.db.payment_requests.find_one({"request_id": request_id}, {"_id": 0})
        if not doc:
            raise PaymentRequestNotFound(request_id)
        return decode(PaymentRequest, "payment_requests", doc, "request_id")

    async def _transition(self, request_id: str, target: str, teacher_id: str) -> PaymentRequest:
        doc = await self.db.payment_requests.find_one_and_update(
            {"request_id": request_id, "status": "pending"},
            {"$set": {"status": target, "processed_at": utcnow(), "processed_by": teacher_id}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            current = await self.get_request(request_id)
            raise InvalidStateTransition("payment request", current.status, target)
        return decode(PaymentRequest, "payment_requests", doc, "request_id")

    async def approve(self, request_id: str, teacher_id: str) -> Tuple[PaymentRequest, float]:
        """Approve a pending request and credit the wallet exactly once."""
        request = await self._transition(request_id, "approved", teacher_id)

        try:
            balance = await self.ledger.credit(
                request.student_id, request.amount, kind="top_up", reference=request_id
            )
        except Exception:
            logger.error(f"Credit for {request_id} failed, returning request to pending", exc_info=True)
            await self.db.payment_requests.update_one(
                {"request_id": request_id, "status": "approved"},
                {"$set": {"status": "pending", "processed_at": None, "processed_by": None}}
            )
            raise

        logger.info(f"Top-up {request_id} approved by {teacher_id}: +{request.amount}")
        await self._notify_student(
            request,
            "top_up_approved",
            "Wallet topped up",
            f"{request.amount} has been added to your wallet",
        )
        return request, balance

    async def reject(self, request_id: str, teacher_id: str) -> PaymentRequest:
        request = await self._transition(request_id, "rejected", teacher_id)
        logger.info(f"Top-up {request_id} rejected by {teacher_id}")
        await self._notify_student(
            request,
            "top_up_rejected",
            "Top-up request rejected",
            f"Your top-up request of {request.amount} was not accepted",
        )
        return request

    async def _notify_student(self, request: PaymentRequest, notification_type: str,
                              title: str, message: str) -> None:
        # Fire-and-forget: the request is already settled
        if not self.notifier:
            return
        try:
            await self.notifier.notify(request.student_id, notification_type, title, message, link="/wallet")
        except Exception as e:
            logger.warning(f"Could not notify {request.student_id} about {request.request_id}: {e}")

    async def list_requests(self, student_id: Optional[str] = None,
                            status: Optional[str] = None) -> List[PaymentRequest]:
        query = {}
        if student_id:
            query["student_id"] = student_id
        if status:
            query["status"] = status
        docs = await self.db.payment_requests.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)
        return [decode(PaymentRequest, "payment_requests", d, "request_id") for d in docs]
