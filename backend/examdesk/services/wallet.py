"""
Wallet ledger - a single non-negative balance per student.

Every balance change is one atomic ``find_one_and_update`` on the profile
document. Debits are guarded by ``wallet_balance >= amount`` in the filter,
so a debit that would go negative matches nothing and changes nothing.
Purchases decrement the balance and grant the entitlement in the same
update, retrying when a concurrent write got there first.
"""

import logging
from typing import List, Optional

from pymongo import ReturnDocument

from ..config.settings import settings as default_settings
from ..errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    StudentNotFound,
    ValidationFailed,
)
from ..models import Course, Exam, Profile, PurchaseResult, WalletTransaction
from ..utils import new_id, utcnow
from .catalog import decode

logger = logging.getLogger(__name__)


class WalletLedger:

    def __init__(self, db, settings=None):
        self.db = db
        self.settings = settings or default_settings
        self.max_retries = self.settings.PURCHASE_MAX_RETRIES

    async def get_student(self, student_id: str) -> Profile:
        doc = await self.db.profiles.find_one(
            {"user_id": student_id, "role": "student"},
            {"_id": 0}
        )
        if not doc:
            raise StudentNotFound(student_id)
        return decode(Profile, "profiles", doc, "user_id")

    async def get_balance(self, student_id: str) -> float:
        return (await self.get_student(student_id)).wallet_balance

    @staticmethod
    def _check_amount(amount: float) -> None:
        if amount is None or amount <= 0:
            raise ValidationFailed("Amount must be greater than zero")

    async def debit(self, student_id: str, amount: float, kind: str = "debit",
                    reference: Optional[str] = None) -> float:
        """Take money out; rejected without change if the balance is too low."""
        self._check_amount(amount)

        doc = await self.db.profiles.find_one_and_update(
            {"user_id": student_id, "role": "student", "wallet_balance": {"$gte": amount}},
            {"$inc": {"wallet_balance": -amount}},
            projection={"_id": 0, "wallet_balance": 1},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            profile = await self.get_student(student_id)
            logger.info(f"Debit of {amount} rejected for {student_id}: balance {profile.wallet_balance}")
            raise InsufficientFunds(profile.wallet_balance, amount)

        balance = doc["wallet_balance"]
        await self._record(student_id, kind, -amount, balance, reference)
        logger.info(f"Debited {amount} from {student_id} ({kind}), balance {balance}")
        return balance

    async def credit(self, student_id: str, amount: float, kind: str = "credit",
                     reference: Optional[str] = None) -> float:
        self._check_amount(amount)

        doc = await self.db.profiles.find_one_and_update(
            {"user_id": student_id, "role": "student"},
            {"$inc": {"wallet_balance": amount}},
            projection={"_id": 0, "wallet_balance": 1},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            raise StudentNotFound(student_id)

        balance = doc["wallet_balance"]
        await self._record(student_id, kind, amount, balance, reference)
        logger.info(f"Credited {amount} to {student_id} ({kind}), balance {balance}")
        return balance

    async def purchase_exam(self, student_id: str, exam: Exam) -> PurchaseResult:
        return await self._purchase(student_id, "purchased_exams", exam.exam_id,
                                    exam.price, "exam_purchase")

    async def purchase_course(self, student_id: str, course: Course) -> PurchaseResult:
        return await self._purchase(student_id, "enrolled_courses", course.course_id,
                                    course.price, "course_purchase")

    async def _purchase(self, student_id: str, field: str, item_id: str,
                        price: float, kind: str) -> PurchaseResult:
        """
        Charge ``price`` and add ``item_id`` to ``field`` together, or not at all.

        Already owned -> no charge. The guard failing for any other reason
        than ownership or balance means a concurrent write won; re-read and
        try again.
        """
        guard = {"user_id": student_id, "role": "student", field: {"$ne": item_id}}
        if price > 0:
            # Profiles without a wallet_balance field only match free items
            guard["wallet_balance"] = {"$gte": price}

        for attempt in range(1, self.max_retries + 1):
            doc = await self.db.profiles.find_one_and_update(
                guard,
                {
                    "$inc": {"wallet_balance": -price},
                    "$addToSet": {field: item_id},
                },
                projection={"_id": 0, "wallet_balance": 1},
                return_document=ReturnDocument.AFTER
            )
            if doc is not None:
                balance = doc["wallet_balance"]
                if price > 0:
                    await self._record(student_id, kind, -price, balance, item_id)
                logger.info(f"Student {student_id} bought {item_id} for {price}, balance {balance}")
                return PurchaseResult(item_id=item_id, charged=price > 0,
                                      amount_charged=price, balance=balance)

            profile = await self.get_student(student_id)
            if item_id in getattr(profile, field):
                logger.info(f"Student {student_id} already owns {item_id}, not charged")
                return PurchaseResult(item_id=item_id, charged=False, balance=profile.wallet_balance)
            if profile.wallet_balance < price:
                raise InsufficientFunds(profile.wallet_balance, price)

            logger.warning(f"Purchase of {item_id} by {student_id} raced, retry {attempt}/{self.max_retries}")

        raise ConcurrencyConflict(f"Purchase of {item_id} by {student_id} kept conflicting")

    async def _record(self, student_id: str, kind: str, amount: float,
                      balance_after: float, reference: Optional[str]) -> None:
        txn = WalletTransaction(
            transaction_id=new_id("txn"),
            student_id=student_id,
            kind=kind,
            amount=amount,
            balance_after=balance_after,
            reference=reference,
            created_at=utcnow(),
        )
        await self.db.wallet_transactions.insert_one(txn.model_dump())

    async def list_transactions(self, student_id: str, limit: int = 50) -> List[WalletTransaction]:
        docs = await self.db.wallet_transactions.find(
            {"student_id": student_id},
            {"_id": 0}
        ).sort("created_at", -1).limit(limit).to_list(limit)
        return [decode(WalletTransaction, "wallet_transactions", d, "transaction_id") for d in docs]
