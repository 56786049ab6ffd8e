"""
Access gate - may this student start an attempt on this exam right now?

Order matters: expiry, then attempts, then the paywall. Only the last step
moves money, through the wallet ledger's atomic purchase.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import InsufficientFunds
from ..models import AccessDecision, DenialReason, Exam, ExamState
from ..utils import ensure_utc, utcnow
from .catalog import ExamCatalogService
from .wallet import WalletLedger

logger = logging.getLogger(__name__)


def latest_submission(submissions: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Most recent submission by submitted_at."""
    if not submissions:
        return None
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return max(submissions, key=lambda s: ensure_utc(s.get("submitted_at")) or oldest)


def exam_state(exam: Exam, attempts_used: int, now: Optional[datetime] = None) -> ExamState:
    now = ensure_utc(now) if now else utcnow()
    remaining = max(exam.max_attempts - attempts_used, 0)
    closed = exam.is_expired(now) or remaining == 0
    return ExamState(
        state="closed" if closed else "open",
        attempts_used=attempts_used,
        attempts_remaining=remaining,
    )


class AccessGate:

    def __init__(self, db, catalog: ExamCatalogService, ledger: WalletLedger):
        self.db = db
        self.catalog = catalog
        self.ledger = ledger

    async def past_submissions(self, exam_id: str, student_id: str) -> List[Dict[str, Any]]:
        return await self.db.exam_submissions.find(
            {"exam_id": exam_id, "student_id": student_id},
            {"_id": 0, "submission_id": 1, "total_score": 1, "submitted_at": 1}
        ).to_list(None)

    async def check_access(self, exam_id: str, student_id: str,
                           now: Optional[datetime] = None) -> AccessDecision:
        """
        Decide whether a new attempt may start, buying the exam if needed.

        Returns:
            AccessDecision.allow(...) or AccessDecision.deny(reason, ...)

        Raises:
            ExamNotFound, StudentNotFound, ConcurrencyConflict
        """
        exam = await self.catalog.get_exam(exam_id)
        student = await self.ledger.get_student(student_id)
        now = ensure_utc(now) if now else utcnow()

        if exam.is_expired(now):
            logger.info(f"Access to {exam_id} denied for {student_id}: expired")
            return AccessDecision.deny(DenialReason.EXPIRED)

        submissions = await self.past_submissions(exam_id, student_id)
        used = len(submissions)
        if used >= exam.max_attempts:
            latest = latest_submission(submissions)
            logger.info(f"Access to {exam_id} denied for {student_id}: {used} attempts used")
            return AccessDecision.deny(
                DenialReason.ATTEMPTS_EXHAUSTED,
                attempts_used=used,
                last_score=latest.get("total_score") if latest else None,
            )

        remaining = exam.max_attempts - used
        if not exam.is_paid or student.owns_exam(exam_id):
            return AccessDecision.allow(used, remaining)

        if student.wallet_balance < exam.price:
            logger.info(f"Access to {exam_id} denied for {student_id}: balance {student.wallet_balance}")
            return AccessDecision.deny(DenialReason.INSUFFICIENT_FUNDS, used, remaining)

        try:
            purchase = await self.ledger.purchase_exam(student_id, exam)
        except InsufficientFunds:
            # Balance dropped between the read above and the guarded update
            return AccessDecision.deny(DenialReason.INSUFFICIENT_FUNDS, used, remaining)

        return AccessDecision.allow(
            used, remaining,
            charged=purchase.charged,
            amount_charged=purchase.amount_charged,
        )
