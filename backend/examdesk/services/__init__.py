"""Services for the exam, grading and wallet workflows."""

from .access import AccessGate, exam_state, latest_submission
from .answers import AnswerSheet, DraftAnswer, EssayImage
from .catalog import ExamCatalogService
from .grading import GradingResult, apply_essay_scores, grade_answers, score_mcq
from .notifications import NotificationService
from .payments import PaymentRequestService
from .storage import GridFSObjectStorage, StoredObject
from .submissions import SubmissionRecorder
from .wallet import WalletLedger

__all__ = [
    "AccessGate",
    "exam_state",
    "latest_submission",
    "AnswerSheet",
    "DraftAnswer",
    "EssayImage",
    "ExamCatalogService",
    "GradingResult",
    "apply_essay_scores",
    "grade_answers",
    "score_mcq",
    "NotificationService",
    "PaymentRequestService",
    "GridFSObjectStorage",
    "StoredObject",
    "SubmissionRecorder",
    "WalletLedger",
]
