"""Pydantic models for ExamDesk"""

from .access import AccessDecision, DenialReason, ExamState, DENIAL_MESSAGES
from .exam import Question, QuestionType, ExamBase, ExamCreate, ExamUpdate, Exam
from .profile import Profile, Role
from .submission import Answer, Submission, SubmissionStatus, SubmittedAnswer, ReviewRequest
from .wallet import (
    Course,
    CourseCreate,
    Enrollment,
    PaymentRequest,
    PaymentStatus,
    WalletTransaction,
    TransactionKind,
    PurchaseResult,
)

__all__ = [
    # Access models
    "AccessDecision",
    "DenialReason",
    "ExamState",
    "DENIAL_MESSAGES",

    # Exam models
    "Question",
    "QuestionType",
    "ExamBase",
    "ExamCreate",
    "ExamUpdate",
    "Exam",

    # Profile models
    "Profile",
    "Role",

    # Submission models
    "Answer",
    "Submission",
    "SubmissionStatus",
    "SubmittedAnswer",
    "ReviewRequest",

    # Wallet models
    "Course",
    "CourseCreate",
    "Enrollment",
    "PaymentRequest",
    "PaymentStatus",
    "WalletTransaction",
    "TransactionKind",
    "PurchaseResult",
]
