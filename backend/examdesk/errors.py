"""Domain errors raised by ExamDesk services.

Route handlers translate these into HTTP responses; services never raise
HTTPException themselves.
"""

from typing import Optional

from .models.access import DENIAL_MESSAGES, DenialReason


class ExamDeskError(Exception):
    """Base class for all domain errors."""


# ============ NOT FOUND ============

class NotFoundError(ExamDeskError):
    entity = "Record"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.entity} not found: {identifier}")


class ExamNotFound(NotFoundError):
    entity = "Exam"


class SubmissionNotFound(NotFoundError):
    entity = "Submission"


class StudentNotFound(NotFoundError):
    entity = "Student"


class CourseNotFound(NotFoundError):
    entity = "Course"


class PaymentRequestNotFound(NotFoundError):
    entity = "Payment request"


class FileNotFound(NotFoundError):
    entity = "File"


# ============ INPUT / INTEGRITY ============

class ValidationFailed(ExamDeskError):
    """Bad input or badly authored content."""


class RecordIntegrityError(ExamDeskError):
    """A stored record does not decode into its model."""

    def __init__(self, collection: str, identifier: Optional[str], detail: str):
        self.collection = collection
        self.identifier = identifier
        super().__init__(f"Malformed {collection} record {identifier!r}: {detail}")


# ============ ACCESS / MONEY ============

class PermissionDenied(ExamDeskError):
    pass


class AccessDenied(ExamDeskError):
    def __init__(self, reason: DenialReason, last_score: Optional[float] = None):
        self.reason = reason
        self.last_score = last_score
        super().__init__(DENIAL_MESSAGES[reason])


class AttemptsExhausted(AccessDenied):
    def __init__(self, max_attempts: int, last_score: Optional[float] = None):
        self.max_attempts = max_attempts
        super().__init__(DenialReason.ATTEMPTS_EXHAUSTED, last_score)


class InsufficientFunds(ExamDeskError):
    def __init__(self, balance: float, required: float):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient wallet balance: {balance} < {required}")


class ConcurrencyConflict(ExamDeskError):
    """Optimistic update kept losing to concurrent writers."""


class InvalidStateTransition(ExamDeskError):
    def __init__(self, entity: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


# ============ I/O ============

class UploadFailed(ExamDeskError):
    pass
