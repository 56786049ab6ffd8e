"""Submission-related Pydantic models"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import ensure_utc
from .exam import QuestionType

SubmissionStatus = Literal["pending", "graded"]


class Answer(BaseModel):
    """One graded answer embedded in a submission."""
    model_config = ConfigDict(extra="ignore")

    question_id: str
    type: QuestionType
    selected_options: List[int] = []
    essay_image_url: Optional[str] = None
    score: Optional[float] = None  # None: essay awaiting manual review


class Submission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    submission_id: str
    exam_id: str
    student_id: str
    answers: List[Answer] = []
    total_score: float = 0
    status: SubmissionStatus = "pending"
    attempt_number: int = 1
    client_submission_id: Optional[str] = None
    submitted_at: datetime
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None

    @field_validator("submitted_at", "graded_at", mode="before")
    @classmethod
    def stamps_utc(cls, value):
        return ensure_utc(value)


class SubmittedAnswer(BaseModel):
    """Answer selections as sent by the exam-taking client."""
    question_id: str
    selected_options: List[int] = []


class ReviewRequest(BaseModel):
    """Teacher's manual scores for essay answers, keyed by question id."""
    scores: Dict[str, float] = Field(default_factory=dict)
