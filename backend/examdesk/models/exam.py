"""Exam and question Pydantic models"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils import ensure_utc

QuestionType = Literal["mcq", "essay"]


class Question(BaseModel):
    """A single exam question with its answer key (mcq) or none (essay)."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: QuestionType = "mcq"
    text: str
    image_url: Optional[str] = None
    score: float = Field(1, gt=0)
    options: List[str] = []
    correct_options: List[int] = []

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("question text is empty")
        return value.strip()

    @field_validator("image_url", mode="before")
    @classmethod
    def blank_image_is_none(cls, value):
        return value or None

    @model_validator(mode="after")
    def check_answer_key(self):
        if self.type == "essay":
            if self.options or self.correct_options:
                raise ValueError("essay questions take no options")
            return self

        if len(self.options) < 2:
            raise ValueError("mcq questions need at least two options")
        if any(not option or not option.strip() for option in self.options):
            raise ValueError("all mcq options must be filled in")
        if not self.correct_options:
            raise ValueError("mcq questions need at least one correct option")
        if any(i < 0 or i >= len(self.options) for i in self.correct_options):
            raise ValueError("correct option index out of range")

        self.correct_options = sorted(set(self.correct_options))
        return self


class ExamBase(BaseModel):
    """Fields shared by stored exams and creation payloads."""
    model_config = ConfigDict(extra="ignore")

    title: str
    course_id: Optional[str] = None  # None: standalone exam targeted by grade
    grade: Optional[str] = None
    is_paid: bool = False
    price: float = Field(0, ge=0)
    questions: List[Question] = Field(..., min_length=1)
    max_attempts: int = Field(1, ge=1)
    expires_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("exam title is empty")
        return value.strip()

    @field_validator("course_id", "grade", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        return value or None

    @field_validator("max_attempts", mode="before")
    @classmethod
    def default_attempts(cls, value):
        # Legacy records store 0/null for "one attempt"
        return value or 1

    @field_validator("expires_at", mode="before")
    @classmethod
    def expiry_utc(cls, value):
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_policy(self):
        if self.is_paid and self.price <= 0:
            raise ValueError("paid exams need a price greater than zero")
        if not self.is_paid:
            self.price = 0
        if self.course_id:
            self.grade = None

        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique within an exam")
        return self


class ExamCreate(ExamBase):
    """Payload for creating an exam (teacher only)."""


class ExamUpdate(BaseModel):
    """Partial update; the merged exam is re-validated as a whole."""
    title: Optional[str] = None
    course_id: Optional[str] = None
    grade: Optional[str] = None
    is_paid: Optional[bool] = None
    price: Optional[float] = None
    questions: Optional[List[Dict[str, Any]]] = None
    max_attempts: Optional[int] = None
    expires_at: Optional[datetime] = None


class Exam(ExamBase):
    exam_id: str
    teacher_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def stamps_utc(cls, value):
        return ensure_utc(value)

    @property
    def total_score(self) -> float:
        return sum(q.score for q in self.questions)

    @property
    def has_essays(self) -> bool:
        return any(q.type == "essay" for q in self.questions)

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def student_view(self) -> Dict[str, Any]:
        """Exam as shown to students: answer keys stripped."""
        data = self.model_dump(mode="json")
        for q in data["questions"]:
            q.pop("correct_options", None)
        return data
