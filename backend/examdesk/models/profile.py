"""User profile Pydantic models"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import ensure_utc

Role = Literal["student", "teacher", "parent"]


class Profile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    role: Role = "student"
    full_name: str = ""
    phone_number: Optional[str] = None
    parent_phone: Optional[str] = None
    grade: Optional[str] = None
    wallet_balance: float = Field(0, ge=0)
    purchased_exams: List[str] = []
    enrolled_courses: List[str] = []
    push_token: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("created_at", mode="before")
    @classmethod
    def stamp_utc(cls, value):
        return ensure_utc(value) or datetime.now(timezone.utc)

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"

    def owns_exam(self, exam_id: str) -> bool:
        return exam_id in self.purchased_exams
