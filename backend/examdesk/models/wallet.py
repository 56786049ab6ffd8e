"""Wallet, course and top-up Pydantic models"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import ensure_utc

PaymentStatus = Literal["pending", "approved", "rejected"]
TransactionKind = Literal["top_up", "exam_purchase", "course_purchase", "credit", "debit"]


class Course(BaseModel):
    model_config = ConfigDict(extra="ignore")

    course_id: str
    title: str
    description: str = ""
    grade: Optional[str] = None
    price: float = Field(0, ge=0)
    thumbnail_url: Optional[str] = None
    teacher_id: str
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def stamp_utc(cls, value):
        return ensure_utc(value)


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    grade: Optional[str] = None
    price: float = Field(0, ge=0)
    thumbnail_url: Optional[str] = None


class Enrollment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    student_id: str
    course_id: str
    activated_by: Literal["self_purchase", "teacher"] = "self_purchase"
    activated_at: datetime

    @field_validator("activated_at", mode="before")
    @classmethod
    def stamp_utc(cls, value):
        return ensure_utc(value)


class PaymentRequest(BaseModel):
    """A student's top-up claim, verified by the teacher from a screenshot."""
    model_config = ConfigDict(extra="ignore")

    request_id: str
    student_id: str
    student_name: str = ""
    amount: float = Field(..., gt=0)
    sender_phone: str
    screenshot_url: str
    status: PaymentStatus = "pending"
    created_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None

    @field_validator("created_at", "processed_at", mode="before")
    @classmethod
    def stamps_utc(cls, value):
        return ensure_utc(value)


class WalletTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transaction_id: str
    student_id: str
    kind: TransactionKind
    amount: float  # signed: negative for debits
    balance_after: float
    reference: Optional[str] = None
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def stamp_utc(cls, value):
        return ensure_utc(value)


class PurchaseResult(BaseModel):
    item_id: str
    charged: bool
    amount_charged: float = 0
    balance: float
