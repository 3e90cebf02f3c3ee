"""Attempt, answer and result Pydantic models"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import ensure_utc
from .exam import AssessmentKind, utcnow


class ResultStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    PENDING_EVALUATION = "pending-evaluation"
    EVALUATED = "evaluated"


class Answer(BaseModel):
    """A student's response to one question plus its grade fields"""
    model_config = ConfigDict(extra="ignore")
    question_id: str
    selected_option: Optional[str] = None  # MCQ / TrueFalse
    text_answer: Optional[str] = None  # Descriptive
    code_answer: Optional[str] = None  # Coding
    time_taken_seconds: Optional[int] = None

    # Written by evaluation only
    is_evaluated: bool = False
    is_correct: Optional[bool] = None
    marks_awarded: float = 0
    feedback: Optional[str] = None
    evaluated_by: Optional[str] = None
    evaluated_at: Optional[datetime] = None

    def grade_fields(self) -> dict:
        return {
            "is_evaluated": self.is_evaluated,
            "is_correct": self.is_correct,
            "marks_awarded": self.marks_awarded,
            "feedback": self.feedback,
            "evaluated_by": self.evaluated_by,
            "evaluated_at": self.evaluated_at,
        }


class Attempt(BaseModel):
    """One student's instance of taking one exam or competition"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)
    attempt_id: str
    exam_id: str
    assessment_kind: AssessmentKind = AssessmentKind.EXAM
    student_id: str
    department_id: Optional[str] = None
    college_id: Optional[str] = None
    started_at: datetime
    deadline_at: datetime
    submitted_at: Optional[datetime] = None
    auto_submitted: bool = False
    tab_switch_count: int = 0
    needs_aggregation: bool = False
    answers: List[Answer] = []

    @field_validator("started_at", "deadline_at", "submitted_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value) if value is not None else value

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None

    def answer_for(self, question_id: str) -> Optional[Answer]:
        return next((a for a in self.answers if a.question_id == question_id), None)


class Result(BaseModel):
    """Derived totals for one finalized attempt"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)
    attempt_id: str
    exam_id: str
    assessment_kind: AssessmentKind = AssessmentKind.EXAM
    student_id: str
    department_id: Optional[str] = None
    college_id: Optional[str] = None
    score: float = 0
    percentage: float = 0
    is_passed: bool = False
    status: ResultStatus = ResultStatus.IN_PROGRESS
    pending_answers: int = 0
    rank: Optional[int] = None  # written by the ranking engine only
    total_time_taken_minutes: Optional[int] = None
    submitted_at: Optional[datetime] = None
    auto_submitted: bool = False
    tab_switch_count: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("submitted_at", "updated_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value) if value is not None else value

    @property
    def is_evaluated(self) -> bool:
        return self.status == ResultStatus.EVALUATED

    def derived_fields(self) -> dict:
        """Every field the aggregator owns; rank is left to the ranking engine."""
        return self.model_dump(exclude={"rank"})

    def redacted(self) -> "Result":
        """Student-facing copy with score and rank withheld."""
        return self.model_copy(update={"score": 0, "percentage": 0, "is_passed": False, "rank": None})
