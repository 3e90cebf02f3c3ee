"""Exam, competition and question Pydantic models"""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import ensure_utc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============ ENUMS ============

class QuestionType(str, Enum):
    MCQ = "MCQ"
    TRUE_FALSE = "TrueFalse"
    DESCRIPTIVE = "Descriptive"
    CODING = "Coding"


OBJECTIVE_TYPES = frozenset({QuestionType.MCQ.value, QuestionType.TRUE_FALSE.value})


class ExamStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CompetitionStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    APPROVED = "approved"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssessmentKind(str, Enum):
    EXAM = "exam"
    COMPETITION = "competition"


# ============ QUESTION ============

class QuestionOption(BaseModel):
    """One selectable option of an MCQ/TrueFalse question"""
    text: str
    is_correct: bool = False


class CodingTestCase(BaseModel):
    input: str = ""
    expected_output: str = ""
    is_hidden: bool = False


class Question(BaseModel):
    """Question as served by the question bank, correctness data included"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)
    question_id: str
    type: QuestionType
    text: str = ""
    marks: float = Field(ge=0)
    negative_marks: float = Field(default=0, ge=0)
    options: List[QuestionOption] = []  # MCQ / TrueFalse
    reference_answer: Optional[str] = None  # Descriptive
    test_cases: List[CodingTestCase] = []  # Coding

    @property
    def is_objective(self) -> bool:
        return self.type in OBJECTIVE_TYPES

    def correct_option(self) -> Optional[QuestionOption]:
        return next((opt for opt in self.options if opt.is_correct), None)


class ExamQuestionRef(BaseModel):
    """Reference from an exam to a bank question"""
    question_id: str
    order: int = 0
    marks: Optional[float] = None  # None means use the question's default marks


# ============ EXAM / COMPETITION ============

class AssessmentBase(BaseModel):
    """Schedule and scoring shape shared by exams and competitions"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    total_marks: float
    passing_marks: float
    negative_marking_enabled: bool = False
    negative_mark_per_wrong: float = 0
    is_randomized: bool = False
    show_results_immediately: bool = False
    questions: List[ExamQuestionRef] = []
    total_attempts: int = 0
    average_score: float = 0
    published_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("start_time", "end_time", "published_at", "cancelled_at", "created_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value) if value is not None else value

    @property
    def window_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60

    def marks_for(self, question: Question) -> float:
        """Marks a question carries in this assessment (per-exam override wins)."""
        for ref in self.questions:
            if ref.question_id == question.question_id and ref.marks is not None:
                return ref.marks
        return question.marks

    def question_ids(self) -> List[str]:
        return [ref.question_id for ref in sorted(self.questions, key=lambda r: r.order)]


class ExamDefinition(AssessmentBase):
    exam_id: str
    faculty_id: Optional[str] = None
    department_id: Optional[str] = None
    college_id: Optional[str] = None
    status: ExamStatus = ExamStatus.DRAFT  # stored: draft, scheduled, cancelled

    kind: ClassVar[AssessmentKind] = AssessmentKind.EXAM

    @property
    def assessment_id(self) -> str:
        return self.exam_id


class Competition(AssessmentBase):
    competition_id: str
    created_by: Optional[str] = None
    contributing_colleges: List[str] = []
    status: CompetitionStatus = CompetitionStatus.PENDING
    approved_at: Optional[datetime] = None
    live_at: Optional[datetime] = None

    kind: ClassVar[AssessmentKind] = AssessmentKind.COMPETITION

    @field_validator("approved_at", "live_at")
    @classmethod
    def _stamps_as_utc(cls, value):
        return ensure_utc(value) if value is not None else value

    @property
    def assessment_id(self) -> str:
        return self.competition_id
