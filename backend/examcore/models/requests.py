"""Request payload models for the HTTP routes"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .exam import ExamQuestionRef


class AssessmentCreate(BaseModel):
    """Fields shared by exam and competition authoring"""
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


class ExamCreate(AssessmentCreate):
    faculty_id: Optional[str] = None
    department_id: Optional[str] = None
    college_id: Optional[str] = None


class CompetitionCreate(AssessmentCreate):
    created_by: Optional[str] = None
    contributing_colleges: List[str] = []


class ExamUpdate(BaseModel):
    """Partial update; only provided fields are applied"""
    changes: Dict[str, Any]


class BeginAttemptRequest(BaseModel):
    student_id: str


class AnswerSubmission(BaseModel):
    """Raw response for one question as sent by the student"""
    question_id: str
    selected_option: Optional[str] = None
    text_answer: Optional[str] = None
    code_answer: Optional[str] = None
    time_taken_seconds: Optional[int] = None


class SubmitAttemptRequest(BaseModel):
    answers: List[AnswerSubmission] = []


class GradeRequest(BaseModel):
    """Human evaluator's grade for one subjective answer"""
    marks_awarded: float
    is_correct: Optional[bool] = None
    feedback: Optional[str] = None
    evaluated_by: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
