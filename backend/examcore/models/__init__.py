"""Pydantic models for the exam engine"""

from .exam import (
    QuestionType,
    ExamStatus,
    CompetitionStatus,
    AssessmentKind,
    QuestionOption,
    CodingTestCase,
    Question,
    ExamQuestionRef,
    AssessmentBase,
    ExamDefinition,
    Competition,
)
from .attempt import ResultStatus, Answer, Attempt, Result
from .ranking import ScopeKind, RankingScope, LeaderboardEntry
from .requests import (
    AssessmentCreate,
    ExamCreate,
    CompetitionCreate,
    ExamUpdate,
    BeginAttemptRequest,
    AnswerSubmission,
    SubmitAttemptRequest,
    GradeRequest,
    CancelRequest,
)

__all__ = [
    # Exam models
    "QuestionType",
    "ExamStatus",
    "CompetitionStatus",
    "AssessmentKind",
    "QuestionOption",
    "CodingTestCase",
    "Question",
    "ExamQuestionRef",
    "AssessmentBase",
    "ExamDefinition",
    "Competition",

    # Attempt models
    "ResultStatus",
    "Answer",
    "Attempt",
    "Result",

    # Ranking models
    "ScopeKind",
    "RankingScope",
    "LeaderboardEntry",

    # Request models
    "AssessmentCreate",
    "ExamCreate",
    "CompetitionCreate",
    "ExamUpdate",
    "BeginAttemptRequest",
    "AnswerSubmission",
    "SubmitAttemptRequest",
    "GradeRequest",
    "CancelRequest",
]
