"""Services implementing the exam engine."""

from .clock import SystemClock, ManualClock
from .collaborators import QuestionBank, StudentDirectory
from .lifecycle import ExamLifecycleService
from .grading import GradingService
from .aggregation import ScoreAggregator
from .ranking import RankingService
from .submission import SubmissionGatekeeper
from .orchestration import ExamEngine
from .reaper import DeadlineReaper

__all__ = [
    "SystemClock",
    "ManualClock",
    "QuestionBank",
    "StudentDirectory",
    "ExamLifecycleService",
    "GradingService",
    "ScoreAggregator",
    "RankingService",
    "SubmissionGatekeeper",
    "ExamEngine",
    "DeadlineReaper"
]
