"""
Exam lifecycle service - derives and transitions exam/competition status.

Only administrator-controlled states are stored (draft, scheduled, cancelled
for exams; pending, published, approved, live, cancelled for competitions).
``ongoing`` and ``completed`` are derived from the schedule and the clock on
every read, so there is no flag for a poller to keep in sync.

STATE MACHINES:
    exam:         draft -> scheduled -> (ongoing) -> (completed)
    competition:  pending -> published -> approved -> live -> (completed)
    both:         any non-completed state -> cancelled
"""

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import ValidationError

from ..errors import ExamNotFound, InvalidExamDefinition, InvalidTransition
from ..models import AssessmentBase, Competition, CompetitionStatus, ExamDefinition, ExamStatus
from ..store import Assessment, AttemptStore

logger = logging.getLogger(__name__)


# action -> (derived statuses it may start from, stored status it writes, timestamp field)
EXAM_TRANSITIONS: Dict[str, Tuple[FrozenSet[str], str, str]] = {
    "publish": (
        frozenset({ExamStatus.DRAFT.value}),
        ExamStatus.SCHEDULED.value,
        "published_at",
    ),
    "cancel": (
        frozenset({ExamStatus.DRAFT.value, ExamStatus.SCHEDULED.value, ExamStatus.ONGOING.value}),
        ExamStatus.CANCELLED.value,
        "cancelled_at",
    ),
}

COMPETITION_TRANSITIONS: Dict[str, Tuple[FrozenSet[str], str, str]] = {
    "publish": (
        frozenset({CompetitionStatus.PENDING.value}),
        CompetitionStatus.PUBLISHED.value,
        "published_at",
    ),
    "approve": (
        frozenset({CompetitionStatus.PUBLISHED.value}),
        CompetitionStatus.APPROVED.value,
        "approved_at",
    ),
    "go_live": (
        frozenset({CompetitionStatus.APPROVED.value}),
        CompetitionStatus.LIVE.value,
        "live_at",
    ),
    "cancel": (
        frozenset({
            CompetitionStatus.PENDING.value,
            CompetitionStatus.PUBLISHED.value,
            CompetitionStatus.APPROVED.value,
            CompetitionStatus.LIVE.value,
        }),
        CompetitionStatus.CANCELLED.value,
        "cancelled_at",
    ),
}

# Fields an authoring update may never touch
PROTECTED_FIELDS = frozenset({
    "exam_id", "status", "total_attempts", "average_score",
    "published_at", "cancelled_at", "created_at",
})


def derive_exam_status(exam: ExamDefinition, now: datetime) -> ExamStatus:
    """Pure function of the stored status, the schedule and ``now``."""
    if exam.status == ExamStatus.CANCELLED:
        return ExamStatus.CANCELLED
    if exam.status == ExamStatus.DRAFT:
        return ExamStatus.DRAFT
    if now >= exam.end_time:
        return ExamStatus.COMPLETED
    if now >= exam.start_time:
        return ExamStatus.ONGOING
    return ExamStatus.SCHEDULED


def derive_competition_status(competition: Competition, now: datetime) -> CompetitionStatus:
    """A live (or approved) competition reads as completed once its window closes."""
    stored = CompetitionStatus(competition.status)
    if stored in (CompetitionStatus.APPROVED, CompetitionStatus.LIVE) and now >= competition.end_time:
        return CompetitionStatus.COMPLETED
    return stored


def derive_status(assessment: AssessmentBase, now: datetime) -> str:
    if isinstance(assessment, Competition):
        return derive_competition_status(assessment, now).value
    return derive_exam_status(assessment, now).value


def is_accepting_attempts(assessment: AssessmentBase, now: datetime) -> bool:
    """True while new attempts may begin: ongoing exams, live competitions inside their window."""
    if isinstance(assessment, Competition):
        return (
            derive_competition_status(assessment, now) == CompetitionStatus.LIVE
            and assessment.start_time <= now < assessment.end_time
        )
    return derive_exam_status(assessment, now) == ExamStatus.ONGOING


def validate_definition(assessment: AssessmentBase, now: Optional[datetime] = None) -> None:
    """Raise InvalidExamDefinition listing every schedule/scoring inconsistency."""
    problems: List[str] = []

    if assessment.end_time <= assessment.start_time:
        problems.append("end_time must be after start_time")
    if assessment.duration_minutes <= 0:
        problems.append("duration_minutes must be positive")
    elif assessment.duration_minutes > assessment.window_minutes:
        problems.append(
            f"duration_minutes ({assessment.duration_minutes}) exceeds the exam window "
            f"({assessment.window_minutes:.0f} minutes)"
        )
    if assessment.total_marks <= 0:
        problems.append("total_marks must be positive")
    if assessment.passing_marks < 0:
        problems.append("passing_marks cannot be negative")
    if assessment.passing_marks > assessment.total_marks:
        problems.append("passing_marks cannot exceed total_marks")
    if assessment.negative_mark_per_wrong < 0:
        problems.append("negative_mark_per_wrong cannot be negative")
    if not assessment.questions:
        problems.append("at least one question is required")
    if now is not None and assessment.end_time <= now:
        problems.append("the exam window has already closed")

    if problems:
        raise InvalidExamDefinition("; ".join(problems))


class ExamLifecycleService:
    """Guarded state transitions for exams and competitions."""

    def __init__(self, store: AttemptStore, clock):
        self.store = store
        self.clock = clock

    # ============ READS ============

    async def load(self, assessment_id: str, kind: Optional[str] = None) -> Assessment:
        assessment = await self.store.get_assessment(assessment_id, kind)
        if assessment is None:
            raise ExamNotFound(f"{kind or 'exam'} {assessment_id} not found")
        return assessment

    def status_of(self, assessment: AssessmentBase) -> str:
        return derive_status(assessment, self.clock.now())

    async def get_exam_status(self, exam_id: str) -> ExamStatus:
        exam = await self.load(exam_id, "exam")
        return derive_exam_status(exam, self.clock.now())

    async def get_competition_status(self, competition_id: str) -> CompetitionStatus:
        competition = await self.load(competition_id, "competition")
        return derive_competition_status(competition, self.clock.now())

    # ============ TRANSITIONS ============

    async def _transition(self, assessment: Assessment, action: str) -> Assessment:
        table = COMPETITION_TRANSITIONS if isinstance(assessment, Competition) else EXAM_TRANSITIONS
        allowed_from, target, stamp_field = table[action]
        now = self.clock.now()
        current = derive_status(assessment, now)

        if current not in allowed_from:
            raise InvalidTransition(
                f"Cannot {action.replace('_', ' ')} {assessment.kind.value} "
                f"{assessment.assessment_id}: status is {current}"
            )
        if action == "publish":
            validate_definition(assessment, now)

        fields = {"status": target, stamp_field: now}
        applied = await self.store.update_assessment(assessment, fields, expected_status=assessment.status)
        if not applied:
            raise InvalidTransition(
                f"{assessment.kind.value} {assessment.assessment_id} changed status concurrently; "
                f"{action.replace('_', ' ')} not applied"
            )

        logger.info(f"{assessment.kind.value} {assessment.assessment_id}: {current} -> {target} ({action})")
        return assessment.model_copy(update=fields)

    async def publish_exam(self, exam_id: str) -> ExamDefinition:
        return await self._transition(await self.load(exam_id, "exam"), "publish")

    async def cancel_exam(self, exam_id: str) -> ExamDefinition:
        return await self._transition(await self.load(exam_id, "exam"), "cancel")

    async def publish_competition(self, competition_id: str) -> Competition:
        return await self._transition(await self.load(competition_id, "competition"), "publish")

    async def approve_competition(self, competition_id: str) -> Competition:
        return await self._transition(await self.load(competition_id, "competition"), "approve")

    async def go_live(self, competition_id: str) -> Competition:
        return await self._transition(await self.load(competition_id, "competition"), "go_live")

    async def cancel_competition(self, competition_id: str) -> Competition:
        return await self._transition(await self.load(competition_id, "competition"), "cancel")

    # ============ AUTHORING ============

    async def update_exam(self, exam_id: str, changes: Dict[str, Any]) -> ExamDefinition:
        """Apply an authoring change; only drafts and not-yet-started scheduled exams are mutable."""
        exam = await self.load(exam_id, "exam")
        now = self.clock.now()
        current = derive_exam_status(exam, now)
        if current not in (ExamStatus.DRAFT, ExamStatus.SCHEDULED):
            raise InvalidTransition(f"Cannot edit exam {exam_id}: status is {current.value}")

        blocked = PROTECTED_FIELDS.intersection(changes)
        if blocked:
            raise InvalidExamDefinition(f"Fields cannot be edited: {', '.join(sorted(blocked))}")

        try:
            updated = ExamDefinition(**{**exam.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidExamDefinition(str(e))
        if current == ExamStatus.SCHEDULED:
            validate_definition(updated, now)

        fields = updated.model_dump(include=set(changes))
        applied = await self.store.update_assessment(exam, fields, expected_status=exam.status)
        if not applied:
            raise InvalidTransition(f"exam {exam_id} changed status concurrently; edit not applied")
        logger.info(f"exam {exam_id} updated: {', '.join(sorted(changes))}")
        return updated
