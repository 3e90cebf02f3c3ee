"""
Score aggregation - folds an attempt's graded answers into its Result.

Recomputation always rebuilds every derived field from the answers and writes
them in a single update, so a half-updated Result is never observable.
"""

import logging
from typing import Optional, Tuple

from ..models import AssessmentBase, Attempt, Result, ResultStatus
from ..store import AttemptStore
from ..utils import format_percentage, whole_minutes_between

logger = logging.getLogger(__name__)


def compute_result(attempt: Attempt, assessment: AssessmentBase) -> Result:
    """Pure fold over the attempt's answers."""
    common = dict(
        attempt_id=attempt.attempt_id,
        exam_id=attempt.exam_id,
        assessment_kind=attempt.assessment_kind,
        student_id=attempt.student_id,
        department_id=attempt.department_id,
        college_id=attempt.college_id,
        tab_switch_count=attempt.tab_switch_count,
    )
    if not attempt.is_submitted:
        return Result(status=ResultStatus.IN_PROGRESS, **common)

    # Negative marking may push the raw sum below zero; the score never does
    score = max(0.0, float(sum(a.marks_awarded for a in attempt.answers)))
    pending = sum(1 for a in attempt.answers if not a.is_evaluated)

    if attempt.auto_submitted:
        minutes = assessment.duration_minutes
    else:
        minutes = whole_minutes_between(attempt.started_at, attempt.submitted_at)

    return Result(
        score=score,
        percentage=format_percentage(score, assessment.total_marks),
        is_passed=score >= assessment.passing_marks,
        status=ResultStatus.EVALUATED if pending == 0 else ResultStatus.PENDING_EVALUATION,
        pending_answers=pending,
        total_time_taken_minutes=minutes,
        submitted_at=attempt.submitted_at,
        auto_submitted=attempt.auto_submitted,
        **common,
    )


def affects_ranking(previous: Optional[Result], current: Result) -> bool:
    """True when a recomputation can move ranks in the result's scopes."""
    was_ranked = previous is not None and previous.is_evaluated
    if was_ranked != current.is_evaluated:
        return True
    if not current.is_evaluated:
        return False
    return previous.percentage != current.percentage or previous.submitted_at != current.submitted_at


class ScoreAggregator:
    """Persists recomputed Results and the owning assessment's statistics."""

    def __init__(self, store: AttemptStore, clock):
        self.store = store
        self.clock = clock

    async def aggregate(self, attempt: Attempt, assessment: AssessmentBase) -> Tuple[Optional[Result], Result]:
        """Recompute and store the attempt's Result. Returns (previous, current)."""
        result = compute_result(attempt, assessment).model_copy(update={"updated_at": self.clock.now()})
        previous, current = await self.store.replace_result_totals(result)
        await self.store.mark_aggregated(attempt.attempt_id)

        if previous is None or previous.status != current.status or previous.score != current.score:
            await self.refresh_statistics(assessment)

        logger.info(
            f"Result {attempt.attempt_id}: score={current.score}/{assessment.total_marks} "
            f"({current.percentage}%), status={current.status}"
        )
        return previous, current

    async def refresh_statistics(self, assessment: AssessmentBase) -> float:
        """Recompute ``average_score`` over the assessment's evaluated results."""
        scores = await self.store.evaluated_scores(assessment.assessment_id)
        average = round(sum(scores) / len(scores), 2) if scores else 0.0
        await self.store.update_assessment(assessment, {"average_score": average})
        return average
