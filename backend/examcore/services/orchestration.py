"""
Exam engine - coordinates the complete attempt workflow.

FLOW:
1. Exam authored (draft) -> published (scheduled) -> window opens (ongoing)
2. Student begins an attempt -> autosaves answers -> submits
   (or the deadline reaper submits on their behalf)
3. On submission:
   a. Objective answers auto-graded, subjective ones queued for evaluators
   b. Result recomputed from the graded answers
   c. Rankings of the affected scopes invalidated
4. Each manual grade repeats 3b and 3c for its attempt
"""

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.settings import settings
from ..errors import AlreadySubmitted, AttemptNotFound, InvalidGrade, QuestionNotFound
from ..models import (
    AnswerSubmission,
    Attempt,
    Competition,
    CompetitionCreate,
    CompetitionStatus,
    ExamCreate,
    ExamDefinition,
    ExamStatus,
    LeaderboardEntry,
    RankingScope,
    Result,
)
from ..store import Assessment, AttemptStore
from ..utils import new_id
from .aggregation import ScoreAggregator, affects_ranking, compute_result
from .clock import SystemClock
from .collaborators import QuestionBank, StudentDirectory
from .grading import GradingService, apply_manual_grade
from .lifecycle import ExamLifecycleService
from .ranking import RankingService
from .submission import SubmissionGatekeeper

logger = logging.getLogger(__name__)


class ExamEngine:
    """Single entry point used by the HTTP routes and the deadline reaper."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        clock=None,
        ranking_method: str = settings.RANKING_METHOD,
        ranking_debounce_seconds: Optional[float] = settings.RANKING_DEBOUNCE_SECONDS,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.store = AttemptStore(db)
        self.question_bank = QuestionBank(db)
        self.directory = StudentDirectory(db)
        self.lifecycle = ExamLifecycleService(self.store, self.clock)
        self.grader = GradingService(self.store, self.question_bank)
        self.aggregator = ScoreAggregator(self.store, self.clock)
        self.ranking = RankingService(self.store, ranking_method, ranking_debounce_seconds)
        self.gatekeeper = SubmissionGatekeeper(
            self.store, self.clock, self.directory, on_submitted=self._grade_submission
        )

    async def initialize(self) -> None:
        await self.store.ensure_indexes()

    async def close(self) -> None:
        await self.ranking.close()

    # ============ AUTHORING ============

    async def create_exam(self, payload: ExamCreate) -> ExamDefinition:
        exam = ExamDefinition(exam_id=new_id("exam"), created_at=self.clock.now(), **payload.model_dump())
        await self.store.insert_exam(exam)
        logger.info(f"exam {exam.exam_id} created: {exam.title}")
        return exam

    async def create_competition(self, payload: CompetitionCreate) -> Competition:
        competition = Competition(
            competition_id=new_id("comp"), created_at=self.clock.now(), **payload.model_dump()
        )
        await self.store.insert_competition(competition)
        logger.info(f"competition {competition.competition_id} created: {competition.title}")
        return competition

    async def update_exam(self, exam_id: str, changes: Dict[str, Any]) -> ExamDefinition:
        return await self.lifecycle.update_exam(exam_id, changes)

    # ============ LIFECYCLE ============

    async def get_exam_status(self, exam_id: str) -> ExamStatus:
        return await self.lifecycle.get_exam_status(exam_id)

    async def get_competition_status(self, competition_id: str) -> CompetitionStatus:
        return await self.lifecycle.get_competition_status(competition_id)

    async def publish_exam(self, exam_id: str) -> ExamDefinition:
        return await self.lifecycle.publish_exam(exam_id)

    async def cancel_exam(self, exam_id: str) -> ExamDefinition:
        exam = await self.lifecycle.cancel_exam(exam_id)
        await self.force_submit_open_attempts(exam)
        return exam

    async def publish_competition(self, competition_id: str) -> Competition:
        return await self.lifecycle.publish_competition(competition_id)

    async def approve_competition(self, competition_id: str) -> Competition:
        return await self.lifecycle.approve_competition(competition_id)

    async def go_live(self, competition_id: str) -> Competition:
        return await self.lifecycle.go_live(competition_id)

    async def cancel_competition(self, competition_id: str) -> Competition:
        competition = await self.lifecycle.cancel_competition(competition_id)
        await self.force_submit_open_attempts(competition)
        return competition

    async def force_submit_open_attempts(self, assessment: Assessment) -> int:
        """Freeze every in-progress attempt of a cancelled exam/competition."""
        submitted = 0
        for attempt in await self.store.find_open_attempts(assessment.assessment_id):
            try:
                await self.submit_attempt(attempt.attempt_id, auto_submit=True)
                submitted += 1
            except AlreadySubmitted:
                logger.info(f"Attempt {attempt.attempt_id} was submitted before cancellation caught it")
        if submitted:
            logger.info(f"{assessment.kind.value} {assessment.assessment_id}: force-submitted {submitted} open attempts")
        return submitted

    # ============ ATTEMPTS ============

    async def begin_attempt(self, exam_id: str, student_id: str, kind: Optional[str] = None) -> Attempt:
        return await self.gatekeeper.begin_attempt(exam_id, student_id, kind)

    async def save_answer(self, attempt_id: str, submission: AnswerSubmission) -> Attempt:
        return await self.gatekeeper.save_answer(attempt_id, submission)

    async def record_tab_switch(self, attempt_id: str) -> int:
        return await self.gatekeeper.record_tab_switch(attempt_id)

    async def submit_attempt(
        self,
        attempt_id: str,
        answers: Optional[List[AnswerSubmission]] = None,
        auto_submit: bool = False,
    ) -> Result:
        return await self.gatekeeper.submit_attempt(attempt_id, answers, auto_submit)

    async def _grade_submission(self, attempt: Attempt, assessment: Assessment) -> Result:
        graded = await self.grader.evaluate_attempt(attempt, assessment)
        return await self._rescore(graded, assessment)

    async def _rescore(self, attempt: Attempt, assessment: Assessment) -> Result:
        """
        Aggregate the attempt and refresh rankings it can move.

        When aggregation fails the attempt keeps ``needs_aggregation`` set and
        the reaper retries it; the caller still gets the computed figures.
        """
        try:
            previous, current = await self.aggregator.aggregate(attempt, assessment)
        except Exception as e:
            logger.error(f"Aggregation for attempt {attempt.attempt_id} failed, left for retry: {e}", exc_info=True)
            return compute_result(attempt, assessment)

        if affects_ranking(previous, current):
            await self.ranking.invalidate_for(current)
            stored = await self.store.get_result(attempt.attempt_id)
            if stored is not None:
                current = stored
        return current

    async def reaggregate(self, attempt_id: str) -> Result:
        """Re-run evaluation and aggregation for a submitted attempt (both are idempotent)."""
        attempt = await self._load_attempt(attempt_id)
        assessment = await self.lifecycle.load(attempt.exam_id, attempt.assessment_kind)
        if not attempt.is_submitted:
            return compute_result(attempt, assessment)
        return await self._grade_submission(attempt, assessment)

    # ============ MANUAL GRADING ============

    async def grade_answer(
        self,
        attempt_id: str,
        question_id: str,
        marks_awarded: float,
        is_correct: Optional[bool] = None,
        feedback: Optional[str] = None,
        evaluated_by: Optional[str] = None,
    ) -> Result:
        attempt = await self._load_attempt(attempt_id)
        if not attempt.is_submitted:
            raise InvalidGrade(f"Attempt {attempt_id} has not been submitted")
        answer = attempt.answer_for(question_id)
        if answer is None:
            raise QuestionNotFound(f"Question {question_id} is not part of attempt {attempt_id}")

        assessment = await self.lifecycle.load(attempt.exam_id, attempt.assessment_kind)
        question = (await self.question_bank.get_questions([question_id])).get(question_id)
        if question is None:
            raise QuestionNotFound(f"Question {question_id} not found in the question bank")

        graded = apply_manual_grade(
            answer, question, assessment, marks_awarded, is_correct, feedback, evaluated_by, self.clock.now()
        )
        await self.store.write_answer_grade(attempt_id, graded)
        logger.info(
            f"Attempt {attempt_id}: Q{question_id} graded {marks_awarded}/{assessment.marks_for(question)} "
            f"by {evaluated_by or 'unknown evaluator'}"
        )

        # Aggregate from the stored attempt so concurrent grades on sibling answers are included
        return await self._rescore(await self._load_attempt(attempt_id), assessment)

    async def list_pending_evaluations(self, exam_id: str) -> List[Attempt]:
        await self.lifecycle.load(exam_id)
        return await self.store.find_pending_evaluations(exam_id)

    # ============ RESULTS & RANKINGS ============

    async def _load_attempt(self, attempt_id: str) -> Attempt:
        attempt = await self.store.get_attempt(attempt_id)
        if attempt is None:
            raise AttemptNotFound(f"Attempt {attempt_id} not found")
        return attempt

    async def get_result(self, attempt_id: str, student_view: bool = False) -> Result:
        """
        Current result of an attempt.

        In-progress attempts get a synthesized in-progress result. With
        ``student_view`` marks stay hidden until the exam allows showing them.
        """
        attempt = await self._load_attempt(attempt_id)
        assessment = await self.lifecycle.load(attempt.exam_id, attempt.assessment_kind)

        result = await self.store.get_result(attempt_id)
        if result is None:
            result = compute_result(attempt, assessment)
        if result.is_evaluated and result.rank is None:
            result = result.model_copy(update={"rank": await self.ranking.rank_of(result)})

        if student_view and not self.results_visible(assessment):
            return result.redacted()
        return result

    def results_visible(self, assessment: Assessment) -> bool:
        if assessment.show_results_immediately:
            return True
        return self.lifecycle.status_of(assessment) == ExamStatus.COMPLETED.value

    async def get_leaderboard(self, scope: RankingScope, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        return await self.ranking.get_leaderboard(scope, limit)

    async def get_student_rank(self, scope: RankingScope, student_id: str) -> Optional[int]:
        return await self.ranking.get_student_rank(scope, student_id)
