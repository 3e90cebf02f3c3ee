"""
Submission gatekeeper - starts attempts and accepts each attempt's answers once.

Per (exam, student) serialization comes from the store: a unique index rejects
a second attempt, and submission is a conditional write on
``submitted_at = None``. Whoever lands that write first wins; everybody else
gets AlreadySubmitted.
"""

import logging
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from ..errors import (
    AlreadySubmitted,
    AttemptNotFound,
    DeadlineExceeded,
    DuplicateAttempt,
    ExamNotActive,
    ExamNotFound,
    QuestionNotFound,
)
from ..models import Answer, AnswerSubmission, Attempt, Result
from ..store import Assessment, AttemptStore
from ..utils import new_id, seeded_shuffle
from .collaborators import StudentDirectory
from .lifecycle import derive_status, is_accepting_attempts

logger = logging.getLogger(__name__)

SubmissionHandler = Callable[[Attempt, Assessment], Awaitable[Result]]


def merge_answers(current: List[Answer], submitted: List[AnswerSubmission], attempt_id: str = "") -> List[Answer]:
    """
    Overlay submitted responses on the attempt's answer list.

    Only fields the client actually sent are overwritten, so questions left
    out of the final payload keep their autosaved response. Unknown question
    ids are dropped.
    """
    by_question = {s.question_id: s for s in submitted}
    known = {a.question_id for a in current}
    unknown = set(by_question) - known
    if unknown:
        logger.warning(f"Attempt {attempt_id}: ignoring answers for unknown questions {sorted(unknown)}")

    merged = []
    for answer in current:
        submission = by_question.get(answer.question_id)
        if submission is None:
            merged.append(answer)
            continue
        merged.append(answer.model_copy(update=submission.model_dump(exclude_unset=True, exclude={"question_id"})))
    return merged


class SubmissionGatekeeper:
    """Validates attempt starts, autosaves and final submissions."""

    def __init__(
        self,
        store: AttemptStore,
        clock,
        directory: StudentDirectory,
        on_submitted: SubmissionHandler,
    ):
        self.store = store
        self.clock = clock
        self.directory = directory
        self.on_submitted = on_submitted

    async def _load_attempt(self, attempt_id: str) -> Attempt:
        attempt = await self.store.get_attempt(attempt_id)
        if attempt is None:
            raise AttemptNotFound(f"Attempt {attempt_id} not found")
        return attempt

    async def begin_attempt(self, exam_id: str, student_id: str, kind: Optional[str] = None) -> Attempt:
        assessment = await self.store.get_assessment(exam_id, kind)
        if assessment is None:
            raise ExamNotFound(f"Exam {exam_id} not found")

        now = self.clock.now()
        if not is_accepting_attempts(assessment, now):
            raise ExamNotActive(
                f"{assessment.kind.value} {exam_id} is not accepting attempts "
                f"(status: {derive_status(assessment, now)})"
            )

        if await self.store.find_attempt(exam_id, student_id) is not None:
            raise DuplicateAttempt(f"Student {student_id} already has an attempt for {exam_id}")

        membership = await self.directory.get_membership(student_id)
        attempt_id = new_id("attempt")
        question_ids = assessment.question_ids()
        if assessment.is_randomized:
            question_ids = seeded_shuffle(question_ids, attempt_id)

        attempt = Attempt(
            attempt_id=attempt_id,
            exam_id=exam_id,
            assessment_kind=assessment.kind,
            student_id=student_id,
            department_id=membership.department_id,
            college_id=membership.college_id,
            started_at=now,
            deadline_at=min(now + timedelta(minutes=assessment.duration_minutes), assessment.end_time),
            answers=[Answer(question_id=qid) for qid in question_ids],
        )
        # A concurrent begin for the same pair loses here with DuplicateAttempt
        await self.store.insert_attempt(attempt)

        logger.info(f"Attempt {attempt_id} started: student {student_id}, {assessment.kind.value} {exam_id}")
        return attempt

    async def save_answer(self, attempt_id: str, submission: AnswerSubmission) -> Attempt:
        """Autosave one in-progress response."""
        attempt = await self._load_attempt(attempt_id)
        if attempt.is_submitted:
            raise AlreadySubmitted(f"Attempt {attempt_id} was already submitted")
        if self.clock.now() >= attempt.deadline_at:
            raise DeadlineExceeded(f"Attempt {attempt_id} passed its deadline at {attempt.deadline_at.isoformat()}")
        if attempt.answer_for(submission.question_id) is None:
            raise QuestionNotFound(f"Question {submission.question_id} is not part of attempt {attempt_id}")

        merged = merge_answers(attempt.answers, [submission], attempt_id)
        answer = next(a for a in merged if a.question_id == submission.question_id)
        if not await self.store.save_in_progress_answer(attempt_id, answer):
            raise AlreadySubmitted(f"Attempt {attempt_id} was already submitted")
        return attempt.model_copy(update={"answers": merged})

    async def record_tab_switch(self, attempt_id: str) -> int:
        """Count a tamper signal. Only open attempts accept it."""
        updated = await self.store.increment_tab_switch(attempt_id)
        if updated is None:
            await self._load_attempt(attempt_id)
            raise AlreadySubmitted(f"Attempt {attempt_id} was already submitted")
        logger.info(f"Attempt {attempt_id}: tab switch #{updated.tab_switch_count}")
        return updated.tab_switch_count

    async def submit_attempt(
        self,
        attempt_id: str,
        answers: Optional[List[AnswerSubmission]] = None,
        auto_submit: bool = False,
    ) -> Result:
        """
        Freeze the attempt's answers and grade them before returning.

        ``auto_submit`` is reserved for the engine itself (deadline reaper,
        cancellation): it skips the deadline check and freezes the last
        autosaved state as-is.
        """
        attempt = await self._load_attempt(attempt_id)
        if attempt.is_submitted:
            raise AlreadySubmitted(f"Attempt {attempt_id} was already submitted")

        assessment = await self.store.get_assessment(attempt.exam_id, attempt.assessment_kind)
        if assessment is None:
            raise ExamNotFound(f"Exam {attempt.exam_id} not found")

        now = self.clock.now()
        if auto_submit:
            final_answers = attempt.answers
        else:
            if now >= attempt.deadline_at:
                raise DeadlineExceeded(
                    f"Attempt {attempt_id} passed its deadline at {attempt.deadline_at.isoformat()}"
                )
            final_answers = merge_answers(attempt.answers, answers or [], attempt_id)

        frozen = await self.store.freeze_attempt(attempt_id, final_answers, now, auto_submit)
        if frozen is None:
            raise AlreadySubmitted(f"Attempt {attempt_id} was already submitted")

        await self.store.record_submission(assessment)
        logger.info(
            f"Attempt {attempt_id} submitted{' automatically' if auto_submit else ''} "
            f"by student {attempt.student_id}"
        )
        return await self.on_submitted(frozen, assessment)
