"""
Grading service - applies per-question-type scoring rules to submitted answers.

RULES:
- MCQ / TrueFalse: auto-graded at submission. Correct answers earn the
  question's marks; wrong answers lose the negative marks when negative
  marking is enabled; unanswered questions score 0 and count as evaluated.
- Descriptive / Coding: left unevaluated with 0 provisional marks until a
  human evaluator posts a grade through ``apply_manual_grade``.

Each rule is a pure function of (answer, question, assessment). An answer
that is already evaluated is returned untouched, so re-running evaluation is
always safe.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..errors import InvalidGrade
from ..models import AssessmentBase, Answer, Attempt, Question, QuestionType
from ..store import AttemptStore
from .collaborators import QuestionBank

logger = logging.getLogger(__name__)

AUTO_GRADER = "auto"

GradingRule = Callable[[Answer, Question, AssessmentBase], Answer]


def _ungradable(answer: Answer, reason: str) -> Answer:
    """Degraded grade for an answer whose question or payload is unusable."""
    return answer.model_copy(update={
        "is_evaluated": True,
        "is_correct": False,
        "marks_awarded": 0,
        "feedback": reason,
        "evaluated_by": AUTO_GRADER,
    })


def _normalize(value: str, question_type: str) -> str:
    value = value.strip()
    if question_type == QuestionType.TRUE_FALSE:
        return value.casefold()
    return value


def penalty_for(question: Question, assessment: AssessmentBase) -> float:
    """Marks lost for a wrong objective answer (question value first, then the exam-wide one)."""
    if not assessment.negative_marking_enabled:
        return 0
    if question.negative_marks > 0:
        return question.negative_marks
    return assessment.negative_mark_per_wrong


def grade_objective(answer: Answer, question: Question, assessment: AssessmentBase) -> Answer:
    response = answer.selected_option
    if response is None or not response.strip():
        return answer.model_copy(update={
            "is_evaluated": True,
            "is_correct": False,
            "marks_awarded": 0,
            "evaluated_by": AUTO_GRADER,
        })

    correct = question.correct_option()
    if correct is None:
        return _ungradable(answer, "Question has no correct option configured")

    is_correct = _normalize(response, question.type) == _normalize(correct.text, question.type)
    marks = assessment.marks_for(question) if is_correct else -penalty_for(question, assessment)
    return answer.model_copy(update={
        "is_evaluated": True,
        "is_correct": is_correct,
        "marks_awarded": marks,
        "evaluated_by": AUTO_GRADER,
    })


def defer_to_manual(answer: Answer, question: Question, assessment: AssessmentBase) -> Answer:
    return answer.model_copy(update={
        "is_evaluated": False,
        "is_correct": None,
        "marks_awarded": 0,
    })


GRADING_RULES: Dict[str, GradingRule] = {
    QuestionType.MCQ.value: grade_objective,
    QuestionType.TRUE_FALSE.value: grade_objective,
    QuestionType.DESCRIPTIVE.value: defer_to_manual,
    QuestionType.CODING.value: defer_to_manual,
}


def evaluate_answer(answer: Answer, question: Optional[Question], assessment: AssessmentBase) -> Answer:
    """Grade one answer. Already-evaluated answers come back unchanged."""
    if answer.is_evaluated:
        return answer
    if question is None:
        return _ungradable(answer, "Question is no longer available in the question bank")
    rule = GRADING_RULES.get(question.type)
    if rule is None:
        return _ungradable(answer, f"No grading rule for question type {question.type}")
    return rule(answer, question, assessment)


def apply_manual_grade(
    answer: Answer,
    question: Question,
    assessment: AssessmentBase,
    marks_awarded: float,
    is_correct: Optional[bool],
    feedback: Optional[str],
    evaluated_by: Optional[str],
    now: datetime,
) -> Answer:
    """Validate and apply a human evaluator's grade. Raises InvalidGrade without side effects."""
    if question.is_objective:
        raise InvalidGrade(f"Question {question.question_id} is {question.type} and is graded automatically")

    max_marks = assessment.marks_for(question)
    if marks_awarded < 0:
        raise InvalidGrade(f"marks_awarded cannot be negative (got {marks_awarded})")
    if marks_awarded > max_marks:
        raise InvalidGrade(
            f"marks_awarded {marks_awarded} exceeds the {max_marks} marks question {question.question_id} carries"
        )

    return answer.model_copy(update={
        "is_evaluated": True,
        "is_correct": is_correct if is_correct is not None else marks_awarded >= max_marks,
        "marks_awarded": marks_awarded,
        "feedback": feedback,
        "evaluated_by": evaluated_by,
        "evaluated_at": now,
    })


class GradingService:
    """Evaluates every answer of a frozen attempt and persists the grades."""

    def __init__(self, store: AttemptStore, question_bank: QuestionBank):
        self.store = store
        self.question_bank = question_bank

    async def evaluate_attempt(self, attempt: Attempt, assessment: AssessmentBase) -> Attempt:
        """
        Grade all answers independently.

        A failure on one answer degrades that answer to zero; its siblings are
        still graded. Only answers whose grade changed are written back.
        """
        questions = await self.question_bank.get_questions(a.question_id for a in attempt.answers)

        graded: List[Answer] = []
        for answer in attempt.answers:
            try:
                result = evaluate_answer(answer, questions.get(answer.question_id), assessment)
            except Exception as e:
                logger.warning(
                    f"Attempt {attempt.attempt_id}: grading Q{answer.question_id} failed, scoring 0: {e}",
                    exc_info=True,
                )
                result = _ungradable(answer, "Response could not be graded")

            if result.grade_fields() != answer.grade_fields():
                await self.store.write_answer_grade(attempt.attempt_id, result)
            graded.append(result)

        pending = sum(1 for a in graded if not a.is_evaluated)
        logger.info(
            f"Attempt {attempt.attempt_id} evaluated: {len(graded) - pending} auto-graded, "
            f"{pending} awaiting manual evaluation"
        )
        return attempt.model_copy(update={"answers": graded})
