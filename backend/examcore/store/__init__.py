"""Attempt store: durable records for exams, competitions, attempts and results."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..errors import DuplicateAttempt
from ..models import (
    Answer,
    AssessmentBase,
    AssessmentKind,
    Attempt,
    Competition,
    ExamDefinition,
    Result,
    ResultStatus,
)

logger = logging.getLogger(__name__)

Assessment = Union[ExamDefinition, Competition]

NO_ID = {"_id": 0}


class AttemptStore:
    """Typed access to the engine's Mongo collections."""

    EXAMS = "exams"
    COMPETITIONS = "competitions"
    ATTEMPTS = "attempts"
    RESULTS = "results"

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.exams_col = db[self.EXAMS]
        self.competitions_col = db[self.COMPETITIONS]
        self.attempts_col = db[self.ATTEMPTS]
        self.results_col = db[self.RESULTS]

    async def ensure_indexes(self) -> None:
        """Create indexes. The (exam_id, student_id) index is what makes attempts unique."""
        await self.exams_col.create_index("exam_id", unique=True)
        await self.exams_col.create_index([("department_id", 1), ("start_time", 1)])
        await self.competitions_col.create_index("competition_id", unique=True)
        await self.competitions_col.create_index("status")

        await self.attempts_col.create_index("attempt_id", unique=True)
        await self.attempts_col.create_index([("exam_id", 1), ("student_id", 1)], unique=True)
        await self.attempts_col.create_index([("submitted_at", 1), ("deadline_at", 1)])
        await self.attempts_col.create_index("needs_aggregation")

        await self.results_col.create_index("attempt_id", unique=True)
        await self.results_col.create_index([("exam_id", 1), ("status", 1)])
        await self.results_col.create_index([("department_id", 1), ("status", 1)])
        await self.results_col.create_index([("college_id", 1), ("status", 1)])

    # ============ EXAMS & COMPETITIONS ============

    def _collection_for(self, kind: str):
        if kind == AssessmentKind.COMPETITION:
            return self.competitions_col, "competition_id"
        return self.exams_col, "exam_id"

    async def insert_exam(self, exam: ExamDefinition) -> ExamDefinition:
        await self.exams_col.insert_one(exam.model_dump())
        return exam

    async def insert_competition(self, competition: Competition) -> Competition:
        await self.competitions_col.insert_one(competition.model_dump())
        return competition

    async def get_exam(self, exam_id: str) -> Optional[ExamDefinition]:
        doc = await self.exams_col.find_one({"exam_id": exam_id}, NO_ID)
        return ExamDefinition(**doc) if doc else None

    async def get_competition(self, competition_id: str) -> Optional[Competition]:
        doc = await self.competitions_col.find_one({"competition_id": competition_id}, NO_ID)
        return Competition(**doc) if doc else None

    async def get_assessment(self, assessment_id: str, kind: Optional[str] = None) -> Optional[Assessment]:
        """Look up an exam or competition; without ``kind`` exams are tried first."""
        if kind == AssessmentKind.COMPETITION:
            return await self.get_competition(assessment_id)
        exam = await self.get_exam(assessment_id)
        if exam is not None or kind == AssessmentKind.EXAM:
            return exam
        return await self.get_competition(assessment_id)

    async def update_assessment(
        self,
        assessment: AssessmentBase,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> bool:
        """
        Set fields on an exam/competition.

        With ``expected_status`` the write only lands if the stored status still
        matches, so two racing transitions cannot both succeed.
        """
        collection, id_field = self._collection_for(assessment.kind)
        query: Dict[str, Any] = {id_field: assessment.assessment_id}
        if expected_status is not None:
            query["status"] = expected_status
        result = await collection.update_one(query, {"$set": fields})
        return result.matched_count > 0

    async def record_submission(self, assessment: AssessmentBase) -> None:
        collection, id_field = self._collection_for(assessment.kind)
        await collection.update_one({id_field: assessment.assessment_id}, {"$inc": {"total_attempts": 1}})

    # ============ ATTEMPTS ============

    async def insert_attempt(self, attempt: Attempt) -> Attempt:
        try:
            await self.attempts_col.insert_one(attempt.model_dump())
        except DuplicateKeyError:
            raise DuplicateAttempt(
                f"Student {attempt.student_id} already has an attempt for {attempt.exam_id}"
            )
        return attempt

    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        doc = await self.attempts_col.find_one({"attempt_id": attempt_id}, NO_ID)
        return Attempt(**doc) if doc else None

    async def find_attempt(self, exam_id: str, student_id: str) -> Optional[Attempt]:
        doc = await self.attempts_col.find_one({"exam_id": exam_id, "student_id": student_id}, NO_ID)
        return Attempt(**doc) if doc else None

    async def freeze_attempt(
        self,
        attempt_id: str,
        answers: List[Answer],
        submitted_at: datetime,
        auto_submitted: bool,
    ) -> Optional[Attempt]:
        """
        Set ``submitted_at`` exactly once.

        Returns the frozen attempt, or None when another writer already
        submitted it (the caller lost the race).
        """
        doc = await self.attempts_col.find_one_and_update(
            {"attempt_id": attempt_id, "submitted_at": None},
            {"$set": {
                "answers": [a.model_dump() for a in answers],
                "submitted_at": submitted_at,
                "auto_submitted": auto_submitted,
                "needs_aggregation": True,
            }},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return Attempt(**doc) if doc else None

    async def save_in_progress_answer(self, attempt_id: str, answer: Answer) -> bool:
        """Autosave one response; refused once the attempt is submitted."""
        result = await self.attempts_col.update_one(
            {"attempt_id": attempt_id, "submitted_at": None, "answers.question_id": answer.question_id},
            {"$set": {
                "answers.$.selected_option": answer.selected_option,
                "answers.$.text_answer": answer.text_answer,
                "answers.$.code_answer": answer.code_answer,
                "answers.$.time_taken_seconds": answer.time_taken_seconds,
            }},
        )
        return result.matched_count > 0

    async def increment_tab_switch(self, attempt_id: str) -> Optional[Attempt]:
        doc = await self.attempts_col.find_one_and_update(
            {"attempt_id": attempt_id, "submitted_at": None},
            {"$inc": {"tab_switch_count": 1}},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return Attempt(**doc) if doc else None

    async def write_answer_grade(self, attempt_id: str, answer: Answer) -> bool:
        """Persist the grade fields of one answer, leaving the raw response alone."""
        fields = {f"answers.$.{name}": value for name, value in answer.grade_fields().items()}
        result = await self.attempts_col.update_one(
            {"attempt_id": attempt_id, "answers.question_id": answer.question_id},
            {"$set": fields},
        )
        return result.matched_count > 0

    async def mark_aggregated(self, attempt_id: str) -> None:
        await self.attempts_col.update_one({"attempt_id": attempt_id}, {"$set": {"needs_aggregation": False}})

    async def find_overdue_attempts(self, now: datetime, limit: int) -> List[Attempt]:
        docs = await self.attempts_col.find(
            {"submitted_at": None, "deadline_at": {"$lte": now}},
            NO_ID,
        ).sort("deadline_at", 1).to_list(limit)
        return [Attempt(**d) for d in docs]

    async def find_open_attempts(self, exam_id: str) -> List[Attempt]:
        docs = await self.attempts_col.find({"exam_id": exam_id, "submitted_at": None}, NO_ID).to_list(None)
        return [Attempt(**d) for d in docs]

    async def find_unaggregated_attempts(self, limit: int) -> List[Attempt]:
        docs = await self.attempts_col.find(
            {"needs_aggregation": True, "submitted_at": {"$ne": None}},
            NO_ID,
        ).to_list(limit)
        return [Attempt(**d) for d in docs]

    async def find_pending_evaluations(self, exam_id: str) -> List[Attempt]:
        docs = await self.attempts_col.find(
            {"exam_id": exam_id, "submitted_at": {"$ne": None}, "answers.is_evaluated": False},
            NO_ID,
        ).sort("submitted_at", 1).to_list(None)
        return [Attempt(**d) for d in docs]

    # ============ RESULTS ============

    async def get_result(self, attempt_id: str) -> Optional[Result]:
        doc = await self.results_col.find_one({"attempt_id": attempt_id}, NO_ID)
        return Result(**doc) if doc else None

    async def replace_result_totals(self, result: Result) -> Tuple[Optional[Result], Result]:
        """
        Overwrite every aggregator-owned field in one write.

        Returns (previous, current); ``rank`` survives from the previous record.
        """
        before = await self.results_col.find_one_and_update(
            {"attempt_id": result.attempt_id},
            {"$set": result.derived_fields()},
            projection=NO_ID,
            upsert=True,
            return_document=ReturnDocument.BEFORE,
        )
        previous = Result(**before) if before else None
        current = result.model_copy(update={"rank": previous.rank if previous else None})
        return previous, current

    async def find_results(self, query: Dict[str, Any]) -> List[Result]:
        docs = await self.results_col.find(query, NO_ID).to_list(None)
        return [Result(**d) for d in docs]

    async def evaluated_scores(self, exam_id: str) -> List[float]:
        docs = await self.results_col.find(
            {"exam_id": exam_id, "status": ResultStatus.EVALUATED.value},
            {"_id": 0, "score": 1},
        ).to_list(None)
        return [d.get("score", 0) for d in docs]

    async def write_ranks(self, ranks: Dict[str, int], clear_query: Optional[Dict[str, Any]] = None) -> None:
        """Store cached ranks; results matching ``clear_query`` lose theirs first."""
        if clear_query is not None:
            await self.results_col.update_many(clear_query, {"$set": {"rank": None}})
        for attempt_id, rank in ranks.items():
            await self.results_col.update_one({"attempt_id": attempt_id}, {"$set": {"rank": rank}})
