"""
Grading routes for evaluators.

Endpoints:
- POST /api/attempts/{attempt_id}/answers/{question_id}/grade
- GET /api/exams/{exam_id}/pending-evaluations
- POST /api/attempts/{attempt_id}/reaggregate
"""

import logging

from fastapi import APIRouter, HTTPException

from ..errors import ExamEngineError
from ..models import GradeRequest
from ..services import ExamEngine

logger = logging.getLogger(__name__)


def create_grading_routes(engine: ExamEngine) -> APIRouter:
    """Create grading routes bound to an engine."""

    router = APIRouter(prefix="/api", tags=["grading"])

    @router.post("/attempts/{attempt_id}/answers/{question_id}/grade")
    async def grade_answer(attempt_id: str, question_id: str, payload: GradeRequest):
        """
        Grade one Descriptive/Coding answer.

        Returns the recomputed result; it turns ``evaluated`` once the last
        pending answer is graded.
        """
        try:
            return await engine.grade_answer(
                attempt_id,
                question_id,
                marks_awarded=payload.marks_awarded,
                is_correct=payload.is_correct,
                feedback=payload.feedback,
                evaluated_by=payload.evaluated_by,
            )
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error grading {attempt_id}/{question_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/exams/{exam_id}/pending-evaluations")
    async def list_pending_evaluations(exam_id: str):
        try:
            attempts = await engine.list_pending_evaluations(exam_id)
            pending = [
                {
                    "attempt_id": attempt.attempt_id,
                    "student_id": attempt.student_id,
                    "submitted_at": attempt.submitted_at,
                    "question_ids": [a.question_id for a in attempt.answers if not a.is_evaluated],
                }
                for attempt in attempts
            ]
            return {"exam_id": exam_id, "count": len(pending), "attempts": pending}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error listing pending evaluations for {exam_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/attempts/{attempt_id}/reaggregate")
    async def reaggregate(attempt_id: str):
        """Recompute a result from its stored answers."""
        try:
            return await engine.reaggregate(attempt_id)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error re-aggregating attempt {attempt_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
