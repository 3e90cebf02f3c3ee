"""
Attempt routes used by students while taking an exam.

Endpoints:
- POST /api/exams/{exam_id}/attempts
- POST /api/competitions/{competition_id}/attempts
- PUT /api/attempts/{attempt_id}/answers
- POST /api/attempts/{attempt_id}/tab-switch
- POST /api/attempts/{attempt_id}/submit
- GET /api/attempts/{attempt_id}/result
"""

import logging

from fastapi import APIRouter, HTTPException

from ..errors import ExamEngineError
from ..models import AnswerSubmission, AssessmentKind, BeginAttemptRequest, SubmitAttemptRequest
from ..services import ExamEngine

logger = logging.getLogger(__name__)


def create_attempt_routes(engine: ExamEngine) -> APIRouter:
    """Create attempt routes bound to an engine."""

    router = APIRouter(prefix="/api", tags=["attempts"])

    async def _begin(assessment_id: str, student_id: str, kind: str):
        try:
            return await engine.begin_attempt(assessment_id, student_id, kind)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error starting attempt on {assessment_id} for {student_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/exams/{exam_id}/attempts", status_code=201)
    async def begin_exam_attempt(exam_id: str, payload: BeginAttemptRequest):
        return await _begin(exam_id, payload.student_id, AssessmentKind.EXAM.value)

    @router.post("/competitions/{competition_id}/attempts", status_code=201)
    async def begin_competition_attempt(competition_id: str, payload: BeginAttemptRequest):
        return await _begin(competition_id, payload.student_id, AssessmentKind.COMPETITION.value)

    @router.put("/attempts/{attempt_id}/answers")
    async def save_answer(attempt_id: str, payload: AnswerSubmission):
        """Autosave one answer while the attempt is open."""
        try:
            await engine.save_answer(attempt_id, payload)
            return {"success": True, "attempt_id": attempt_id, "question_id": payload.question_id}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error saving answer for attempt {attempt_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/attempts/{attempt_id}/tab-switch")
    async def record_tab_switch(attempt_id: str):
        try:
            count = await engine.record_tab_switch(attempt_id)
            return {"attempt_id": attempt_id, "tab_switch_count": count}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error recording tab switch for attempt {attempt_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/attempts/{attempt_id}/submit")
    async def submit_attempt(attempt_id: str, payload: SubmitAttemptRequest):
        """
        Submit the attempt.

        Objective questions are graded before the response is sent; the
        returned result is redacted unless the exam shows results immediately.
        """
        try:
            await engine.submit_attempt(attempt_id, payload.answers)
            return await engine.get_result(attempt_id, student_view=True)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error submitting attempt {attempt_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/attempts/{attempt_id}/result")
    async def get_result(attempt_id: str, student_view: bool = True):
        try:
            return await engine.get_result(attempt_id, student_view=student_view)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error reading result of attempt {attempt_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
