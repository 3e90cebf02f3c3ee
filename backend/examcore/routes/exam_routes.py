"""
Exam management routes.

Endpoints:
- POST /api/exams
- PATCH /api/exams/{exam_id}
- GET /api/exams/{exam_id}/status
- POST /api/exams/{exam_id}/publish
- POST /api/exams/{exam_id}/cancel
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from ..errors import ExamEngineError
from ..models import CancelRequest, ExamCreate, ExamUpdate
from ..services import ExamEngine

logger = logging.getLogger(__name__)


def create_exam_routes(engine: ExamEngine) -> APIRouter:
    """Create exam routes bound to an engine."""

    router = APIRouter(prefix="/api/exams", tags=["exams"])

    @router.post("", status_code=201)
    async def create_exam(payload: ExamCreate):
        """Create an exam in draft."""
        try:
            return await engine.create_exam(payload)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error creating exam: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.patch("/{exam_id}")
    async def update_exam(exam_id: str, payload: ExamUpdate):
        """Edit a draft, or a scheduled exam that has not started."""
        try:
            return await engine.update_exam(exam_id, payload.changes)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error updating exam {exam_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/{exam_id}/status")
    async def get_exam_status(exam_id: str):
        """Status derived from the schedule at request time."""
        try:
            status = await engine.get_exam_status(exam_id)
            return {"exam_id": exam_id, "status": status.value}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error reading status of exam {exam_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/{exam_id}/publish")
    async def publish_exam(exam_id: str):
        try:
            exam = await engine.publish_exam(exam_id)
            return {"success": True, "exam_id": exam_id, "status": exam.status}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error publishing exam {exam_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/{exam_id}/cancel")
    async def cancel_exam(exam_id: str, payload: Optional[CancelRequest] = None):
        """Cancel the exam; open attempts are submitted as they stand."""
        try:
            exam = await engine.cancel_exam(exam_id)
            if payload and payload.reason:
                logger.info(f"exam {exam_id} cancelled: {payload.reason}")
            return {"success": True, "exam_id": exam_id, "status": exam.status}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error cancelling exam {exam_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
