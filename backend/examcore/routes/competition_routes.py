"""
Competition management routes.

Endpoints:
- POST /api/competitions
- GET /api/competitions/{competition_id}/status
- POST /api/competitions/{competition_id}/publish
- POST /api/competitions/{competition_id}/approve
- POST /api/competitions/{competition_id}/go-live
- POST /api/competitions/{competition_id}/cancel
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from ..errors import ExamEngineError
from ..models import CancelRequest, CompetitionCreate
from ..services import ExamEngine

logger = logging.getLogger(__name__)


def create_competition_routes(engine: ExamEngine) -> APIRouter:
    """Create competition routes bound to an engine."""

    router = APIRouter(prefix="/api/competitions", tags=["competitions"])

    async def _transition(competition_id: str, action):
        try:
            competition = await action(competition_id)
            return {"success": True, "competition_id": competition_id, "status": competition.status}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error updating competition {competition_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("", status_code=201)
    async def create_competition(payload: CompetitionCreate):
        try:
            return await engine.create_competition(payload)
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error creating competition: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/{competition_id}/status")
    async def get_competition_status(competition_id: str):
        try:
            status = await engine.get_competition_status(competition_id)
            return {"competition_id": competition_id, "status": status.value}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error reading status of competition {competition_id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/{competition_id}/publish")
    async def publish_competition(competition_id: str):
        return await _transition(competition_id, engine.publish_competition)

    @router.post("/{competition_id}/approve")
    async def approve_competition(competition_id: str):
        return await _transition(competition_id, engine.approve_competition)

    @router.post("/{competition_id}/go-live")
    async def go_live(competition_id: str):
        return await _transition(competition_id, engine.go_live)

    @router.post("/{competition_id}/cancel")
    async def cancel_competition(competition_id: str, payload: Optional[CancelRequest] = None):
        if payload and payload.reason:
            logger.info(f"competition {competition_id} cancellation requested: {payload.reason}")
        return await _transition(competition_id, engine.cancel_competition)

    return router
