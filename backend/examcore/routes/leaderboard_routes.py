"""
Leaderboard routes.

Endpoints:
- GET /api/rankings/{scope}?value=...&limit=...
- GET /api/rankings/{scope}/students/{student_id}?value=...

``scope`` is one of exam, competition, department, college, global; every
scope except global needs ``value``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from ..config.settings import settings
from ..errors import ExamEngineError
from ..models import RankingScope, ScopeKind
from ..services import ExamEngine

logger = logging.getLogger(__name__)


def _scope(kind: ScopeKind, value: Optional[str]) -> RankingScope:
    try:
        return RankingScope(kind=kind, value=value)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])


def create_leaderboard_routes(engine: ExamEngine) -> APIRouter:
    """Create leaderboard routes bound to an engine."""

    router = APIRouter(prefix="/api/rankings", tags=["rankings"])

    @router.get("/{scope}")
    async def get_leaderboard(
        scope: ScopeKind,
        value: Optional[str] = None,
        limit: Optional[int] = Query(None, ge=1),
    ):
        ranking_scope = _scope(scope, value)
        try:
            entries = await engine.get_leaderboard(
                ranking_scope, limit if limit is not None else settings.LEADERBOARD_LIMIT
            )
            return {"scope": ranking_scope.key, "count": len(entries), "entries": entries}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error reading leaderboard {ranking_scope.key}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/{scope}/students/{student_id}")
    async def get_student_rank(scope: ScopeKind, student_id: str, value: Optional[str] = None):
        ranking_scope = _scope(scope, value)
        try:
            rank = await engine.get_student_rank(ranking_scope, student_id)
            return {"scope": ranking_scope.key, "student_id": student_id, "rank": rank}
        except ExamEngineError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.error(f"Error reading rank of {student_id} in {ranking_scope.key}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
