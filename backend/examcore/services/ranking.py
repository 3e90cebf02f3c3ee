"""
Ranking service - orders evaluated results within a scope.

Results are ordered by percentage (descending) with earlier submission first
among equal percentages. Equal percentages share a rank. Two numbering
methods are supported:

- ``competition``: the rank after a tie skips the tied places (90, 90, 70 -> 1, 1, 3)
- ``dense``:       the rank after a tie is the next integer  (90, 90, 70 -> 1, 1, 2)

Rankings are eventually consistent: they are cached per scope, invalidated
when a result enters, leaves or changes inside the evaluated population, and
recomputed (debounced) in the background.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..cache import LeaderboardCache
from ..models import LeaderboardEntry, RankingScope, Result, ResultStatus, ScopeKind
from ..store import AttemptStore

logger = logging.getLogger(__name__)

RANKING_METHODS = ("competition", "dense")

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def assign_ranks(results: List[Result], method: str = "competition") -> List[LeaderboardEntry]:
    """Rank evaluated results. Non-evaluated results are ignored."""
    if method not in RANKING_METHODS:
        raise ValueError(f"Unknown ranking method {method!r}")

    ordered = sorted(
        (r for r in results if r.is_evaluated),
        key=lambda r: (-r.percentage, r.submitted_at or _LATEST, r.attempt_id),
    )

    entries: List[LeaderboardEntry] = []
    previous_percentage = None
    rank = 0
    distinct = 0
    for position, result in enumerate(ordered, start=1):
        if result.percentage != previous_percentage:
            distinct += 1
            rank = position if method == "competition" else distinct
            previous_percentage = result.percentage
        entries.append(LeaderboardEntry(
            student_id=result.student_id,
            attempt_id=result.attempt_id,
            exam_id=result.exam_id,
            score=result.score,
            percentage=result.percentage,
            rank=rank,
            submitted_at=result.submitted_at,
        ))
    return entries


def scopes_for(result: Result) -> List[RankingScope]:
    """Every scope a result belongs to, its own exam/competition first."""
    scopes = [RankingScope(kind=result.assessment_kind, value=result.exam_id)]
    if result.department_id:
        scopes.append(RankingScope(kind=ScopeKind.DEPARTMENT, value=result.department_id))
    if result.college_id:
        scopes.append(RankingScope(kind=ScopeKind.COLLEGE, value=result.college_id))
    scopes.append(RankingScope(kind=ScopeKind.GLOBAL))
    return scopes


class RankingService:
    """Computes, caches and serves rankings."""

    def __init__(
        self,
        store: AttemptStore,
        method: str = "competition",
        debounce_seconds: Optional[float] = None,
    ):
        if method not in RANKING_METHODS:
            raise ValueError(f"Unknown ranking method {method!r}")
        self.store = store
        self.method = method
        self.cache = LeaderboardCache(self._compute, debounce_seconds)

    async def _compute(self, scope: RankingScope) -> List[LeaderboardEntry]:
        results = await self.store.find_results(scope.result_filter())
        ranking = assign_ranks(results, self.method)

        # Result.rank caches the rank inside the result's own exam/competition
        if scope.kind in (ScopeKind.EXAM, ScopeKind.COMPETITION):
            await self.store.write_ranks(
                {entry.attempt_id: entry.rank for entry in ranking},
                clear_query={"exam_id": scope.value, "status": {"$ne": ResultStatus.EVALUATED.value}},
            )

        logger.info(f"Ranking for {scope.key} recomputed: {len(ranking)} ranked results")
        return ranking

    async def invalidate_for(self, result: Result) -> None:
        """
        Mark the result's scopes stale.

        The result's own exam scope is always recomputed so Result.rank stays
        current; wider scopes are only refreshed once somebody has asked for them.
        """
        own_scope, *wider = scopes_for(result)
        await self.cache.invalidate(own_scope)
        for scope in wider:
            if self.cache.is_tracked(scope):
                await self.cache.invalidate(scope)

    async def rank(self, scope: RankingScope) -> List[LeaderboardEntry]:
        """Full ranking of a scope; empty when nothing in it is evaluated."""
        return await self.cache.get(scope)

    async def get_leaderboard(self, scope: RankingScope, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        if limit is not None and limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
        ranking = await self.rank(scope)
        return ranking[:limit] if limit is not None else ranking

    async def get_student_rank(self, scope: RankingScope, student_id: str) -> Optional[int]:
        """Best rank the student holds in scope, or None when not ranked."""
        ranks = [e.rank for e in await self.rank(scope) if e.student_id == student_id]
        return min(ranks) if ranks else None

    async def rank_of(self, result: Result) -> Optional[int]:
        """A result's rank in its own exam scope; None unless evaluated."""
        if not result.is_evaluated:
            return None
        if result.rank is not None:
            return result.rank
        ranking = await self.rank(scopes_for(result)[0])
        return next((e.rank for e in ranking if e.attempt_id == result.attempt_id), None)

    async def wait_idle(self) -> None:
        await self.cache.wait_idle()

    async def close(self) -> None:
        await self.cache.close()
