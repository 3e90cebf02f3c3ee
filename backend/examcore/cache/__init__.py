"""Cache module for per-scope leaderboards."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ..models import LeaderboardEntry, RankingScope

logger = logging.getLogger(__name__)

Recompute = Callable[[RankingScope], Awaitable[List[LeaderboardEntry]]]


class ScopeEntry:
    """Cached ranking for one scope plus its bookkeeping."""

    def __init__(self, scope: RankingScope):
        self.scope = scope
        self.ranking: Optional[List[LeaderboardEntry]] = None
        self.generation = 0  # bumped once per completed recomputation
        self.invalidations = 0
        self.stale = True
        self.pending: Optional[asyncio.Task] = None

    @property
    def recompute_scheduled(self) -> bool:
        return self.pending is not None and not self.pending.done()


class LeaderboardCache:
    """
    Per-scope leaderboard cache with explicit invalidation.

    Invalidations arriving within ``debounce_seconds`` of each other are
    coalesced into one recomputation. While a recomputation is pending,
    readers get the previous ranking instead of waiting. With
    ``debounce_seconds=None`` every invalidation recomputes inline.
    """

    def __init__(self, recompute: Recompute, debounce_seconds: Optional[float] = None):
        self._recompute = recompute
        self.debounce_seconds = debounce_seconds
        self._entries: Dict[str, ScopeEntry] = {}

    def entry(self, scope: RankingScope) -> ScopeEntry:
        if scope.key not in self._entries:
            self._entries[scope.key] = ScopeEntry(scope)
        return self._entries[scope.key]

    def is_tracked(self, scope: RankingScope) -> bool:
        return scope.key in self._entries

    def generation(self, scope: RankingScope) -> int:
        entry = self._entries.get(scope.key)
        return entry.generation if entry else 0

    # ============ READS ============

    async def get(self, scope: RankingScope) -> List[LeaderboardEntry]:
        """Current ranking; computed lazily when missing or stale with nothing scheduled."""
        entry = self.entry(scope)
        if entry.ranking is not None and (not entry.stale or entry.recompute_scheduled):
            return entry.ranking
        try:
            return await self.refresh(scope)
        except Exception:
            if entry.ranking is not None:
                return entry.ranking
            raise

    # ============ INVALIDATION ============

    async def invalidate(self, scope: RankingScope) -> None:
        entry = self.entry(scope)
        entry.stale = True
        entry.invalidations += 1

        if self.debounce_seconds is None:
            try:
                await self.refresh(scope)
            except Exception:
                pass  # logged in refresh; the next trigger or read retries
            return

        if not entry.recompute_scheduled:
            entry.pending = asyncio.create_task(self._debounced_refresh(scope))

    async def _debounced_refresh(self, scope: RankingScope) -> None:
        entry = self.entry(scope)
        while True:
            await asyncio.sleep(self.debounce_seconds)
            seen = entry.invalidations
            try:
                await self.refresh(scope)
            except Exception:
                return  # logged in refresh; stale stays set so the next read retries
            # Invalidations that landed mid-recompute found this task still scheduled
            if entry.invalidations == seen:
                return
            logger.debug(f"Ranking for {scope.key} invalidated during recompute, recomputing again")

    async def refresh(self, scope: RankingScope) -> List[LeaderboardEntry]:
        entry = self.entry(scope)
        seen = entry.invalidations
        entry.stale = False
        try:
            ranking = await self._recompute(scope)
        except Exception as e:
            entry.stale = True
            logger.error(f"Ranking recomputation for {scope.key} failed: {e}", exc_info=True)
            raise
        entry.ranking = ranking
        entry.generation += 1
        # Computed from a read older than the latest invalidation
        entry.stale = entry.invalidations != seen
        return ranking

    # ============ LIFECYCLE ============

    async def wait_idle(self) -> None:
        """Wait for every scheduled recomputation to finish."""
        pending = [e.pending for e in self._entries.values() if e.recompute_scheduled]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        for entry in self._entries.values():
            if entry.recompute_scheduled:
                entry.pending.cancel()
        await self.wait_idle()
