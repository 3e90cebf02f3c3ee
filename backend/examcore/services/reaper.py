"""
Deadline reaper - force-submits attempts whose personal deadline has passed.

Each pass:
1. Finds open attempts with ``deadline_at <= now`` and submits them through
   the engine's normal path with ``auto_submit=True``.
2. Retries aggregation for submitted attempts still flagged
   ``needs_aggregation`` (a crash or store error between freezing and
   scoring leaves that flag behind).

Losing a race against a student's own submit is expected and only logged.
"""

import asyncio
import logging
from typing import Optional

from ..errors import AlreadySubmitted, ExamEngineError

logger = logging.getLogger(__name__)


class DeadlineReaper:
    """Periodic sweeper driven by the engine's clock."""

    def __init__(self, engine, interval_seconds: float = 30, batch_size: int = 200):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """One sweep. Returns how many attempts this pass submitted."""
        now = self.engine.clock.now()
        overdue = await self.engine.store.find_overdue_attempts(now, self.batch_size)

        reaped = 0
        for attempt in overdue:
            try:
                await self.engine.submit_attempt(attempt.attempt_id, auto_submit=True)
                reaped += 1
            except AlreadySubmitted:
                logger.info(f"Attempt {attempt.attempt_id} already submitted; skipping")
            except ExamEngineError as e:
                logger.warning(f"Could not auto-submit attempt {attempt.attempt_id}: {e.message}")
            except Exception as e:
                logger.error(f"Auto-submit of attempt {attempt.attempt_id} failed: {e}", exc_info=True)

        repaired = await self.repair_aggregations()
        if reaped or repaired:
            logger.info(f"Reaper pass: {reaped} auto-submitted, {repaired} re-aggregated")
        return reaped

    async def repair_aggregations(self) -> int:
        repaired = 0
        for attempt in await self.engine.store.find_unaggregated_attempts(self.batch_size):
            try:
                await self.engine.reaggregate(attempt.attempt_id)
                repaired += 1
            except Exception as e:
                logger.error(f"Re-aggregation of attempt {attempt.attempt_id} failed: {e}", exc_info=True)
        return repaired

    async def run_forever(self) -> None:
        logger.info(f"Deadline reaper started (every {self.interval_seconds}s, batch {self.batch_size})")
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reaper pass failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Deadline reaper stopped")
