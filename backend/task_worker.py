"""
Standalone deadline reaper for ExamCore.

Runs the auto-submit sweep outside the API process. Run it instead of the
in-process reaper (set REAPER_ENABLED=false on the API) when the API is
scaled to several replicas; concurrent reapers are still safe because every
submission is a conditional write.
"""

import asyncio
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from motor.motor_asyncio import AsyncIOMotorClient

from examcore.config.settings import settings
from examcore.services import DeadlineReaper, ExamEngine

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('task_worker')


async def worker_loop(reaper: DeadlineReaper):
    """Main worker loop - sweeps for overdue attempts"""
    logger.info(f"Reaper worker started. Sweeping every {reaper.interval_seconds}s...")

    while True:
        try:
            reaped = await reaper.run_once()
            if reaped:
                logger.info(f"⏱️  Auto-submitted {reaped} overdue attempts")
            await asyncio.sleep(reaper.interval_seconds)

        except Exception as e:
            logger.error(f"Worker loop error: {str(e)}", exc_info=True)
            await asyncio.sleep(reaper.interval_seconds * 2)  # Wait longer on error


async def main():
    """Entry point"""
    settings.validate()

    logger.info("=" * 50)
    logger.info("ExamCore Deadline Reaper")
    logger.info(f"MongoDB: {settings.DATABASE_NAME}")
    logger.info("=" * 50)

    client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    engine = ExamEngine(
        client[settings.DATABASE_NAME],
        ranking_method=settings.RANKING_METHOD,
        # No readers in this process; rank writes happen inline
        ranking_debounce_seconds=None
    )
    reaper = DeadlineReaper(
        engine,
        interval_seconds=settings.REAPER_INTERVAL_SECONDS,
        batch_size=settings.REAPER_BATCH_SIZE
    )

    try:
        await engine.initialize()
        await worker_loop(reaper)
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error(f"Worker crashed: {str(e)}", exc_info=True)
    finally:
        await engine.close()
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
