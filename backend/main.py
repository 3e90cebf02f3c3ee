"""
ExamCore Backend - Main FastAPI Application

Exam session and grading engine: lifecycle, attempts, evaluation, results
and rankings.
Version: 1.0
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Settings read the environment at import time
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from examcore.config.settings import settings
from examcore.routes.attempt_routes import create_attempt_routes
from examcore.routes.competition_routes import create_competition_routes
from examcore.routes.exam_routes import create_exam_routes
from examcore.routes.grading_routes import create_grading_routes
from examcore.routes.leaderboard_routes import create_leaderboard_routes
from examcore.services import DeadlineReaper, ExamEngine

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global references
db: AsyncIOMotorDatabase = None
engine: ExamEngine = None
reaper: DeadlineReaper = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup/shutdown."""
    global db, engine, reaper

    # STARTUP
    logger.info("🚀 ExamCore Backend Starting Up...")

    try:
        # Validate settings
        settings.validate()
        logger.info("✅ Settings validated")

        # Connect to MongoDB
        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            serverSelectionTimeoutMS=5000,
            tz_aware=True
        )

        # Test connection
        await client.server_info()
        db = client[settings.DATABASE_NAME]
        logger.info(f"✅ Connected to MongoDB: {settings.DATABASE_NAME}")

        # Engine + indexes
        engine = ExamEngine(
            db,
            ranking_method=settings.RANKING_METHOD,
            ranking_debounce_seconds=settings.RANKING_DEBOUNCE_SECONDS
        )
        await engine.initialize()
        logger.info("✅ Database indexes created")

        setup_routes(app, engine)

        if settings.REAPER_ENABLED:
            reaper = DeadlineReaper(
                engine,
                interval_seconds=settings.REAPER_INTERVAL_SECONDS,
                batch_size=settings.REAPER_BATCH_SIZE
            )
            reaper.start()
            logger.info("✅ Deadline reaper running in-process")

        logger.info("✅ Application startup complete")

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    yield

    # SHUTDOWN
    logger.info("🛑 Shutting down...")
    if reaper:
        await reaper.stop()
    if engine:
        await engine.close()
    if db is not None:
        db.client.close()
        logger.info("✅ Database connection closed")


def setup_routes(app: FastAPI, engine: ExamEngine):
    """Register all API routes against the engine."""
    app.include_router(create_exam_routes(engine))
    app.include_router(create_competition_routes(engine))
    app.include_router(create_attempt_routes(engine))
    app.include_router(create_grading_routes(engine))
    app.include_router(create_leaderboard_routes(engine))
    logger.info("✅ Routes registered")


# Create FastAPI application
app = FastAPI(
    title="ExamCore API",
    description="Exam session and grading engine",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "database": "connected" if db is not None else "disconnected",
        "reaper": "running" if reaper else "disabled"
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": "ExamCore",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
