import asyncio
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from examcore.routes.attempt_routes import create_attempt_routes
from examcore.routes.competition_routes import create_competition_routes
from examcore.routes.exam_routes import create_exam_routes
from examcore.routes.grading_routes import create_grading_routes
from examcore.routes.leaderboard_routes import create_leaderboard_routes
from examcore.services import ExamEngine, ManualClock

from fakes import QUESTIONS, STUDENTS, FakeDatabase

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = FakeDatabase()
    database["questions"].seed(*QUESTIONS)
    database["users"].seed(*STUDENTS)
    return database


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def engine(db, clock):
    """Engine with inline ranking recomputation."""
    exam_engine = ExamEngine(db, clock=clock, ranking_debounce_seconds=None)
    asyncio.run(exam_engine.initialize())
    return exam_engine


@pytest.fixture
def client(engine):
    app = FastAPI()
    app.include_router(create_exam_routes(engine))
    app.include_router(create_competition_routes(engine))
    app.include_router(create_attempt_routes(engine))
    app.include_router(create_grading_routes(engine))
    app.include_router(create_leaderboard_routes(engine))
    with TestClient(app) as test_client:
        yield test_client
