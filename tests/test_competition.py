import asyncio
from datetime import timedelta

import pytest

from examcore.errors import ExamNotActive, InvalidExamDefinition, InvalidTransition
from examcore.models import (
    AnswerSubmission,
    CompetitionCreate,
    CompetitionStatus,
    ExamQuestionRef,
    RankingScope,
    ScopeKind,
)


def _payload(clock, **overrides):
    fields = dict(
        title="Inter-college Coding Cup",
        start_time=clock.now() + timedelta(hours=1),
        end_time=clock.now() + timedelta(hours=3),
        duration_minutes=90,
        total_marks=10,
        passing_marks=4,
        questions=[
            ExamQuestionRef(question_id="q_mcq_1", order=0),
            ExamQuestionRef(question_id="q_mcq_2", order=1),
        ],
        created_by="admin_1",
        contributing_colleges=["college_a", "college_b"],
    )
    fields.update(overrides)
    return CompetitionCreate(**fields)


async def _live_competition(engine, clock):
    competition = await engine.create_competition(_payload(clock))
    await engine.publish_competition(competition.competition_id)
    await engine.approve_competition(competition.competition_id)
    await engine.go_live(competition.competition_id)
    clock.set(competition.start_time)
    return competition


def test_competition_moves_through_its_states(engine, clock):
    async def scenario():
        competition = await engine.create_competition(_payload(clock))
        cid = competition.competition_id
        assert await engine.get_competition_status(cid) == CompetitionStatus.PENDING

        with pytest.raises(InvalidTransition):
            await engine.go_live(cid)
        with pytest.raises(InvalidTransition):
            await engine.approve_competition(cid)

        assert (await engine.publish_competition(cid)).status == CompetitionStatus.PUBLISHED
        with pytest.raises(InvalidTransition):
            await engine.go_live(cid)

        approved = await engine.approve_competition(cid)
        assert approved.status == CompetitionStatus.APPROVED
        assert approved.approved_at == clock.now()

        live = await engine.go_live(cid)
        assert live.status == CompetitionStatus.LIVE
        assert await engine.get_competition_status(cid) == CompetitionStatus.LIVE

        clock.advance(hours=3)
        assert await engine.get_competition_status(cid) == CompetitionStatus.COMPLETED
        with pytest.raises(InvalidTransition):
            await engine.cancel_competition(cid)

    asyncio.run(scenario())


def test_publish_validates_the_definition(engine, clock):
    async def scenario():
        competition = await engine.create_competition(_payload(clock, duration_minutes=500))
        with pytest.raises(InvalidExamDefinition):
            await engine.publish_competition(competition.competition_id)
        assert await engine.get_competition_status(competition.competition_id) == CompetitionStatus.PENDING

    asyncio.run(scenario())


def test_attempts_need_a_live_competition_inside_its_window(engine, clock):
    async def scenario():
        competition = await engine.create_competition(_payload(clock))
        cid = competition.competition_id
        await engine.publish_competition(cid)
        await engine.approve_competition(cid)
        clock.set(competition.start_time)
        with pytest.raises(ExamNotActive):
            await engine.begin_attempt(cid, "stu_1", "competition")

        await engine.go_live(cid)
        clock.set(competition.start_time - timedelta(minutes=1))
        with pytest.raises(ExamNotActive):
            await engine.begin_attempt(cid, "stu_1", "competition")

        clock.set(competition.start_time)
        attempt = await engine.begin_attempt(cid, "stu_1", "competition")
        assert attempt.assessment_kind == "competition"

    asyncio.run(scenario())


def test_competition_results_rank_in_competition_scope(engine, clock):
    async def scenario():
        competition = await _live_competition(engine, clock)
        cid = competition.competition_id
        answers = {
            "stu_1": [AnswerSubmission(question_id="q_mcq_1", selected_option="Queue")],
            "stu_4": [
                AnswerSubmission(question_id="q_mcq_1", selected_option="Queue"),
                AnswerSubmission(question_id="q_mcq_2", selected_option="Merge sort"),
            ],
        }
        for student_id, submitted in answers.items():
            attempt = await engine.begin_attempt(cid, student_id, "competition")
            await engine.submit_attempt(attempt.attempt_id, submitted)

        scope = RankingScope(kind=ScopeKind.COMPETITION, value=cid)
        leaderboard = await engine.get_leaderboard(scope)
        assert [(e.student_id, e.rank) for e in leaderboard] == [("stu_4", 1), ("stu_1", 2)]
        # Competition results do not leak into an exam scope with the same id
        assert await engine.get_leaderboard(RankingScope.for_exam(cid)) == []

        stored = await engine.store.get_competition(cid)
        assert stored.total_attempts == 2
        assert stored.average_score == 7.5

    asyncio.run(scenario())


def test_cancelling_live_competition_submits_open_attempts(engine, clock):
    async def scenario():
        competition = await _live_competition(engine, clock)
        cid = competition.competition_id
        attempt = await engine.begin_attempt(cid, "stu_1", "competition")
        await engine.save_answer(attempt.attempt_id, AnswerSubmission(question_id="q_mcq_2", selected_option="Merge sort"))

        cancelled = await engine.cancel_competition(cid)
        assert cancelled.status == CompetitionStatus.CANCELLED

        result = await engine.get_result(attempt.attempt_id)
        assert result.auto_submitted
        assert result.score == 5
        with pytest.raises(ExamNotActive):
            await engine.begin_attempt(cid, "stu_2", "competition")

    asyncio.run(scenario())
