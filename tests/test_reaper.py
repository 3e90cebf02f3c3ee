import asyncio
from datetime import timedelta

import pytest

from examcore.errors import AlreadySubmitted
from examcore.models import AnswerSubmission, ResultStatus
from examcore.services import DeadlineReaper

from fakes import exam_payload, open_exam


def test_reaper_submits_attempts_past_their_deadline(engine, clock):
    async def scenario():
        exam = await open_exam(engine, clock, ["q_mcq_1", "q_mcq_2"], 10, 5, duration_minutes=30)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        await engine.save_answer(attempt.attempt_id, AnswerSubmission(question_id="q_mcq_1", selected_option="Queue"))
        reaper = DeadlineReaper(engine)

        clock.advance(minutes=29)
        assert await reaper.run_once() == 0

        clock.advance(minutes=1)
        assert await reaper.run_once() == 1

        stored = await engine.store.get_attempt(attempt.attempt_id)
        assert stored.auto_submitted
        assert stored.submitted_at == clock.now()

        result = await engine.get_result(attempt.attempt_id)
        assert result.auto_submitted
        assert result.score == 5
        assert result.status == ResultStatus.EVALUATED
        assert result.total_time_taken_minutes == 30

        # Nothing left to reap
        assert await reaper.run_once() == 0

    asyncio.run(scenario())


def test_student_submit_after_reaper_gets_already_submitted(engine, clock):
    async def scenario():
        exam = await open_exam(engine, clock, ["q_mcq_1"], 5, 2)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        clock.set(exam.end_time)

        assert await DeadlineReaper(engine).run_once() == 1
        with pytest.raises(AlreadySubmitted):
            await engine.submit_attempt(attempt.attempt_id, [AnswerSubmission(question_id="q_mcq_1", selected_option="Queue")])

    asyncio.run(scenario())


def test_reaper_wins_race_inside_student_submit(engine, clock, monkeypatch):
    async def scenario():
        exam = await open_exam(engine, clock, ["q_mcq_1"], 5, 2)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        reaper = DeadlineReaper(engine)
        clock.set(attempt.deadline_at - timedelta(seconds=1))

        freeze = engine.store.freeze_attempt

        async def reaper_freezes_first(attempt_id, answers, submitted_at, auto_submitted):
            if not auto_submitted:
                clock.advance(seconds=1)
                assert await reaper.run_once() == 1
            return await freeze(attempt_id, answers, submitted_at, auto_submitted)

        monkeypatch.setattr(engine.store, "freeze_attempt", reaper_freezes_first)

        with pytest.raises(AlreadySubmitted):
            await engine.submit_attempt(attempt.attempt_id, [AnswerSubmission(question_id="q_mcq_1", selected_option="Queue")])

        stored = await engine.store.get_attempt(attempt.attempt_id)
        assert stored.auto_submitted
        assert stored.answer_for("q_mcq_1").selected_option is None
        assert (await engine.store.get_exam(exam.exam_id)).total_attempts == 1

    asyncio.run(scenario())


def test_one_failing_attempt_does_not_stop_the_pass(engine, clock, db):
    async def scenario():
        first = await engine.create_exam(exam_payload(clock, ["q_mcq_1"], 5, 2))
        second = await engine.create_exam(exam_payload(clock, ["q_mcq_1"], 5, 2, title="Retake"))
        for exam in (first, second):
            await engine.publish_exam(exam.exam_id)
        clock.set(first.start_time)
        broken = await engine.begin_attempt(first.exam_id, "stu_1")
        healthy = await engine.begin_attempt(second.exam_id, "stu_1")

        db["exams"].docs = [d for d in db["exams"].docs if d["exam_id"] != first.exam_id]
        clock.set(first.end_time)

        assert await DeadlineReaper(engine).run_once() == 1
        assert not (await engine.store.get_attempt(broken.attempt_id)).is_submitted
        assert (await engine.store.get_attempt(healthy.attempt_id)).auto_submitted

    asyncio.run(scenario())


def test_reaper_loop_starts_and_stops(engine, clock):
    async def scenario():
        exam = await open_exam(engine, clock, ["q_mcq_1"], 5, 2)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        clock.set(exam.end_time)

        reaper = DeadlineReaper(engine, interval_seconds=0.01)
        task = reaper.start()
        assert reaper.start() is task
        for _ in range(50):
            if (await engine.store.get_attempt(attempt.attempt_id)).is_submitted:
                break
            await asyncio.sleep(0.01)
        await reaper.stop()

        assert task.done()
        assert (await engine.store.get_attempt(attempt.attempt_id)).auto_submitted

    asyncio.run(scenario())
