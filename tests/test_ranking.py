import asyncio
from datetime import timedelta

import pytest

from examcore.cache import LeaderboardCache
from examcore.models import AnswerSubmission, LeaderboardEntry, RankingScope, Result, ResultStatus, ScopeKind
from examcore.services import ExamEngine
from examcore.services.ranking import assign_ranks, scopes_for

from conftest import T0
from fakes import open_exam

EXAM_QUESTIONS = ["q_mcq_1", "q_mcq_2", "q_desc"]
OBJECTIVE_ANSWERS = [
    AnswerSubmission(question_id="q_mcq_1", selected_option="Queue"),
    AnswerSubmission(question_id="q_mcq_2", selected_option="Merge sort"),
    AnswerSubmission(question_id="q_desc", text_answer="..."),
]


def _result(attempt_id, percentage, minute, status=ResultStatus.EVALUATED, **extra):
    return Result(
        attempt_id=attempt_id,
        exam_id="exam_1",
        student_id=f"stu_{attempt_id}",
        percentage=percentage,
        score=percentage / 10,
        status=status,
        submitted_at=T0 + timedelta(minutes=minute),
        **extra,
    )


# ============ PURE RANKING ============

def test_ties_share_a_rank_and_skip_the_next():
    ranking = assign_ranks([_result("a", 90, 5), _result("b", 70, 1), _result("c", 90, 3)])
    assert [(e.attempt_id, e.rank) for e in ranking] == [("c", 1), ("a", 1), ("b", 3)]


def test_dense_method_resumes_at_next_integer():
    ranking = assign_ranks([_result("a", 90, 5), _result("b", 70, 1), _result("c", 90, 3)], method="dense")
    assert [e.rank for e in ranking] == [1, 1, 2]


def test_only_evaluated_results_are_ranked():
    ranking = assign_ranks([
        _result("a", 80, 1),
        _result("b", 0, 2, status=ResultStatus.PENDING_EVALUATION),
        _result("c", 0, 3, status=ResultStatus.IN_PROGRESS),
    ])
    assert [e.attempt_id for e in ranking] == ["a"]


def test_unknown_method_is_rejected():
    with pytest.raises(ValueError):
        assign_ranks([], method="olympic")


def test_scopes_for_result_start_with_its_own_exam():
    result = _result("a", 80, 1, department_id="cse", college_id="college_a")
    assert [s.key for s in scopes_for(result)] == ["exam:exam_1", "department:cse", "college:college_a", "global"]


def test_scope_requires_value_except_global():
    with pytest.raises(ValueError):
        RankingScope(kind=ScopeKind.DEPARTMENT)
    assert RankingScope(kind=ScopeKind.GLOBAL).key == "global"


# ============ LEADERBOARD CACHE ============

def test_burst_of_invalidations_recomputes_once():
    calls = []

    async def recompute(scope):
        calls.append(scope.key)
        return []

    async def scenario():
        cache = LeaderboardCache(recompute, debounce_seconds=0.05)
        scope = RankingScope.for_exam("exam_1")
        for _ in range(5):
            await cache.invalidate(scope)
        assert cache.generation(scope) == 0

        await cache.wait_idle()
        assert cache.generation(scope) == 1
        assert calls == ["exam:exam_1"]

        await cache.invalidate(scope)
        await cache.wait_idle()
        assert cache.generation(scope) == 2

    asyncio.run(scenario())


def test_readers_get_previous_ranking_while_recompute_is_pending():
    rankings = [
        [LeaderboardEntry(student_id="s1", attempt_id="a1", exam_id="e", score=9, percentage=90, rank=1)],
        [],
    ]

    async def recompute(scope):
        return rankings.pop(0)

    async def scenario():
        cache = LeaderboardCache(recompute, debounce_seconds=0.05)
        scope = RankingScope.for_exam("e")
        first = await cache.get(scope)
        assert [e.attempt_id for e in first] == ["a1"]

        await cache.invalidate(scope)
        assert await cache.get(scope) == first

        await cache.wait_idle()
        assert await cache.get(scope) == []

    asyncio.run(scenario())


def test_invalidation_during_recompute_triggers_another_pass():
    calls = []

    async def scenario():
        async def recompute(scope):
            calls.append(scope.key)
            if len(calls) == 1:
                # A new result lands after this pass already read the store
                await cache.invalidate(scope)
            return []

        cache = LeaderboardCache(recompute, debounce_seconds=0.01)
        scope = RankingScope.for_exam("exam_1")
        await cache.invalidate(scope)
        await cache.wait_idle()

        assert calls == ["exam:exam_1", "exam:exam_1"]
        assert cache.generation(scope) == 2
        assert not cache.entry(scope).stale
        assert not cache.entry(scope).recompute_scheduled

    asyncio.run(scenario())


def test_failed_recompute_is_retried_on_next_read():
    attempts = []

    async def recompute(scope):
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("store unavailable")
        return []

    async def scenario():
        cache = LeaderboardCache(recompute, debounce_seconds=None)
        scope = RankingScope.for_exam("e")
        await cache.invalidate(scope)
        assert cache.entry(scope).stale
        assert cache.generation(scope) == 0

        assert await cache.get(scope) == []
        assert cache.generation(scope) == 1

    asyncio.run(scenario())


# ============ ENGINE ============

async def _graded_exam(engine, clock, descriptive_marks):
    """One exam, one attempt per student, descriptive answer graded to the given marks."""
    exam = await open_exam(engine, clock, EXAM_QUESTIONS, 20, 10)
    attempts = {}
    for student_id in descriptive_marks:
        attempts[student_id] = await engine.begin_attempt(exam.exam_id, student_id)
    for student_id, attempt in attempts.items():
        clock.advance(minutes=1)
        await engine.submit_attempt(attempt.attempt_id, OBJECTIVE_ANSWERS)
    for student_id, marks in descriptive_marks.items():
        await engine.grade_answer(attempts[student_id].attempt_id, "q_desc", marks, evaluated_by="prof_1")
    return exam, attempts


def test_exam_ranking_with_a_tie(engine, clock):
    async def scenario():
        exam, attempts = await _graded_exam(engine, clock, {"stu_2": 8, "stu_1": 8, "stu_3": 4})
        scope = RankingScope.for_exam(exam.exam_id)

        leaderboard = await engine.get_leaderboard(scope)
        assert [(e.student_id, e.percentage, e.rank) for e in leaderboard] == [
            ("stu_2", 90, 1),
            ("stu_1", 90, 1),
            ("stu_3", 70, 3),
        ]
        assert await engine.get_student_rank(scope, "stu_3") == 3
        assert await engine.get_student_rank(scope, "stu_4") is None
        assert (await engine.get_result(attempts["stu_3"].attempt_id)).rank == 3
        assert [e.rank for e in await engine.get_leaderboard(scope, limit=2)] == [1, 1]

    asyncio.run(scenario())


def test_dense_ranking_engine(db, clock):
    async def scenario():
        engine = ExamEngine(db, clock=clock, ranking_method="dense", ranking_debounce_seconds=None)
        exam, _ = await _graded_exam(engine, clock, {"stu_1": 8, "stu_2": 8, "stu_3": 4})
        assert await engine.get_student_rank(RankingScope.for_exam(exam.exam_id), "stu_3") == 2

    asyncio.run(scenario())


def test_pending_results_are_not_ranked(engine, clock):
    async def scenario():
        exam = await open_exam(engine, clock, EXAM_QUESTIONS, 20, 10)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        await engine.submit_attempt(attempt.attempt_id, OBJECTIVE_ANSWERS)

        assert await engine.get_leaderboard(RankingScope.for_exam(exam.exam_id)) == []
        assert (await engine.get_result(attempt.attempt_id)).rank is None

    asyncio.run(scenario())


def test_regrade_moves_ranks(engine, clock):
    async def scenario():
        exam, attempts = await _graded_exam(engine, clock, {"stu_1": 8, "stu_2": 8, "stu_3": 4})
        await engine.grade_answer(attempts["stu_3"].attempt_id, "q_desc", 10, evaluated_by="prof_1")

        scope = RankingScope.for_exam(exam.exam_id)
        assert [(e.student_id, e.rank) for e in await engine.get_leaderboard(scope)] == [
            ("stu_3", 1),
            ("stu_1", 2),
            ("stu_2", 2),
        ]
        assert (await engine.get_result(attempts["stu_1"].attempt_id)).rank == 2

    asyncio.run(scenario())


def test_department_college_and_global_scopes(engine, clock):
    async def scenario():
        await _graded_exam(engine, clock, {"stu_1": 8, "stu_3": 10, "stu_4": 2})

        department = await engine.get_leaderboard(RankingScope(kind=ScopeKind.DEPARTMENT, value="ece"))
        assert [(e.student_id, e.rank) for e in department] == [("stu_3", 1), ("stu_4", 2)]

        college = await engine.get_leaderboard(RankingScope(kind=ScopeKind.COLLEGE, value="college_a"))
        assert [e.student_id for e in college] == ["stu_3", "stu_1"]

        everyone = RankingScope(kind=ScopeKind.GLOBAL)
        assert await engine.get_student_rank(everyone, "stu_4") == 3

    asyncio.run(scenario())


def test_wider_scopes_refresh_after_first_read(engine, clock):
    async def scenario():
        exam, attempts = await _graded_exam(engine, clock, {"stu_1": 8, "stu_2": 4})
        department = RankingScope(kind=ScopeKind.DEPARTMENT, value="cse")
        assert await engine.get_student_rank(department, "stu_2") == 2

        await engine.grade_answer(attempts["stu_2"].attempt_id, "q_desc", 10, evaluated_by="prof_1")
        assert await engine.get_student_rank(department, "stu_2") == 1

    asyncio.run(scenario())


def test_debounced_engine_recomputes_once_per_burst(db, clock):
    async def scenario():
        engine = ExamEngine(db, clock=clock, ranking_debounce_seconds=0.01)
        exam = await open_exam(engine, clock, ["q_mcq_1", "q_mcq_2"], 10, 5)
        scope = RankingScope.for_exam(exam.exam_id)
        for student_id in ("stu_1", "stu_2", "stu_3"):
            attempt = await engine.begin_attempt(exam.exam_id, student_id)
            await engine.submit_attempt(attempt.attempt_id, OBJECTIVE_ANSWERS[:2])

        await engine.ranking.wait_idle()
        assert engine.ranking.cache.generation(scope) == 1
        assert [e.rank for e in await engine.get_leaderboard(scope)] == [1, 1, 1]
        await engine.close()

    asyncio.run(scenario())


def test_result_evaluated_during_slow_recompute_still_moves_ranks(db, clock, monkeypatch):
    async def scenario():
        engine = ExamEngine(db, clock=clock, ranking_debounce_seconds=0.01)
        exam = await open_exam(engine, clock, ["q_mcq_1", "q_mcq_2"], 10, 5)
        wrong = [
            AnswerSubmission(question_id="q_mcq_1", selected_option="Stack"),
            AnswerSubmission(question_id="q_mcq_2", selected_option="Bubble sort"),
        ]
        attempts = {s: await engine.begin_attempt(exam.exam_id, s) for s in ("stu_1", "stu_2", "stu_3")}

        await engine.submit_attempt(attempts["stu_1"].attempt_id, wrong)
        await engine.ranking.wait_idle()
        assert (await engine.get_result(attempts["stu_1"].attempt_id)).rank == 1

        find_results = engine.store.find_results

        async def slow_find_results(query):
            results = await find_results(query)
            await asyncio.sleep(0.1)
            return results

        monkeypatch.setattr(engine.store, "find_results", slow_find_results)

        await engine.submit_attempt(attempts["stu_3"].attempt_id, wrong)
        await asyncio.sleep(0.03)  # debounce elapsed, recompute is reading
        await engine.submit_attempt(attempts["stu_2"].attempt_id, OBJECTIVE_ANSWERS[:2])
        await engine.ranking.wait_idle()

        scope = RankingScope.for_exam(exam.exam_id)
        assert not engine.ranking.cache.entry(scope).stale
        ranks = {s: (await engine.get_result(a.attempt_id)).rank for s, a in attempts.items()}
        assert ranks == {"stu_2": 1, "stu_1": 2, "stu_3": 2}
        assert [(e.student_id, e.rank) for e in await engine.get_leaderboard(scope)] == [
            ("stu_2", 1),
            ("stu_1", 2),
            ("stu_3", 2),
        ]
        await engine.close()

    asyncio.run(scenario())


def test_leaderboard_limit_zero_is_empty(engine, clock):
    async def scenario():
        exam = await open_exam(engine, clock, ["q_mcq_1", "q_mcq_2"], 10, 5)
        attempt = await engine.begin_attempt(exam.exam_id, "stu_1")
        await engine.submit_attempt(attempt.attempt_id, OBJECTIVE_ANSWERS[:2])

        scope = RankingScope.for_exam(exam.exam_id)
        assert await engine.get_leaderboard(scope, limit=0) == []
        assert len(await engine.get_leaderboard(scope)) == 1
        with pytest.raises(ValueError):
            await engine.get_leaderboard(scope, limit=-1)

    asyncio.run(scenario())
