import asyncio
import threading

import pytest

from errors import NotFound, UpstreamFailure, ValidationFailure
from factories import NOW, make_attempt, make_question, make_quiz
from session import QuizSession, SessionRegistry, SessionState, run_countdown


class Recorder:
    def __init__(self, fail_times=0):
        self.submissions = []
        self.fail_times = fail_times

    def __call__(self, submission):
        if self.fail_times:
            self.fail_times -= 1
            raise UpstreamFailure("Database error while talking to the attempt store.")
        self.submissions.append(submission)
        return make_attempt(score=submission.result.earned_points, completed_at=NOW)


def _session(persist=None, n=3, time_limit=1):
    questions = [make_question(qid=f"q{i}", correct=1, points=10, order=i) for i in range(n)]
    s = QuizSession(make_quiz(time_limit=time_limit), "student-1", persist or Recorder())
    s.load(list(reversed(questions)))
    return s


def test_load_orders_questions_and_seeds_timer():
    s = _session()
    assert s.state is SessionState.IN_PROGRESS
    assert [q.id for q in s.questions] == ["q0", "q1", "q2"]
    assert s.time_left == 60


def test_load_rejects_empty_quiz():
    s = QuizSession(make_quiz(), "student-1", Recorder())
    with pytest.raises(ValidationFailure):
        s.load([])
    assert s.state is SessionState.LOADING


def test_select_overwrites_current_answer_without_moving():
    s = _session()
    s.select(0)
    s.select(1)
    assert s.answers == {0: 1}
    assert s.index == 0


def test_select_rejects_out_of_range_option():
    s = _session()
    with pytest.raises(ValidationFailure):
        s.select(4)


def test_navigation_is_clamped_and_needs_no_answer():
    s = _session()
    s.previous()
    assert s.index == 0
    s.next()
    s.next()
    s.next()
    assert s.index == 2
    s.previous()
    assert s.index == 1
    assert s.answers == {}


def test_finish_only_on_last_question():
    s = _session()
    with pytest.raises(ValidationFailure):
        s.finish()
    assert s.state is SessionState.IN_PROGRESS


def test_finish_scores_and_persists_once():
    persist = Recorder()
    s = _session(persist)
    s.select(1)          # q0 correct
    s.next()
    s.select(0)          # q1 wrong
    s.next()             # q2 skipped
    s.tick(15)
    s.finish()

    assert s.state is SessionState.COMPLETED
    assert len(persist.submissions) == 1
    sub = persist.submissions[0]
    assert sub.answers == {"q0": 1, "q1": 0}
    assert sub.result.earned_points == 10
    assert sub.total_questions == 3
    assert sub.time_taken == 15
    assert s.snapshot()["score"] == 10

    with pytest.raises(ValidationFailure):
        s.select(1)
    with pytest.raises(ValidationFailure):
        s.finish()


def test_timer_forces_exactly_one_submit():
    persist = Recorder()
    s = _session(persist)
    fired = [s.tick() for _ in range(70)]
    assert fired.count(True) == 1
    assert fired.index(True) == 59
    assert s.state is SessionState.COMPLETED
    assert s.submit_reason == "timeout"
    assert len(persist.submissions) == 1
    assert persist.submissions[0].time_taken == 60


def test_failed_persist_stays_failed_until_manual_retry():
    persist = Recorder(fail_times=1)
    s = _session(persist, n=1)
    s.select(1)
    s.finish()
    assert s.state is SessionState.SUBMIT_FAILED
    assert s.error == "Database error while talking to the attempt store."
    assert s.snapshot()["score"] is None

    # timer no longer drives anything
    assert s.tick() is False
    with pytest.raises(ValidationFailure):
        s.select(0)

    s.retry()
    assert s.state is SessionState.COMPLETED
    assert s.error is None
    assert len(persist.submissions) == 1


def test_retry_requires_failed_state():
    with pytest.raises(ValidationFailure):
        _session().retry()


def test_snapshot_hides_correct_answer():
    snap = _session().snapshot()
    assert snap["state"] == "in_progress"
    assert snap["question"] == {"id": "q0", "question_text": "What?", "options": ["A", "B", "C", "D"], "points": 10}
    assert snap["total_points"] == 30
    assert snap["selected"] is None


def test_countdown_submits_when_time_runs_out():
    persist = Recorder()
    s = _session(persist)

    async def no_wait(_):
        return None

    asyncio.run(run_countdown(s, sleep=no_wait))
    assert s.state is SessionState.COMPLETED
    assert len(persist.submissions) == 1


def test_countdown_persists_off_the_loop_thread():
    threads = []

    def persist(submission):
        threads.append(threading.current_thread())
        return make_attempt(completed_at=NOW)

    async def no_wait(_):
        return None

    s = _session(persist, n=1)
    asyncio.run(run_countdown(s, sleep=no_wait))
    assert s.state is SessionState.COMPLETED
    assert len(threads) == 1
    assert threads[0] is not threading.main_thread()


def test_registry_is_scoped_to_owner():
    registry = SessionRegistry()
    s = _session()
    registry.add(s, start_timer=False)
    assert registry.get(s.id, "student-1") is s
    with pytest.raises(NotFound):
        registry.get(s.id, "someone-else")
    with pytest.raises(NotFound):
        registry.get("missing", "student-1")


def test_registry_cancels_timer_and_forgets_finished_session():
    async def scenario():
        registry = SessionRegistry()
        s = registry.add(_session(n=1))
        timer = registry._timers[s.id]
        await asyncio.sleep(0)   # countdown is now parked in its one-second sleep
        s.finish()
        registry.settle(s)
        await asyncio.gather(timer, return_exceptions=True)
        return registry, s, timer

    registry, s, timer = asyncio.run(scenario())
    assert s.state is SessionState.COMPLETED
    assert timer.cancelled()
    assert registry._timers == {}
    assert len(registry) == 0


def test_registry_drops_sessions_submitted_by_the_countdown():
    async def scenario():
        registry = SessionRegistry(interval=0)
        sessions = [registry.add(_session(n=1)) for _ in range(5)]
        await asyncio.gather(*registry._timers.values())
        await asyncio.sleep(0)
        return registry, sessions

    registry, sessions = asyncio.run(scenario())
    assert all(s.state is SessionState.COMPLETED and s.submit_reason == "timeout" for s in sessions)
    assert len(registry) == 0
    assert registry._timers == {}


def test_registry_keeps_failed_session_for_retry():
    async def scenario():
        registry = SessionRegistry(interval=0)
        s = registry.add(_session(Recorder(fail_times=1), n=1))
        await asyncio.gather(*registry._timers.values())
        await asyncio.sleep(0)
        return registry, s

    registry, s = asyncio.run(scenario())
    assert s.state is SessionState.SUBMIT_FAILED
    assert registry._timers == {}
    assert registry.get(s.id, "student-1") is s

    s.retry()
    registry.settle(s)
    assert len(registry) == 0
