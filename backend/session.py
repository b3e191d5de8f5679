# session.py
"""
Quiz-taking session: linear navigation over the quiz's questions, a countdown
that forces submission at zero, and a single submit that scores the answers
and persists exactly one attempt.

    LOADING -> IN_PROGRESS -> SUBMITTING -> COMPLETED
                                        |
                                        +-> SUBMIT_FAILED (manual retry only)

Persisting is a blocking database call. The countdown runs it in a worker
thread and the HTTP routes call in from the threadpool, so every state change
goes through the session lock.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from functools import wraps
from enum import Enum
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from errors import NotFound, ValidationFailure
from schemas import AttemptRecord, QuestionRecord, QuizRecord
from scoring import ScoreResult, score

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    SUBMIT_FAILED = "submit_failed"


@dataclass
class Submission:
    quiz_id: str
    answers: Dict[str, int]
    result: ScoreResult
    total_questions: int
    time_taken: int


Persist = Callable[[Submission], AttemptRecord]


def _locked(fn):
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return fn(self, *args, **kwargs)
    return wrapper


class QuizSession:
    def __init__(self, quiz: QuizRecord, user_id: str, persist: Persist, session_id: Optional[str] = None):
        self.id = session_id or str(uuid4())
        self.quiz = quiz
        self.user_id = user_id
        self._persist = persist

        self.state = SessionState.LOADING
        self.questions: List[QuestionRecord] = []
        self.index = 0
        self.answers: Dict[int, int] = {}   # question index -> option index
        self.time_limit = quiz.time_limit * 60
        self.time_left = self.time_limit

        self.result: Optional[ScoreResult] = None
        self.attempt: Optional[AttemptRecord] = None
        self.error: Optional[str] = None
        self.submit_reason: Optional[str] = None
        self._lock = threading.Lock()

    # --- lifecycle ---------------------------------------------------------
    def load(self, questions: List[QuestionRecord]) -> None:
        if self.state is not SessionState.LOADING:
            raise ValidationFailure("Session already loaded")
        if not questions:
            raise ValidationFailure("This quiz has no questions yet")
        self.questions = sorted(questions, key=lambda q: q.order_index)
        self.index = 0
        self.time_left = self.time_limit
        self.state = SessionState.IN_PROGRESS

    def _require_in_progress(self) -> None:
        if self.state is not SessionState.IN_PROGRESS:
            raise ValidationFailure(f"Session is {self.state.value}, not in progress")

    @property
    def current_question(self) -> Optional[QuestionRecord]:
        if 0 <= self.index < len(self.questions):
            return self.questions[self.index]
        return None

    @property
    def is_last(self) -> bool:
        return self.index == len(self.questions) - 1

    # --- user actions ------------------------------------------------------
    @_locked
    def select(self, option: int) -> None:
        self._require_in_progress()
        question = self.current_question
        if isinstance(option, bool) or not 0 <= option < len(question.options):
            raise ValidationFailure("Option index out of range")
        self.answers[self.index] = option

    @_locked
    def next(self) -> None:
        self._require_in_progress()
        self.index = min(self.index + 1, len(self.questions) - 1)

    @_locked
    def previous(self) -> None:
        self._require_in_progress()
        self.index = max(self.index - 1, 0)

    @_locked
    def finish(self) -> None:
        if self.state is SessionState.SUBMIT_FAILED:
            self._submit("retry")
            return
        self._require_in_progress()
        if not self.is_last:
            raise ValidationFailure("Finish is only available on the last question")
        self._submit("finished")

    @_locked
    def retry(self) -> None:
        if self.state is not SessionState.SUBMIT_FAILED:
            raise ValidationFailure("Nothing to retry")
        self._submit("retry")

    @_locked
    def tick(self, seconds: int = 1) -> bool:
        """Advance the countdown. Returns True when this tick forced the submit."""
        if self.state is not SessionState.IN_PROGRESS:
            return False
        self.time_left = max(self.time_left - seconds, 0)
        if self.time_left == 0:
            logger.info("Session %s ran out of time, auto-submitting", self.id)
            self._submit("timeout")
            return True
        return False

    # --- submit ------------------------------------------------------------
    def answers_by_question_id(self) -> Dict[str, int]:
        # skipped questions are simply absent
        return {self.questions[i].id: opt for i, opt in self.answers.items() if 0 <= i < len(self.questions)}

    def _submit(self, reason: str) -> None:
        self.state = SessionState.SUBMITTING
        self.submit_reason = reason
        answers = self.answers_by_question_id()
        self.result = score(self.questions, answers)
        submission = Submission(
            quiz_id=self.quiz.id,
            answers=answers,
            result=self.result,
            total_questions=len(self.questions),
            time_taken=self.time_limit - self.time_left,
        )
        try:
            self.attempt = self._persist(submission)
        except Exception as e:
            # stays put; the user resubmits by hand
            logger.error("Session %s failed to persist its attempt: %s", self.id, e)
            self.error = getattr(e, "message", None) or str(e) or "Failed to submit quiz"
            self.state = SessionState.SUBMIT_FAILED
            return
        self.error = None
        self.state = SessionState.COMPLETED

    # --- view --------------------------------------------------------------
    def snapshot(self) -> dict:
        question = self.current_question if self.state is SessionState.IN_PROGRESS else None
        return {
            "id": self.id,
            "quiz_id": self.quiz.id,
            "state": self.state.value,
            "index": self.index,
            "total": len(self.questions),
            "time_left": self.time_left,
            "selected": self.answers.get(self.index),
            "answered": len(self.answers),
            "question": {
                "id": question.id,
                "question_text": question.question_text,
                "options": question.options,
                "points": question.points,
            } if question else None,
            "score": self.result.earned_points if self.state is SessionState.COMPLETED else None,
            "total_points": sum(q.points for q in self.questions),
            "attempt_id": self.attempt.id if self.attempt else None,
            "error": self.error,
        }


async def run_countdown(session: QuizSession, interval: float = 1.0, sleep=asyncio.sleep) -> None:
    while session.state is SessionState.IN_PROGRESS:
        await sleep(interval)
        # a forced submit writes to the database; keep it off the event loop
        await asyncio.to_thread(session.tick)


class SessionRegistry:
    """Live sessions for this process, each with its own countdown task.

    Completed sessions are dropped, their attempt lives on in the store.
    A session stuck in SUBMIT_FAILED stays until its owner retries.
    """

    def __init__(self, interval: float = 1.0):
        self.interval = interval
        self._sessions: Dict[str, QuizSession] = {}
        self._timers: Dict[str, asyncio.Task] = {}

    def add(self, session: QuizSession, start_timer: bool = True) -> QuizSession:
        self._sessions[session.id] = session
        if start_timer:
            task = asyncio.get_running_loop().create_task(run_countdown(session, self.interval))
            task.add_done_callback(lambda _task, s=session: self.settle(s))
            self._timers[session.id] = task
        return session

    def get(self, session_id: str, user_id: str) -> QuizSession:
        session = self._sessions.get(session_id)
        if not session or session.user_id != user_id:
            raise NotFound("Session not found")
        return session

    def settle(self, session: QuizSession) -> None:
        """Stop the countdown once the session has left IN_PROGRESS, forget it once COMPLETED."""
        if session.state is SessionState.IN_PROGRESS:
            return
        task = self._timers.pop(session.id, None)
        if task and not task.done():
            # routes call in from the threadpool, not the loop's thread
            task.get_loop().call_soon_threadsafe(task.cancel)
        if session.state is SessionState.COMPLETED:
            self._sessions.pop(session.id, None)

    def __len__(self) -> int:
        return len(self._sessions)
