from datetime import datetime, timezone
from itertools import count

from schemas import AttemptRecord, ProfileRecord, QuestionRecord, QuizRecord

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)

_ids = count(1)


def make_question(qid=None, correct=0, points=10, options=("A", "B", "C", "D"), order=0, quiz_id="quiz-1"):
    return QuestionRecord(
        id=qid or f"question-{next(_ids)}",
        quiz_id=quiz_id,
        question_text="What?",
        options=list(options),
        correct_answer=correct,
        points=points,
        order_index=order,
    )


def make_quiz(qid="quiz-1", time_limit=1, max_attempts=3, created_by="mentor-1", title="Quiz"):
    return QuizRecord(
        id=qid,
        title=title,
        time_limit=time_limit,
        max_attempts=max_attempts,
        created_by=created_by,
        created_at=NOW,
    )


def make_attempt(score=10, user_id="u1", quiz_id="quiz-1", title="Quiz", category="General",
                 completed_at=NOW, time_taken=120, answers=None):
    return AttemptRecord(
        id=f"attempt-{next(_ids)}",
        user_id=user_id,
        quiz_id=quiz_id,
        score=score,
        total_questions=2,
        time_taken=time_taken,
        completed_at=completed_at,
        answers=answers or {},
        quiz_title=title,
        quiz_category=category,
    )


def make_profile(created_at=NOW, role="student"):
    n = next(_ids)
    return ProfileRecord(
        id=f"profile-{n}",
        email=f"user{n}@test.com",
        full_name=f"User {n}",
        role=role,
        created_at=created_at,
    )
