# store.py
"""
Attempt record store.

`Store` is scoped to one signed-in profile and only ever sees the rows that
profile may see (own attempts, published or own quizzes). `AdminStore` drops
those filters and is only handed out behind an admin check or to seeding.
Every method returns pydantic records, never ORM rows.
"""
import logging
import secrets
from datetime import datetime
from functools import wraps
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import func, or_, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

import models
from errors import AppError, Forbidden, NotFound, Unauthorized, UpstreamFailure, ValidationFailure
from schemas import (
    AttemptRecord, DocumentRecord, ProfileRecord, QuestionIn, QuestionRecord, QuizCreateIn, QuizRecord,
)

logger = logging.getLogger(__name__)


def _guarded(fn):
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except AppError:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("store.%s failed: %s", fn.__name__, e)
            raise UpstreamFailure("Database error while talking to the attempt store.") from e
        except ValidationError as e:
            logger.error("store.%s returned a malformed row: %s", fn.__name__, e)
            raise UpstreamFailure("Attempt store returned an unexpected record shape.") from e
    return wrapper


def _attempt_record(row: models.Attempt) -> AttemptRecord:
    quiz = row.quiz
    return AttemptRecord(
        id=row.id,
        user_id=row.user_id,
        quiz_id=row.quiz_id,
        score=row.score,
        total_questions=row.total_questions,
        time_taken=row.time_taken or 0,
        completed_at=row.completed_at,
        answers=row.answers or {},
        quiz_title=quiz.title if quiz else None,
        quiz_category=quiz.category if quiz else None,
    )


class AuthStore:
    """Stands in for the hosted auth provider: email/password -> bearer token."""

    def __init__(self, db: Session):
        self.db = db

    def _issue(self, profile: models.Profile) -> str:
        token = secrets.token_urlsafe(32)
        self.db.add(models.AuthSession(token=token, profile_id=profile.id))
        self.db.commit()
        return token

    @_guarded
    def register(self, email: str, password: str, full_name: str, role: str = "student") -> Tuple[str, ProfileRecord]:
        email = email.strip().lower()
        if self.db.query(models.Profile).filter(models.Profile.email == email).first():
            raise ValidationFailure("An account with this email already exists.")
        profile = models.Profile(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=full_name.strip(),
            role=role,
        )
        self.db.add(profile)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationFailure("An account with this email already exists.") from e
        token = self._issue(profile)
        return token, ProfileRecord.model_validate(profile)

    @_guarded
    def login(self, email: str, password: str) -> Tuple[str, ProfileRecord]:
        profile = (
            self.db.query(models.Profile)
            .filter(models.Profile.email == email.strip().lower())
            .first()
        )
        if not profile or not check_password_hash(profile.password_hash, password):
            raise Unauthorized("Invalid email or password.")
        return self._issue(profile), ProfileRecord.model_validate(profile)

    @_guarded
    def resolve(self, token: str) -> Optional[ProfileRecord]:
        row = self.db.get(models.AuthSession, token)
        if not row or not row.profile:
            return None
        return ProfileRecord.model_validate(row.profile)


class Store:
    def __init__(self, db: Session, viewer: ProfileRecord):
        self.db = db
        self.viewer = viewer

    # --- row scoping -------------------------------------------------------
    def _quiz_filter(self):
        return or_(models.Quiz.is_published.is_(True), models.Quiz.created_by == self.viewer.id)

    def _attempt_filter(self):
        own_quizzes = select(models.Quiz.id).where(models.Quiz.created_by == self.viewer.id)
        return or_(models.Attempt.user_id == self.viewer.id, models.Attempt.quiz_id.in_(own_quizzes))

    def _can_edit(self, quiz: models.Quiz) -> bool:
        return quiz.created_by == self.viewer.id

    def _quiz_row(self, quiz_id: str) -> models.Quiz:
        row = (
            self.db.query(models.Quiz)
            .filter(models.Quiz.id == quiz_id)
            .filter(self._quiz_filter())
            .first()
        )
        if not row:
            raise NotFound("Quiz not found")
        return row

    def _editable_quiz_row(self, quiz_id: str) -> models.Quiz:
        row = self._quiz_row(quiz_id)
        if not self._can_edit(row):
            raise Forbidden("Only the quiz owner can change this quiz")
        return row

    # --- profiles ----------------------------------------------------------
    @_guarded
    def get_profile(self, profile_id: str) -> ProfileRecord:
        if profile_id != self.viewer.id:
            raise NotFound("Profile not found")
        row = self.db.get(models.Profile, profile_id)
        if not row:
            raise NotFound("Profile not found")
        return ProfileRecord.model_validate(row)

    # --- quizzes -----------------------------------------------------------
    @_guarded
    def list_quizzes(self, created_by: Optional[str] = None) -> List[QuizRecord]:
        q = self.db.query(models.Quiz).filter(self._quiz_filter())
        if created_by:
            q = q.filter(models.Quiz.created_by == created_by)
        return [QuizRecord.model_validate(r) for r in q.order_by(models.Quiz.created_at.desc()).all()]

    @_guarded
    def get_quiz(self, quiz_id: str) -> QuizRecord:
        return QuizRecord.model_validate(self._quiz_row(quiz_id))

    @_guarded
    def list_questions(self, quiz_id: str) -> List[QuestionRecord]:
        quiz = self._quiz_row(quiz_id)
        return [QuestionRecord.model_validate(q) for q in quiz.questions]

    def _add_questions(self, quiz: models.Quiz, questions: Iterable[QuestionIn]) -> int:
        start = (
            self.db.query(func.max(models.Question.order_index))
            .filter(models.Question.quiz_id == quiz.id)
            .scalar()
        )
        next_index = 0 if start is None else start + 1
        added = 0
        for q in questions:
            self.db.add(models.Question(
                quiz_id=quiz.id,
                question_text=q.question_text,
                options=list(q.options),
                correct_answer=q.correct_answer,
                points=q.points,
                order_index=next_index + added,
            ))
            added += 1
        return added

    @_guarded
    def create_quiz(self, data: QuizCreateIn, created_by: Optional[str] = None) -> QuizRecord:
        quiz = models.Quiz(
            title=data.title.strip(),
            description=data.description,
            category=data.category or "General",
            difficulty=data.difficulty,
            time_limit=data.time_limit,
            max_attempts=data.max_attempts,
            created_by=created_by or self.viewer.id,
            is_published=data.is_published,
        )
        self.db.add(quiz)
        self.db.flush()
        self._add_questions(quiz, data.questions)
        self.db.commit()
        self.db.refresh(quiz)
        return QuizRecord.model_validate(quiz)

    @_guarded
    def add_questions(self, quiz_id: str, questions: Sequence[QuestionIn]) -> int:
        quiz = self._editable_quiz_row(quiz_id)
        added = self._add_questions(quiz, questions)
        self.db.commit()
        return added

    @_guarded
    def assert_can_edit(self, quiz_id: str) -> QuizRecord:
        return QuizRecord.model_validate(self._editable_quiz_row(quiz_id))

    # --- attempts ----------------------------------------------------------
    @_guarded
    def list_attempts(self, user_id: Optional[str] = None, quiz_id: Optional[str] = None) -> List[AttemptRecord]:
        q = self.db.query(models.Attempt).filter(self._attempt_filter())
        if user_id:
            q = q.filter(models.Attempt.user_id == user_id)
        if quiz_id:
            q = q.filter(models.Attempt.quiz_id == quiz_id)
        rows = q.order_by(models.Attempt.completed_at.desc()).all()
        return [_attempt_record(r) for r in rows]

    @_guarded
    def get_attempt(self, attempt_id: str) -> AttemptRecord:
        row = (
            self.db.query(models.Attempt)
            .filter(models.Attempt.id == attempt_id)
            .filter(self._attempt_filter())
            .first()
        )
        if not row:
            raise NotFound("Attempt not found")
        return _attempt_record(row)

    @_guarded
    def count_attempts(self, user_id: str, quiz_id: str) -> int:
        return (
            self.db.query(func.count(models.Attempt.id))
            .filter(self._attempt_filter())
            .filter(models.Attempt.user_id == user_id, models.Attempt.quiz_id == quiz_id)
            .scalar()
        ) or 0

    def _check_answer_keys(self, quiz: models.Quiz, answers: dict) -> None:
        known = {q.id for q in quiz.questions}
        unknown = set(answers) - known
        if unknown:
            raise ValidationFailure(f"Answers reference questions outside this quiz: {sorted(unknown)}")

    @_guarded
    def insert_attempt(self, quiz_id: str, score: int, total_questions: int, time_taken: int,
                       answers: dict, completed_at: Optional[datetime] = None) -> AttemptRecord:
        quiz = self._quiz_row(quiz_id)
        self._check_answer_keys(quiz, answers)
        row = models.Attempt(
            user_id=self.viewer.id,
            quiz_id=quiz.id,
            score=score,
            total_questions=total_questions,
            time_taken=time_taken,
            answers=dict(answers),
        )
        if completed_at:
            row.completed_at = completed_at
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Stored attempt %s for user %s on quiz %s (score %s)", row.id, row.user_id, quiz.id, score)
        return _attempt_record(row)

    # --- reference documents -------------------------------------------------
    @_guarded
    def add_documents(self, quiz_id: str, chunks: Iterable[Tuple[str, List[float]]]) -> int:
        quiz = self._editable_quiz_row(quiz_id)
        count = 0
        for content, embedding in chunks:
            self.db.add(models.QuizDocument(quiz_id=quiz.id, content=content, embedding=list(embedding)))
            count += 1
        self.db.commit()
        return count

    @_guarded
    def list_documents(self, quiz_id: str) -> List[DocumentRecord]:
        quiz = self._quiz_row(quiz_id)
        return [DocumentRecord.model_validate(d) for d in quiz.documents]


class AdminStore(Store):
    """Privileged store: bypasses row scoping. Admin analytics and seeding only."""

    def __init__(self, db: Session, viewer: Optional[ProfileRecord] = None):
        super().__init__(db, viewer)

    def _quiz_filter(self):
        return true()

    def _attempt_filter(self):
        return true()

    def _can_edit(self, quiz: models.Quiz) -> bool:
        return True

    @_guarded
    def get_profile(self, profile_id: str) -> ProfileRecord:
        row = self.db.get(models.Profile, profile_id)
        if not row:
            raise NotFound("Profile not found")
        return ProfileRecord.model_validate(row)

    @_guarded
    def list_profiles(self) -> List[ProfileRecord]:
        rows = self.db.query(models.Profile).order_by(models.Profile.created_at).all()
        return [ProfileRecord.model_validate(r) for r in rows]

    @_guarded
    def count_profiles(self) -> int:
        return self.db.query(func.count(models.Profile.id)).scalar() or 0

    @_guarded
    def count_quizzes(self) -> int:
        return self.db.query(func.count(models.Quiz.id)).scalar() or 0

    @_guarded
    def first_admin_id(self) -> Optional[str]:
        row = self.db.query(models.Profile.id).filter(models.Profile.role == "admin").first()
        return row[0] if row else None

    @_guarded
    def create_profile(self, email: str, full_name: str, role: str, password: str,
                       created_at: Optional[datetime] = None) -> ProfileRecord:
        row = models.Profile(
            email=email.lower(),
            full_name=full_name,
            role=role,
            password_hash=generate_password_hash(password),
        )
        if created_at:
            row.created_at = created_at
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return ProfileRecord.model_validate(row)

    @_guarded
    def insert_attempts(self, rows: Iterable[dict]) -> int:
        """Bulk insert for seeding; rows carry their own user_id."""
        count = 0
        for r in rows:
            self.db.add(models.Attempt(**r))
            count += 1
        self.db.commit()
        return count
