# models.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, JSON, Boolean, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from db import Base


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), unique=True, index=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    full_name = Column(String(256), nullable=False)
    role = Column(String(16), nullable=False, default="student")   # student|mentor|admin
    created_at = Column(DateTime(timezone=True), default=_now)

    sessions = relationship("AuthSession", back_populates="profile", cascade="all, delete-orphan")


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token = Column(String(64), primary_key=True)
    profile_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    profile = relationship("Profile", back_populates="sessions")


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(512), nullable=False)
    description = Column(Text, default="")
    category = Column(String(128), default="General")
    difficulty = Column(String(16), default="medium")   # easy|medium|hard
    time_limit = Column(Integer, default=30)             # minutes
    max_attempts = Column(Integer, default=1)
    created_by = Column(String(36), ForeignKey("profiles.id"), index=True)
    is_published = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_now)

    questions = relationship(
        "Question", back_populates="quiz", cascade="all, delete-orphan",
        order_by="Question.order_index",
    )
    attempts = relationship("Attempt", back_populates="quiz", cascade="all, delete-orphan")
    documents = relationship("QuizDocument", back_populates="quiz", cascade="all, delete-orphan")


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("quiz_id", "order_index", name="uq_question_order"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)   # ["A","B","C","D"]
    correct_answer = Column(Integer, nullable=False)   # 0-based
    points = Column(Integer, default=10)
    order_index = Column(Integer, nullable=False)

    quiz = relationship("Quiz", back_populates="questions")


class Attempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    time_taken = Column(Integer, default=0)   # seconds
    completed_at = Column(DateTime(timezone=True), default=_now, index=True)
    answers = Column(JSON, default=dict)   # {question_id: option_index}

    quiz = relationship("Quiz", back_populates="attempts")


class QuizDocument(Base):
    __tablename__ = "quiz_documents"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)   # list[float]

    quiz = relationship("Quiz", back_populates="documents")
