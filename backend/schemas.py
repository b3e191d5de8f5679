# schemas.py
from datetime import datetime, timezone
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, StrictInt, field_validator, model_validator

Difficulty = Literal["easy", "medium", "hard"]
Role = Literal["student", "mentor", "admin"]


def _as_utc(value: datetime) -> datetime:
    # sqlite drops tzinfo on the way back out
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# -----------------------------------------------------------------------------
# Records (what the store hands out)
# -----------------------------------------------------------------------------
class ProfileRecord(BaseModel):
    id: str
    email: str
    full_name: str
    role: Role
    created_at: datetime

    normalize_created_at = field_validator("created_at")(_as_utc)

    class Config:
        from_attributes = True


class QuizRecord(BaseModel):
    id: str
    title: str
    description: str = ""
    category: str = "General"
    difficulty: Difficulty = "medium"
    time_limit: int = Field(30, ge=1)   # minutes
    max_attempts: int = Field(1, ge=1)
    created_by: Optional[str] = None
    is_published: bool = True
    created_at: datetime

    normalize_created_at = field_validator("created_at")(_as_utc)

    class Config:
        from_attributes = True


class QuestionRecord(BaseModel):
    id: str
    quiz_id: str
    question_text: str
    options: List[str] = Field(min_length=2, max_length=6)
    correct_answer: int
    points: int = 10
    order_index: int

    @model_validator(mode="after")
    def answer_in_range(self):
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError("correct_answer must index into options")
        return self

    class Config:
        from_attributes = True


class AttemptRecord(BaseModel):
    id: str
    user_id: str
    quiz_id: str
    score: int
    total_questions: int
    time_taken: int = 0   # seconds
    completed_at: datetime
    answers: Dict[str, int] = Field(default_factory=dict)
    quiz_title: Optional[str] = None
    quiz_category: Optional[str] = None

    normalize_completed_at = field_validator("completed_at")(_as_utc)


class DocumentRecord(BaseModel):
    quiz_id: str
    content: str
    embedding: List[float]

    class Config:
        from_attributes = True


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------
class RegisterIn(BaseModel):
    email: str = Field(min_length=3)
    password: str
    confirm_password: str = Field(alias="confirmPassword")
    full_name: str = Field(alias="fullName")

    class Config:
        populate_by_name = True


class LoginIn(BaseModel):
    email: str
    password: str


class ProfileOut(BaseModel):
    id: str
    email: str
    full_name: str
    role: Role
    created_at: datetime


class AuthOut(BaseModel):
    token: str
    profile: ProfileOut


# -----------------------------------------------------------------------------
# Quizzes
# -----------------------------------------------------------------------------
class QuestionIn(BaseModel):
    question_text: str
    options: List[str]
    correct_answer: int
    points: int = 10


class QuizCreateIn(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    category: str = "General"
    difficulty: Difficulty = "medium"
    time_limit: int = Field(30, ge=1, alias="timeLimit")
    max_attempts: int = Field(1, ge=1, alias="maxAttempts")
    is_published: bool = True
    questions: List[QuestionIn] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class QuestionOut(BaseModel):
    id: str
    question_text: str
    options: List[str]
    correct_answer: Optional[int] = None
    points: int
    order_index: int


class QuizOut(BaseModel):
    id: str
    title: str
    description: str
    category: str
    difficulty: Difficulty
    time_limit: int
    max_attempts: int
    created_by: Optional[str]
    is_published: bool
    created_at: datetime
    questions: List[QuestionOut] = Field(default_factory=list)


class QuizListOut(BaseModel):
    items: List[QuizRecord]


class CSVImportOut(BaseModel):
    added: int


# -----------------------------------------------------------------------------
# Attempts
# -----------------------------------------------------------------------------
class AttemptIn(BaseModel):
    answers: Dict[str, StrictInt] = Field(default_factory=dict)
    time_taken: int = Field(0, ge=0)


class QuestionResultOut(BaseModel):
    question_id: str
    correct: bool


class AttemptOut(BaseModel):
    attempt: AttemptRecord
    total_points: int
    correct_count: int
    per_question: List[QuestionResultOut] = Field(default_factory=list)


class HistoryOut(BaseModel):
    items: List[AttemptRecord]


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------
class SelectIn(BaseModel):
    option: StrictInt


class SessionQuestionOut(BaseModel):
    id: str
    question_text: str
    options: List[str]
    points: int


class SessionOut(BaseModel):
    id: str
    quiz_id: str
    state: str
    index: int
    total: int
    time_left: int
    selected: Optional[int] = None
    answered: int
    question: Optional[SessionQuestionOut] = None
    score: Optional[int] = None
    total_points: int
    attempt_id: Optional[str] = None
    error: Optional[str] = None


# -----------------------------------------------------------------------------
# LLM endpoints
# -----------------------------------------------------------------------------
class IntelligenceIn(BaseModel):
    prompt: str = Field(min_length=1)


class ReportOut(BaseModel):
    report: str


class ExplainIn(BaseModel):
    question: str
    user_answer: str = Field(alias="userAnswer")
    correct_answer: str = Field(alias="correctAnswer")
    quiz_id: str = Field(alias="quizId")

    class Config:
        populate_by_name = True


class ExplainOut(BaseModel):
    explanation: str


class SummaryQuestion(BaseModel):
    id: str
    question_text: str
    options: List[str]
    correct_answer: int
    category: Optional[str] = None


class SummaryIn(BaseModel):
    score: int
    total_points: int = Field(alias="totalPoints")
    questions: List[SummaryQuestion]
    user_answers: Dict[str, int] = Field(default_factory=dict, alias="userAnswers")

    class Config:
        populate_by_name = True


class SummaryOut(BaseModel):
    strengths: List[str]
    weaknesses: List[str]
    recommendation: str


class AnalysisIn(BaseModel):
    attempt_id: str = Field(alias="attemptId")

    class Config:
        populate_by_name = True


class AnalysisItem(BaseModel):
    question_id: str
    misconception: str
    correct_concept: str
    study_topic: str


class AnalysisOut(BaseModel):
    message: Optional[str] = None
    analysis: List[AnalysisItem] = Field(default_factory=list)


class IngestOut(BaseModel):
    success: bool
    chunks: int


class SeedOut(BaseModel):
    success: bool
    message: str
