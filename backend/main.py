# main.py
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import analytics
import schemas
from access import ADMIN, AUTHORS, check_access, enforce
from config import Settings, load_settings
from db import Base, get_session, make_engine, make_sessionmaker
from errors import AppError, Forbidden, ValidationFailure
from ingestion import parse_csv, validate_manual_question
from llm import LLMClient, analyze_mistakes, explain_answer, generate_report, summarize_attempt
from rag import ingest_pdf, reference_context
from scoring import is_correct, score
from seed import seed_database
from session import QuizSession, SessionRegistry, Submission
from store import AdminStore, AuthStore, Store

logger = logging.getLogger(__name__)

MIN_PASSWORD = 6

router = APIRouter(prefix="/api")


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
def get_db(request: Request):
    with get_session(request.app.state.session_factory) as db:
        yield db


def current_profile(request: Request, db: Session = Depends(get_db)) -> Optional[schemas.ProfileRecord]:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return AuthStore(db).resolve(token.strip())


def require(*roles):
    def dependency(profile: Optional[schemas.ProfileRecord] = Depends(current_profile)):
        return enforce(check_access(profile, roles or None))
    return dependency


def get_store(db: Session = Depends(get_db), profile=Depends(require())) -> Store:
    return Store(db, profile)


def get_author_store(db: Session = Depends(get_db), profile=Depends(require(*AUTHORS))) -> Store:
    return Store(db, profile)


def get_admin_store(db: Session = Depends(get_db), profile=Depends(require(ADMIN))) -> AdminStore:
    return AdminStore(db, profile)


def get_llm(request: Request) -> LLMClient:
    state = request.app.state
    if state.llm is None:
        s: Settings = state.settings
        state.llm = LLMClient(s.google_api_key, s.gemini_model, s.embedding_model)
    return state.llm


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/llm-test")
def llm_test(llm: LLMClient = Depends(get_llm)):
    return llm.ping()


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------
@router.post("/auth/register", response_model=schemas.AuthOut)
def register(payload: schemas.RegisterIn, db: Session = Depends(get_db)):
    if "@" not in payload.email:
        raise ValidationFailure("A valid email is required")
    if not payload.full_name.strip():
        raise ValidationFailure("Full name is required")
    if payload.password != payload.confirm_password:
        raise ValidationFailure("Passwords do not match")
    if len(payload.password) < MIN_PASSWORD:
        raise ValidationFailure("Password must be at least 6 characters")

    token, profile = AuthStore(db).register(payload.email, payload.password, payload.full_name)
    return {"token": token, "profile": profile.model_dump()}


@router.post("/auth/login", response_model=schemas.AuthOut)
def login(payload: schemas.LoginIn, db: Session = Depends(get_db)):
    token, profile = AuthStore(db).login(payload.email, payload.password)
    return {"token": token, "profile": profile.model_dump()}


@router.get("/me", response_model=schemas.ProfileOut)
def me(profile=Depends(require())):
    return profile.model_dump()


# -----------------------------------------------------------------------------
# Quizzes
# -----------------------------------------------------------------------------
@router.get("/quizzes", response_model=schemas.QuizListOut)
def list_quizzes(store: Store = Depends(get_store)):
    return {"items": store.list_quizzes()}


@router.post("/quizzes", response_model=schemas.QuizOut)
def create_quiz(payload: schemas.QuizCreateIn, store: Store = Depends(get_author_store)):
    if not payload.questions:
        raise ValidationFailure("Please add at least one question before saving.")
    for q in payload.questions:
        validate_manual_question(q)

    quiz = store.create_quiz(payload)
    return _quiz_out(store, quiz.id)


@router.get("/quizzes/{quiz_id}", response_model=schemas.QuizOut)
def get_quiz(quiz_id: str, store: Store = Depends(get_store)):
    return _quiz_out(store, quiz_id)


def _quiz_out(store: Store, quiz_id: str) -> dict:
    quiz = store.get_quiz(quiz_id)
    reveal = quiz.created_by == store.viewer.id or store.viewer.role == ADMIN
    questions = []
    for q in store.list_questions(quiz_id):
        row = q.model_dump(exclude={"quiz_id"})
        if not reveal:
            row["correct_answer"] = None
        questions.append(row)
    return {**quiz.model_dump(), "questions": questions}


@router.post("/quizzes/{quiz_id}/questions/csv", response_model=schemas.CSVImportOut)
async def import_csv(quiz_id: str, request: Request, store: Store = Depends(get_author_store)):
    raw = await request.body()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationFailure("Please upload a valid CSV file.")

    result = parse_csv(text)
    if result.errors:
        logger.info("CSV import for quiz %s rejected: %d bad lines", quiz_id, len(result.errors))
    questions = result.raise_for_errors()
    return {"added": store.add_questions(quiz_id, questions)}


# -----------------------------------------------------------------------------
# Attempts
# -----------------------------------------------------------------------------
def _check_attempts_left(store: Store, quiz: schemas.QuizRecord) -> None:
    used = store.count_attempts(store.viewer.id, quiz.id)
    if used >= quiz.max_attempts:
        raise Forbidden(f"No attempts left for this quiz ({used}/{quiz.max_attempts} used)")


@router.post("/quizzes/{quiz_id}/attempts", response_model=schemas.AttemptOut)
def submit_attempt(quiz_id: str, payload: schemas.AttemptIn, store: Store = Depends(get_store)):
    quiz = store.get_quiz(quiz_id)
    _check_attempts_left(store, quiz)
    questions = store.list_questions(quiz_id)
    if not questions:
        raise ValidationFailure("This quiz has no questions yet")

    known = {q.id for q in questions}
    answers = {qid: opt for qid, opt in payload.answers.items() if qid in known}
    result = score(questions, answers)

    attempt = store.insert_attempt(
        quiz_id=quiz.id,
        score=result.earned_points,
        total_questions=len(questions),
        time_taken=payload.time_taken,
        answers=answers,
    )
    return {
        "attempt": attempt,
        "total_points": result.total_points,
        "correct_count": result.correct_count,
        "per_question": [vars(r) for r in result.per_question],
    }


@router.get("/attempts", response_model=schemas.HistoryOut)
def list_attempts(store: Store = Depends(get_store)):
    return {"items": store.list_attempts(user_id=store.viewer.id)}


@router.get("/attempts/{attempt_id}", response_model=schemas.AttemptRecord)
def get_attempt(attempt_id: str, store: Store = Depends(get_store)):
    return store.get_attempt(attempt_id)


@router.get("/dashboard/student")
def student_dashboard(store: Store = Depends(get_store)):
    return analytics.student_overview(store.list_attempts(user_id=store.viewer.id))


@router.get("/dashboard/mentor")
def mentor_dashboard(store: Store = Depends(get_author_store)):
    quizzes = store.list_quizzes(created_by=store.viewer.id)
    return analytics.mentor_overview(quizzes, store.list_attempts())


# -----------------------------------------------------------------------------
# Quiz-taking sessions
# -----------------------------------------------------------------------------
def _persist_for(app: FastAPI, viewer: schemas.ProfileRecord):
    def persist(sub: Submission) -> schemas.AttemptRecord:
        with get_session(app.state.session_factory) as db:
            store = Store(db, viewer)
            _check_attempts_left(store, store.get_quiz(sub.quiz_id))
            return store.insert_attempt(
                quiz_id=sub.quiz_id,
                score=sub.result.earned_points,
                total_questions=sub.total_questions,
                time_taken=sub.time_taken,
                answers=sub.answers,
            )
    return persist


def _open_session(store: Store, quiz_id: str, app: FastAPI) -> QuizSession:
    quiz = store.get_quiz(quiz_id)
    _check_attempts_left(store, quiz)

    session = QuizSession(quiz, store.viewer.id, _persist_for(app, store.viewer))
    session.load(store.list_questions(quiz_id))
    return session


@router.post("/quizzes/{quiz_id}/sessions", response_model=schemas.SessionOut)
async def start_session(quiz_id: str, request: Request, store: Store = Depends(get_store),
                        registry: SessionRegistry = Depends(get_registry)):
    # registry.add needs the running loop
    session = await run_in_threadpool(_open_session, store, quiz_id, request.app)
    registry.add(session)
    logger.info("Session %s started on quiz %s by %s", session.id, quiz_id, store.viewer.id)
    return session.snapshot()


def _session_action(session_id: str, profile, registry: SessionRegistry, action: str, *args) -> dict:
    session = registry.get(session_id, profile.id)
    getattr(session, action)(*args)
    registry.settle(session)
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=schemas.SessionOut)
def get_quiz_session(session_id: str, profile=Depends(require()),
                     registry: SessionRegistry = Depends(get_registry)):
    return registry.get(session_id, profile.id).snapshot()


@router.post("/sessions/{session_id}/select", response_model=schemas.SessionOut)
def select_option(session_id: str, payload: schemas.SelectIn, profile=Depends(require()),
                  registry: SessionRegistry = Depends(get_registry)):
    return _session_action(session_id, profile, registry, "select", payload.option)


@router.post("/sessions/{session_id}/next", response_model=schemas.SessionOut)
def next_question(session_id: str, profile=Depends(require()),
                  registry: SessionRegistry = Depends(get_registry)):
    return _session_action(session_id, profile, registry, "next")


@router.post("/sessions/{session_id}/previous", response_model=schemas.SessionOut)
def previous_question(session_id: str, profile=Depends(require()),
                      registry: SessionRegistry = Depends(get_registry)):
    return _session_action(session_id, profile, registry, "previous")


@router.post("/sessions/{session_id}/finish", response_model=schemas.SessionOut)
def finish_session(session_id: str, profile=Depends(require()),
                   registry: SessionRegistry = Depends(get_registry)):
    return _session_action(session_id, profile, registry, "finish")


# -----------------------------------------------------------------------------
# AI helpers
# -----------------------------------------------------------------------------
@router.post("/quiz/explain", response_model=schemas.ExplainOut)
def explain(payload: schemas.ExplainIn, store: Store = Depends(get_store), llm: LLMClient = Depends(get_llm)):
    reference = reference_context(store, llm, payload.quiz_id, payload.question)
    text = explain_answer(llm, payload.question, payload.user_answer, payload.correct_answer, reference)
    return {"explanation": text}


@router.post("/quiz/summary", response_model=schemas.SummaryOut)
def summary(payload: schemas.SummaryIn, profile=Depends(require()), llm: LLMClient = Depends(get_llm)):
    return summarize_attempt(llm, payload.score, payload.total_points, payload.questions, payload.user_answers)


@router.post("/quiz/analysis", response_model=schemas.AnalysisOut)
def analysis(payload: schemas.AnalysisIn, store: Store = Depends(get_store), llm: LLMClient = Depends(get_llm)):
    attempt = store.get_attempt(payload.attempt_id)
    questions = store.list_questions(attempt.quiz_id)
    missed = [q for q in questions if not is_correct(q, attempt.answers.get(q.id))]
    if not missed:
        return {"message": "Perfect score! No incorrect answers to analyze.", "analysis": []}
    return {"analysis": analyze_mistakes(llm, missed, attempt.answers, attempt.quiz_category)}


@router.post("/quiz/ingest", response_model=schemas.IngestOut)
def ingest(file: UploadFile = File(...), quiz_id: str = Form(..., alias="quizId"),
           store: Store = Depends(get_author_store), llm: LLMClient = Depends(get_llm)):
    data = file.file.read()
    chunks = ingest_pdf(store, llm, quiz_id, data)
    return {"success": True, "chunks": chunks}


# -----------------------------------------------------------------------------
# Admin
# -----------------------------------------------------------------------------
@router.get("/admin/analytics")
def admin_analytics(request: Request, store: AdminStore = Depends(get_admin_store)):
    tz_name = request.app.state.settings.analytics_tz
    return analytics.build_analytics(
        attempts=store.list_attempts(),
        profiles=store.list_profiles(),
        total_users=store.count_profiles(),
        total_quizzes=store.count_quizzes(),
        now=datetime.now(timezone.utc),
        tz=ZoneInfo(tz_name) if tz_name else None,
    )


@router.post("/admin/intelligence", response_model=schemas.ReportOut)
def admin_intelligence(payload: schemas.IntelligenceIn, store: AdminStore = Depends(get_admin_store),
                       llm: LLMClient = Depends(get_llm)):
    context = analytics.report_context(store.list_attempts(), store.count_profiles())
    return {"report": generate_report(llm, payload.prompt, context)}


@router.post("/admin/seed", response_model=schemas.SeedOut)
def admin_seed(request: Request, db: Session = Depends(get_db)):
    if request.app.state.settings.is_production:
        raise Forbidden("Not allowed in production")
    return seed_database(AdminStore(db))


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
def create_app(settings: Optional[Settings] = None, llm: Optional[LLMClient] = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title="QuizForge – quizzes, analytics and AI feedback")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = make_engine(settings.database_url)
    # Create tables at startup
    Base.metadata.create_all(bind=engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_sessionmaker(engine)
    app.state.sessions = SessionRegistry()
    app.state.llm = llm

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(level, "%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
        return JSONResponse(status_code=ValidationFailure.status_code, content={"error": message})

    app.include_router(router)
    return app


app = create_app()
