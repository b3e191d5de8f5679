import os

# main builds a module-level app on import
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from config import Settings
from db import get_session
from llm import LLMError
from main import create_app
from store import AdminStore, AuthStore


class FakeLLM:
    def __init__(self):
        self.calls = []
        self.text = "Generated text."
        self.json_reply = {}
        self.vectors = {}
        self.embed_error = None

    def generate_text(self, prompt, system=None, temperature=0.6):
        self.calls.append(("text", prompt, system))
        return self.text

    def generate_json(self, prompt, system=None, temperature=0.5):
        self.calls.append(("json", prompt, system))
        return self.json_reply

    def embed(self, text):
        self.calls.append(("embed", text, None))
        if self.embed_error:
            raise LLMError(self.embed_error)
        return self.vectors.get(text, [1.0, 0.0])

    def ping(self):
        return {"ok": True, "model": "fake", "content": "OK"}


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def app(fake_llm):
    return create_app(Settings(database_url="sqlite://", app_env="test"), llm=fake_llm)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    with get_session(app.state.session_factory) as session:
        yield session


@pytest.fixture
def make_user(app):
    def _make(email, role="student", password="secret123"):
        with get_session(app.state.session_factory) as session:
            token, profile = AuthStore(session).register(email, password, email.split("@")[0], role=role)
        return {"Authorization": f"Bearer {token}"}, profile
    return _make


@pytest.fixture
def admin_store(db):
    return AdminStore(db)
