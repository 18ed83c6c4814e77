import os

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from pollify.database import get_store
from pollify.main import app
from pollify.schemas import Form
from pollify.services import SessionRegistry, get_sessions
from pollify.store import MemoryStore


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def yes_no_form():
    """Q1 single choice Yes/No, Q2 text shown only when Q1 == Yes, Q3 optional rating."""
    return Form.model_validate({
        "id": "feedback",
        "title": "Feedback",
        "questions": [
            {
                "id": "q1",
                "title": "Did you like it?",
                "type": "SINGLE_CHOICE",
                "required": True,
                "order": 1,
                "choices": [
                    {"id": "c_yes", "label": "Yes", "order": 1},
                    {"id": "c_no", "label": "No", "order": 2},
                ],
            },
            {"id": "q2", "title": "What did you like?", "type": "TEXT", "order": 2},
            {"id": "q3", "title": "Score", "type": "RATING", "order": 3, "minRating": 1, "maxRating": 5},
        ],
        "visibilityRules": [
            {
                "id": "v1",
                "dependsOnQuestionId": "q1",
                "operator": "EQUALS",
                "value": "Yes",
                "subjectQuestionId": "q2",
                "showWhenMatched": True,
            },
        ],
    })


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    sessions = SessionRegistry(limit=100)
    app.dependency_overrides[get_sessions] = lambda: sessions
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
