"""
Shared pytest fixtures — in‑memory SQLite, scripted AI provider, FastAPI TestClient.
"""
import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from expense_ai.database import Base, get_db
from expense_ai.errors import ServiceUnavailable
from expense_ai.main import app
from expense_ai.models import BudgetModel, CategoryModel, ExpenseModel
from expense_ai.services.data_store import FinancialDataStore, seed_default_categories
from expense_ai.services.insight_cache import InsightCache
from expense_ai.services.orchestrator import AIOrchestrator
from expense_ai.services.provider import DisabledProvider
from expense_ai.services.single_flight import SingleFlight

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

TODAY = dt.date(2024, 3, 20)
USER_ID = 1


class ScriptedProvider:
    """Provider that replays canned answers; the last one repeats."""

    enabled = True

    def __init__(self, *answers):
        self.answers = list(answers) or [""]
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FailingProvider(ScriptedProvider):
    def __init__(self):
        super().__init__(ServiceUnavailable("AI provider timed out"))


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    seed_default_categories(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db):
    return FinancialDataStore(db, lookback_days=30, today=lambda: TODAY)


@pytest.fixture()
def cache(db):
    return InsightCache(db)


@pytest.fixture()
def session_factory():
    return _Session


@pytest.fixture()
def make_orchestrator(store, cache):
    def _make(provider=None, ocr=None, flights=None, session_factory=None):
        return AIOrchestrator(
            provider or DisabledProvider(),
            store,
            cache,
            flights=flights or SingleFlight(),
            ocr=ocr,
            session_factory=session_factory,
        )

    return _make


def category_id(db, name):
    return db.query(CategoryModel.id).filter(CategoryModel.name == name).scalar()


@pytest.fixture()
def add_expense(db):
    def _add(amount, description="", category="Food & Dining", on=TODAY, user_id=USER_ID):
        row = ExpenseModel(
            user_id=user_id,
            category_id=category_id(db, category) if category else None,
            amount=amount,
            description=description,
            date=on,
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture()
def add_budget(db):
    def _add(amount, category=None, user_id=USER_ID):
        row = BudgetModel(
            user_id=user_id,
            category_id=category_id(db, category) if category else None,
            amount=amount,
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture()
def client(db):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    with TestClient(app) as c:
        app.state.provider = DisabledProvider()
        app.state.session_factory = _Session
        yield c
    app.dependency_overrides.clear()
