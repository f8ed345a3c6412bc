import json
import random

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import AppResources
from core.config import Settings
from core.database import build_engine, build_sessionmaker, create_tables
from core.errors import Err, Ok, generation_failed
from engines.catalog import ExerciseDraft
from engines.conversation import ConversationEngine, ScenarioBook
from engines.exercises import ExercisePolicy, ExercisePoolService
from engines.generator import ItemGenerator
from engines.llm import LanguageModel
from engines.pool import PoolStore
from engines.sessions import SessionLimits, SessionTracker


class FakeLanguageModel(LanguageModel):
    """Replays scripted replies in order and records every call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[list[dict]] = []

    def queue(self, *replies):
        self.replies.extend(replies)

    async def complete(self, messages, *, max_tokens, temperature=0.7, json_output=False):
        self.calls.append(messages)
        if not self.replies:
            return generation_failed("no scripted reply", origin="fake_model")
        reply = self.replies.pop(0)
        if isinstance(reply, (Ok, Err)):
            return reply
        return Ok(reply)


def grammar_reply(sentence="He go to work every day.", **overrides) -> str:
    payload = {
        "sentence": sentence,
        "exercise_type": "correction",
        "correct_answer": "He goes to work every day.",
        "grammar_rule": "Third person singular takes -s.",
        "feedback": "Use 'goes' with he.",
        "options": [],
    }
    payload.update(overrides)
    return json.dumps(payload)


def vocabulary_reply(word="brave", **overrides) -> str:
    payload = {
        "word": word,
        "exercise_type": "synonym",
        "correct_answer": "courageous",
        "options": ["courageous", "timid", "lazy", "quiet"],
        "example_sentence": "The brave firefighter saved the cat.",
    }
    payload.update(overrides)
    return json.dumps(payload)


def grammar_draft(prompt_text: str, level: str = "beginner", **overrides) -> ExerciseDraft:
    fields = {
        "category": "grammar",
        "level": level,
        "prompt_text": prompt_text,
        "exercise_kind": "correction",
        "correct_answer": f"fixed: {prompt_text}",
        "feedback": "Check the verb.",
    }
    fields.update(overrides)
    return ExerciseDraft(**fields)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        OPENAI_API_KEY="",
        POOL_SELECTION_SEED=7,
        POINTS_PER_CORRECT=10,
        NORMALIZE_ANSWERS=False,
        EXERCISE_SESSION_CAP=20,
        CONVERSATION_MESSAGE_CAP=30,
        GENERATION_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings.DATABASE_URL)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def fake_model() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest.fixture
def policy() -> ExercisePolicy:
    return ExercisePolicy(points_per_correct=10, limits=SessionLimits(exercise_cap=20, conversation_cap=30))


@pytest.fixture
def service(db, fake_model, policy) -> ExercisePoolService:
    return ExercisePoolService(
        db,
        ItemGenerator(fake_model, timeout=5.0),
        rng=random.Random(7),
        policy=policy,
    )


@pytest.fixture
def scenarios() -> ScenarioBook:
    return ScenarioBook.from_yaml()


@pytest.fixture
def conversation(db, fake_model, scenarios) -> ConversationEngine:
    return ConversationEngine(
        db,
        fake_model,
        scenarios,
        SessionTracker(db, SessionLimits(conversation_cap=3)),
        history_window=4,
        timeout=5.0,
    )


@pytest.fixture
def open_session(db):
    """Start and commit a learning session; returns its id."""
    async def _open(user_id="learner-1", mode="grammar", level="beginner"):
        session = (await SessionTracker(db).start(user_id, mode, level)).unwrap()
        await db.commit()
        return session.id
    return _open


@pytest.fixture
def seed_items(db):
    """Insert drafts into the pool and commit; returns the stored items."""
    async def _seed(*drafts):
        store = PoolStore(db)
        items = [(await store.insert(d, origin="seed")).unwrap() for d in drafts]
        await db.commit()
        return items
    return _seed


@pytest.fixture
async def client(settings, engine, sessionmaker, fake_model, scenarios):
    from main import create_app

    resources = AppResources(
        settings=settings,
        engine=engine,
        sessionmaker=sessionmaker,
        scenarios=scenarios,
        language_model=fake_model,
        rng=random.Random(7),
    )
    app = create_app(resources)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
