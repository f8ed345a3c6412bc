"""Shared API dependencies.

Long-lived resources (database engine, language model client, scenario
catalog, selection RNG) are built once at startup and kept on
app.state.resources. Request-scoped services are assembled from them here.
"""
import random
from dataclasses import dataclass, field

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import Settings
from core.database import get_db
from engines.conversation import ConversationEngine, ScenarioBook
from engines.exercises import ExercisePolicy, ExercisePoolService
from engines.generator import ItemGenerator
from engines.llm import LanguageModel
from engines.sessions import SessionTracker


@dataclass
class AppResources:
    settings: Settings
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    scenarios: ScenarioBook
    language_model: LanguageModel | None = None
    rng: random.Random = field(default_factory=random.Random)

    @property
    def policy(self) -> ExercisePolicy:
        return ExercisePolicy.from_settings(self.settings)

    def item_generator(self) -> ItemGenerator:
        return ItemGenerator(
            self.language_model,
            timeout=self.settings.GENERATION_TIMEOUT_SECONDS,
            max_tokens=self.settings.GENERATION_MAX_TOKENS,
            exclusion_limit=self.settings.GENERATION_EXCLUSION_LIMIT,
        )


def get_resources(request: Request) -> AppResources:
    return request.app.state.resources


def get_session_tracker(
    db: AsyncSession = Depends(get_db),
    resources: AppResources = Depends(get_resources),
) -> SessionTracker:
    return SessionTracker(db, resources.policy.limits)


def get_exercise_service(
    db: AsyncSession = Depends(get_db),
    resources: AppResources = Depends(get_resources),
) -> ExercisePoolService:
    return ExercisePoolService(
        db,
        resources.item_generator(),
        rng=resources.rng,
        policy=resources.policy,
    )


def get_conversation_engine(
    db: AsyncSession = Depends(get_db),
    resources: AppResources = Depends(get_resources),
) -> ConversationEngine:
    settings = resources.settings
    return ConversationEngine(
        db,
        resources.language_model,
        resources.scenarios,
        SessionTracker(db, resources.policy.limits),
        history_window=settings.CONVERSATION_HISTORY_WINDOW,
        max_tokens=settings.CHAT_MAX_TOKENS,
        timeout=settings.GENERATION_TIMEOUT_SECONDS,
    )
