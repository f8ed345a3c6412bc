"""Conversation practice with a tutor persona.

Scenario role-play (restaurant, job interview, ...) where every learner
message gets a reply plus an optional correction of the learner's English.
Messages are stored per learning session so a conversation can resume.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import commit_or_rollback
from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    external_service_unavailable,
    map_db_errors,
    not_found,
    precondition_failed,
    required_field,
    state_conflict,
    timeout_error,
)
from core.logging import conversation_logger
from engines.catalog import normalize_level
from engines.generator import parse_json_reply
from engines.llm import LanguageModel
from engines.sessions import SessionProgress, SessionTracker
from models import ConversationMessage, LearningSession

log = conversation_logger()

DEFAULT_SCENARIOS_PATH = Path(__file__).resolve().parents[2] / "data" / "scenarios.yaml"

TUTOR_PROMPT = """You are an English conversation tutor assistant. Requirements:
1) Talk with the user in natural, fluent English on the selected topic ({topic}).
2) If the user's English contains mistakes, provide corrected_text and correction_explanation.
3) Always return a short context_summary (1-2 sentences).
4) Respond in JSON ONLY with keys: ai_reply, corrected_text, correction_explanation, context_summary.
5) Match your vocabulary to a {level} learner."""

TURN_PROMPT = """User message: \"\"\"{message}\"\"\"
Scenario: {scenario}
Level: {level}
Extra context: {context}"""


@dataclass(slots=True)
class Scenario:
    key: str
    title: str
    description: str
    greetings: dict[str, str]


class ScenarioBook:
    """Scenario catalog with scripted opening lines per level."""

    __slots__ = ('_scenarios', '_default_greeting')

    def __init__(self, scenarios: dict[str, Scenario], default_greeting: str):
        self._scenarios = scenarios
        self._default_greeting = default_greeting

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "ScenarioBook":
        source = Path(path) if path else DEFAULT_SCENARIOS_PATH
        with open(source, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        scenarios = {
            key: Scenario(
                key=key,
                title=entry.get("title", key.replace("_", " ").title()),
                description=entry.get("description", ""),
                greetings=dict(entry.get("greetings") or {}),
            )
            for key, entry in (data.get("scenarios") or {}).items()
        }
        log.debug("scenarios_loaded", path=str(source), count=len(scenarios))
        return cls(scenarios, data.get("default_greeting", "Hello! How can I help you today?"))

    def __contains__(self, key: str) -> bool:
        return key in self._scenarios

    def all(self) -> list[Scenario]:
        return list(self._scenarios.values())

    def greeting(self, scenario: str, level: str) -> str:
        """Greeting for scenario x level, falling back to beginner, then a generic line."""
        entry = self._scenarios.get(scenario)
        if entry is None:
            return self._default_greeting
        return entry.greetings.get(level) or entry.greetings.get("beginner") or self._default_greeting


@dataclass(slots=True)
class ConversationStart:
    session_id: UUID
    scenario: str
    level: str
    greeting: str
    resumed: bool


@dataclass(slots=True)
class TutorReply:
    ai_reply: str
    corrected_text: str | None = None
    correction_explanation: str | None = None
    context_summary: str | None = None

    @classmethod
    def parse(cls, raw: str) -> "TutorReply":
        """Read the model's JSON reply; plain text becomes the reply itself."""
        payload = parse_json_reply(raw)
        if payload is None or not isinstance(payload.get("ai_reply"), str):
            return cls(ai_reply=raw.strip())

        def _text(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) and value.strip() else None

        return cls(
            ai_reply=payload["ai_reply"],
            corrected_text=_text("corrected_text"),
            correction_explanation=_text("correction_explanation"),
            context_summary=_text("context_summary"),
        )


@dataclass(slots=True)
class ChatTurn:
    session_id: UUID
    reply: TutorReply
    session: SessionProgress


class ConversationEngine:
    """Runs scenario conversations inside learning sessions."""

    __slots__ = ('_db', '_model', '_scenarios', '_sessions', '_history_window', '_max_tokens', '_timeout')

    def __init__(
        self,
        db: AsyncSession,
        model: LanguageModel | None,
        scenarios: ScenarioBook,
        sessions: SessionTracker,
        *,
        history_window: int = 10,
        max_tokens: int = 400,
        timeout: float = 20.0,
    ):
        self._db = db
        self._model = model
        self._scenarios = scenarios
        self._sessions = sessions
        self._history_window = history_window
        self._max_tokens = max_tokens
        self._timeout = timeout

    async def start(self, user_id: str, scenario: str, level: str | None) -> Result[ConversationStart, AppError]:
        """Resume the learner's open conversation for scenario/level, or open a new one."""
        if not user_id:
            return required_field("user_id", origin="conversation")
        if not scenario:
            return required_field("scenario", origin="conversation")
        level = normalize_level(level) or "beginner"
        greeting = self._scenarios.greeting(scenario, level)

        match await self._sessions.find_open(user_id, "conversation", level, scenario):
            case Ok(None):
                pass
            case Ok(existing):
                log.info("conversation_resumed", session_id=str(existing.id), scenario=scenario)
                return Ok(ConversationStart(existing.id, scenario, level, greeting, resumed=True))
            case err:
                return err

        match await self._sessions.start(user_id, "conversation", level, scenario):
            case Ok(session):
                pass
            case err:
                await self._db.rollback()
                return err

        self._db.add(ConversationMessage(
            session_id=session.id,
            scenario=scenario,
            turn=0,
            role="assistant",
            content=greeting,
            proficiency_level=level,
        ))
        match await commit_or_rollback(self._db):
            case Err() as err:
                return err

        log.info("conversation_started", session_id=str(session.id), user_id=user_id, scenario=scenario, level=level)
        return Ok(ConversationStart(session.id, scenario, level, greeting, resumed=False))

    async def chat(
        self,
        session_id: UUID,
        message: str,
        *,
        user_id: str | None = None,
        context: str | None = None,
        elapsed_seconds: float = 0.0,
    ) -> Result[ChatTurn, AppError]:
        """Send one learner message and store both sides of the exchange.

        Nothing is stored when the model call fails.
        """
        if not message or not message.strip():
            return required_field("message", origin="conversation")

        match await self._load_session(session_id, user_id):
            case Ok(session):
                pass
            case err:
                return err
        if session.is_completed:
            await self._db.rollback()
            return state_conflict("LearningSession", "completed", "active", origin="conversation")

        match await self._recent_messages(session_id):
            case Ok(history):
                pass
            case err:
                await self._db.rollback()
                return err

        match await self._ask_model(session, history, message, context):
            case Ok(reply):
                pass
            case err:
                await self._db.rollback()
                return err

        next_turn = (history[-1].turn + 1) if history else 0
        scenario = session.scenario or "general"
        self._db.add_all([
            ConversationMessage(
                session_id=session_id,
                scenario=scenario,
                turn=next_turn,
                role="user",
                content=message,
                proficiency_level=session.difficulty_level,
            ),
            ConversationMessage(
                session_id=session_id,
                scenario=scenario,
                turn=next_turn + 1,
                role="assistant",
                content=reply.ai_reply,
                corrected_text=reply.corrected_text,
                correction_explanation=reply.correction_explanation,
                context_summary=reply.context_summary,
                proficiency_level=session.difficulty_level,
            ),
        ])

        match await self._sessions.record_result(session_id, elapsed_seconds=elapsed_seconds):
            case Ok(progress):
                pass
            case err:
                await self._db.rollback()
                return err

        match await commit_or_rollback(self._db):
            case Err() as err:
                return err

        log.info(
            "conversation_turn",
            session_id=str(session_id),
            turn=next_turn,
            corrected=reply.corrected_text is not None,
            session_completed=progress.is_completed,
        )
        return Ok(ChatTurn(session_id=session_id, reply=reply, session=progress))

    @map_db_errors("conversation")
    async def history(self, session_id: UUID, user_id: str | None = None) -> Result[list[ConversationMessage], AppError]:
        """All messages of a conversation, oldest first."""
        match await self._load_session(session_id, user_id):
            case Err() as err:
                return err
        rows = (await self._db.execute(
            select(ConversationMessage)
            .where(ConversationMessage.session_id == session_id)
            .order_by(ConversationMessage.turn)
        )).scalars().all()
        return Ok(list(rows))

    async def _load_session(self, session_id: UUID, user_id: str | None) -> Result[LearningSession, AppError]:
        match await self._sessions.get(session_id):
            case Ok(session):
                pass
            case err:
                return err
        if user_id is not None and session.user_id != user_id:
            return not_found("LearningSession", session_id, origin="conversation")
        if session.mode != "conversation":
            return precondition_failed(
                "session_mode", f"session is in {session.mode} mode, not conversation", origin="conversation"
            )
        return Ok(session)

    @map_db_errors("conversation")
    async def _recent_messages(self, session_id: UUID) -> Result[list[ConversationMessage], AppError]:
        rows = (await self._db.execute(
            select(ConversationMessage)
            .where(ConversationMessage.session_id == session_id)
            .order_by(ConversationMessage.turn.desc())
            .limit(self._history_window)
        )).scalars().all()
        return Ok(list(reversed(rows)))

    async def _ask_model(
        self,
        session: LearningSession,
        history: list[ConversationMessage],
        message: str,
        context: str | None,
    ) -> Result[TutorReply, AppError]:
        if self._model is None:
            return external_service_unavailable("language_model", "no API key configured", origin="conversation")

        scenario = session.scenario or "general"
        level = session.difficulty_level
        messages = [{'role': 'system', 'content': TUTOR_PROMPT.format(topic=scenario, level=level)}]
        messages.extend({'role': m.role, 'content': m.content} for m in history)
        messages.append({'role': 'user', 'content': TURN_PROMPT.format(
            message=message,
            scenario=scenario,
            level=level,
            context=context or "(none)",
        )})

        try:
            reply = await asyncio.wait_for(
                self._model.complete(messages, max_tokens=self._max_tokens, temperature=0.7, json_output=True),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            log.warning("conversation_timeout", session_id=str(session.id), timeout=self._timeout)
            return timeout_error("conversation_reply", self._timeout, origin="conversation")

        match reply:
            case Ok(raw):
                return Ok(TutorReply.parse(raw))
            case Err(error):
                log.warning("conversation_model_failed", session_id=str(session.id), code=error.code.name)
                return reply
