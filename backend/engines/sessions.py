"""Learning session tracking.

A session groups a run of exercises (or conversation turns) in one mode
and keeps running totals: items completed, score and time spent.
A session closes itself once it reaches its mode's cap.
"""
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    AppError,
    Ok,
    Result,
    map_db_errors,
    not_found,
    precondition_failed,
    state_conflict,
)
from core.logging import engine_logger
from engines.catalog import SessionMode
from models import LearningSession

log = engine_logger()


@dataclass(slots=True, frozen=True)
class SessionLimits:
    exercise_cap: int = 20
    conversation_cap: int = 30

    def cap_for(self, mode: SessionMode) -> int:
        return self.conversation_cap if mode == "conversation" else self.exercise_cap


@dataclass(slots=True)
class SessionProgress:
    """Session totals after an update."""
    session_id: UUID
    exercises_completed: int
    score: int
    duration_seconds: float
    is_completed: bool


def progress_of(session: LearningSession) -> SessionProgress:
    return SessionProgress(
        session_id=session.id,
        exercises_completed=session.exercises_completed,
        score=session.score,
        duration_seconds=session.duration_seconds,
        is_completed=session.is_completed,
    )


class SessionTracker:
    """Creates sessions and folds results into their totals.

    Writes are flushed, never committed; the owning service commits.
    """

    __slots__ = ('_db', '_limits')

    def __init__(self, db: AsyncSession, limits: SessionLimits | None = None):
        self._db = db
        self._limits = limits or SessionLimits()

    @map_db_errors("session_tracker")
    async def start(
        self,
        user_id: str,
        mode: SessionMode,
        level: str,
        scenario: str | None = None,
    ) -> Result[LearningSession, AppError]:
        session = LearningSession(
            user_id=user_id,
            mode=mode,
            difficulty_level=level,
            scenario=scenario,
            exercises_completed=0,
            duration_seconds=0.0,
            score=0,
            is_completed=False,
        )
        self._db.add(session)
        await self._db.flush()
        log.info("session_started", session_id=str(session.id), user_id=user_id, mode=mode, level=level)
        return Ok(session)

    @map_db_errors("session_tracker")
    async def get(self, session_id: UUID) -> Result[LearningSession, AppError]:
        session = (await self._db.execute(
            select(LearningSession)
            .where(LearningSession.id == session_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if session is None:
            return not_found("LearningSession", session_id, origin="session_tracker")
        return Ok(session)

    async def require_active(
        self,
        session_id: UUID,
        user_id: str,
        mode: SessionMode,
    ) -> Result[LearningSession, AppError]:
        """Load a session that belongs to user_id, runs in mode and is still open.

        Another learner's session is reported as not found.
        """
        match await self.get(session_id):
            case Ok(session):
                pass
            case err:
                return err

        if session.user_id != user_id:
            return not_found("LearningSession", session_id, origin="session_tracker")
        if session.mode != mode:
            return precondition_failed(
                "session_mode",
                f"session is in {session.mode} mode, not {mode}",
                origin="session_tracker",
            )
        if session.is_completed:
            return state_conflict("LearningSession", "completed", "active", origin="session_tracker")
        return Ok(session)

    @map_db_errors("session_tracker")
    async def find_open(
        self,
        user_id: str,
        mode: SessionMode,
        level: str,
        scenario: str | None = None,
    ) -> Result[LearningSession | None, AppError]:
        """Most recent uncompleted session matching the arguments, if any."""
        query = (
            select(LearningSession)
            .where(
                LearningSession.user_id == user_id,
                LearningSession.mode == mode,
                LearningSession.difficulty_level == level,
                LearningSession.is_completed.is_(False),
            )
            .order_by(LearningSession.created_at.desc())
            .limit(1)
        )
        if scenario is not None:
            query = query.where(LearningSession.scenario == scenario)
        return Ok((await self._db.execute(query)).scalar_one_or_none())

    @map_db_errors("session_tracker")
    async def record_result(
        self,
        session_id: UUID,
        *,
        points: int = 0,
        elapsed_seconds: float = 0.0,
    ) -> Result[SessionProgress, AppError]:
        """Add one completed item to a session's totals.

        Increments happen in SQL so concurrent submissions never lose an update.
        """
        now = datetime.utcnow()
        result = await self._db.execute(
            update(LearningSession)
            .where(LearningSession.id == session_id)
            .values(
                exercises_completed=LearningSession.exercises_completed + 1,
                score=LearningSession.score + points,
                duration_seconds=LearningSession.duration_seconds + max(elapsed_seconds, 0.0),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return not_found("LearningSession", session_id, origin="session_tracker")

        session = (await self._db.execute(
            select(LearningSession)
            .where(LearningSession.id == session_id)
            .execution_options(populate_existing=True)
        )).scalar_one()

        cap = self._limits.cap_for(session.mode)
        if not session.is_completed and cap and session.exercises_completed >= cap:
            session.is_completed = True
            session.completed_at = now
            await self._db.flush()
            log.info("session_cap_reached", session_id=str(session_id), cap=cap)

        return Ok(progress_of(session))

    @map_db_errors("session_tracker")
    async def complete(self, session_id: UUID, user_id: str | None = None) -> Result[LearningSession, AppError]:
        """Close a session early. Completing a closed session is a no-op."""
        session = await self._db.get(LearningSession, session_id, populate_existing=True)
        if session is None or (user_id is not None and session.user_id != user_id):
            return not_found("LearningSession", session_id, origin="session_tracker")

        if not session.is_completed:
            session.is_completed = True
            session.completed_at = datetime.utcnow()
            await self._db.flush()
            log.info("session_completed", session_id=str(session_id), score=session.score)
        return Ok(session)
