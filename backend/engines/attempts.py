"""Per-user attempt store and grading."""
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    AppError,
    Ok,
    Result,
    already_graded,
    map_db_errors,
    not_found,
)
from core.logging import pool_logger
from models import Attempt, PoolItem

log = pool_logger()

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_answer(text: str) -> str:
    """Trim, collapse inner whitespace and casefold."""
    return _WHITESPACE_RE.sub(" ", text.strip()).casefold()


def answers_match(user_answer: str, correct_answer: str, *, normalize: bool = False) -> bool:
    if normalize:
        return normalize_answer(user_answer) == normalize_answer(correct_answer)
    return user_answer == correct_answer


@dataclass(slots=True)
class GradedResult:
    """Outcome of grading one attempt."""
    attempt_id: UUID
    session_id: UUID
    pool_item_id: UUID
    is_correct: bool
    correct_answer: str
    feedback: str | None = None


@dataclass(slots=True)
class AttemptRecord:
    """One row of a learner's history, joined with its pool item."""
    attempt_id: UUID
    pool_item_id: UUID
    session_id: UUID
    category: str
    level: str
    exercise_kind: str
    prompt_text: str
    user_answer: str | None
    is_correct: bool | None
    correct_answer: str | None  # Hidden until graded
    created_at: datetime | None
    graded_at: datetime | None


@dataclass(slots=True)
class AttemptStats:
    total_exercises: int = 0
    total_correct: int = 0
    total_points: int = 0
    by_kind: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def accuracy(self) -> float:
        return self.total_correct / self.total_exercises if self.total_exercises else 0.0


class AttemptStore:
    """Records which learner saw which pool item, and how they answered.

    Writes are flushed, never committed; the owning service commits.
    """

    __slots__ = ('_db',)

    def __init__(self, db: AsyncSession):
        self._db = db

    @map_db_errors("attempt_store")
    async def create(
        self,
        user_id: str,
        session_id: UUID,
        pool_item_id: UUID,
    ) -> Result[Attempt, AppError]:
        item = await self._db.get(PoolItem, pool_item_id)
        if item is None:
            return not_found("PoolItem", pool_item_id, origin="attempt_store")

        attempt = Attempt(
            user_id=user_id,
            session_id=session_id,
            pool_item_id=pool_item_id,
            category=item.category,
        )
        self._db.add(attempt)
        await self._db.flush()
        log.info("attempt_created", attempt_id=str(attempt.id), user_id=user_id, item_id=str(pool_item_id))
        return Ok(attempt)

    @map_db_errors("attempt_store")
    async def grade(
        self,
        attempt_id: UUID,
        user_answer: str,
        *,
        normalize: bool = False,
        elapsed_seconds: float | None = None,
    ) -> Result[GradedResult, AppError]:
        """Grade an attempt exactly once.

        The write is conditional on the attempt still being ungraded, so two
        racing submissions cannot both succeed.
        """
        row = (await self._db.execute(
            select(Attempt.is_correct, Attempt.session_id, PoolItem)
            .join(PoolItem, Attempt.pool_item_id == PoolItem.id)
            .where(Attempt.id == attempt_id)
        )).one_or_none()
        if row is None:
            return not_found("Attempt", attempt_id, origin="attempt_store")

        previous, session_id, item = row
        if previous is not None:
            log.info("attempt_already_graded", attempt_id=str(attempt_id))
            return already_graded(attempt_id, previous, origin="attempt_store")

        is_correct = answers_match(user_answer, item.correct_answer, normalize=normalize)
        result = await self._db.execute(
            update(Attempt)
            .where(Attempt.id == attempt_id, Attempt.is_correct.is_(None))
            .values(
                user_answer=user_answer,
                is_correct=is_correct,
                elapsed_seconds=elapsed_seconds,
                graded_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            log.info("attempt_grade_lost_race", attempt_id=str(attempt_id))
            return already_graded(attempt_id, origin="attempt_store")

        log.info("attempt_graded", attempt_id=str(attempt_id), is_correct=is_correct)
        return Ok(GradedResult(
            attempt_id=attempt_id,
            session_id=session_id,
            pool_item_id=item.id,
            is_correct=is_correct,
            correct_answer=item.correct_answer,
            feedback=item.feedback,
        ))

    @map_db_errors("attempt_store")
    async def list_attempted_item_ids(
        self, user_id: str, category: str | None = None
    ) -> Result[set[UUID], AppError]:
        """Every pool item this learner has been served, graded or not."""
        query = select(Attempt.pool_item_id).where(Attempt.user_id == user_id)
        if category:
            query = query.where(Attempt.category == category)
        return Ok(set((await self._db.execute(query)).scalars().all()))

    @map_db_errors("attempt_store")
    async def seen_prompts(
        self, user_id: str, category: str, limit: int = 30
    ) -> Result[list[str], AppError]:
        """Stimulus texts this learner has seen, most recent first."""
        query = (
            select(PoolItem.prompt_text)
            .join(Attempt, Attempt.pool_item_id == PoolItem.id)
            .where(Attempt.user_id == user_id, Attempt.category == category)
            .order_by(Attempt.created_at.desc())
            .limit(limit)
        )
        return Ok(list((await self._db.execute(query)).scalars().all()))

    @map_db_errors("attempt_store")
    async def history(
        self,
        user_id: str,
        category: str | None = None,
        *,
        limit: int = 50,
    ) -> Result[list[AttemptRecord], AppError]:
        query = (
            select(Attempt, PoolItem)
            .join(PoolItem, Attempt.pool_item_id == PoolItem.id)
            .where(Attempt.user_id == user_id)
            .order_by(Attempt.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if category:
            query = query.where(Attempt.category == category)

        records = [
            AttemptRecord(
                attempt_id=attempt.id,
                pool_item_id=item.id,
                session_id=attempt.session_id,
                category=attempt.category,
                level=item.level,
                exercise_kind=item.exercise_kind,
                prompt_text=item.prompt_text,
                user_answer=attempt.user_answer,
                is_correct=attempt.is_correct,
                correct_answer=item.correct_answer if attempt.is_correct is not None else None,
                created_at=attempt.created_at,
                graded_at=attempt.graded_at,
            )
            for attempt, item in (await self._db.execute(query)).all()
        ]
        return Ok(records)

    @map_db_errors("attempt_store")
    async def stats(
        self,
        user_id: str,
        category: str | None = None,
        *,
        points_per_correct: int = 10,
    ) -> Result[AttemptStats, AppError]:
        """Totals over graded attempts; ungraded ones are not counted."""
        query = (
            select(PoolItem.exercise_kind, Attempt.is_correct)
            .join(PoolItem, Attempt.pool_item_id == PoolItem.id)
            .where(Attempt.user_id == user_id, Attempt.is_correct.is_not(None))
        )
        if category:
            query = query.where(Attempt.category == category)

        stats = AttemptStats()
        by_kind: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "correct": 0})
        for kind, is_correct in (await self._db.execute(query)).all():
            stats.total_exercises += 1
            by_kind[kind]["total"] += 1
            if is_correct:
                stats.total_correct += 1
                by_kind[kind]["correct"] += 1

        stats.total_points = stats.total_correct * points_per_correct
        stats.by_kind = dict(by_kind)
        return Ok(stats)
