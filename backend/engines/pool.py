"""Exercise pool store.

Pool items are shared across learners. An item is written once, either by
the seed script or after a successful generation, and is never edited.
"""
import random
from collections.abc import Collection
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import fetch_one
from core.errors import AppError, Ok, Result, map_db_errors
from core.logging import pool_logger
from engines.catalog import ExerciseDraft
from models import Attempt, PoolItem

log = pool_logger()


class PoolStore:
    """Reads and writes pool items within the caller's unit of work.

    Writes are flushed, never committed; the owning service commits.
    """

    __slots__ = ('_db', '_rng')

    def __init__(self, db: AsyncSession, rng: random.Random | None = None):
        self._db = db
        self._rng = rng or random.Random()

    @map_db_errors("pool_store")
    async def find_unattempted(
        self,
        category: str,
        level: str,
        excluded_ids: Collection[UUID] = (),
        *,
        attempted_by: str | None = None,
    ) -> Result[PoolItem | None, AppError]:
        """Pick one item at (category, level) outside excluded_ids, or None.

        attempted_by excludes every item that user was served in this
        category, through a subquery on the attempts table.

        Candidates are chosen uniformly at random; the candidate list is
        ordered first so a seeded generator gives repeatable picks.
        """
        query = (
            select(PoolItem.id)
            .where(PoolItem.category == category, PoolItem.level == level)
            .order_by(PoolItem.created_at, PoolItem.id)
        )
        if excluded_ids:
            query = query.where(PoolItem.id.not_in(list(excluded_ids)))
        if attempted_by is not None:
            query = query.where(PoolItem.id.not_in(
                select(Attempt.pool_item_id)
                .where(Attempt.user_id == attempted_by, Attempt.category == category)
            ))

        candidates = (await self._db.execute(query)).scalars().all()
        if not candidates:
            log.debug("pool_miss", category=category, level=level, excluded=len(excluded_ids))
            return Ok(None)

        chosen = self._rng.choice(candidates)
        item = await self._db.get(PoolItem, chosen)
        log.debug("pool_hit", category=category, level=level, candidates=len(candidates), item_id=str(chosen))
        return Ok(item)

    @map_db_errors("pool_store")
    async def insert(self, draft: ExerciseDraft, *, origin: str = "generated") -> Result[PoolItem, AppError]:
        item = PoolItem(
            category=draft.category,
            level=draft.level,
            prompt_text=draft.prompt_text,
            exercise_kind=draft.exercise_kind,
            correct_answer=draft.correct_answer,
            options=list(draft.options),
            grammar_rule=draft.grammar_rule,
            feedback=draft.feedback,
            example_sentence=draft.example_sentence,
            blank_position=draft.blank_position,
            origin=origin,
        )
        self._db.add(item)
        await self._db.flush()
        log.info("pool_item_added", item_id=str(item.id), category=item.category, level=item.level, origin=origin)
        return Ok(item)

    async def get(self, item_id: UUID) -> Result[PoolItem, AppError]:
        return await fetch_one(self._db, PoolItem, item_id, "PoolItem")

    @map_db_errors("pool_store")
    async def count(self, category: str | None = None, level: str | None = None) -> Result[int, AppError]:
        query = select(func.count(PoolItem.id))
        if category:
            query = query.where(PoolItem.category == category)
        if level:
            query = query.where(PoolItem.level == level)
        return Ok((await self._db.execute(query)).scalar_one())

    @map_db_errors("pool_store")
    async def has_prompt(self, category: str, level: str, prompt_text: str) -> Result[bool, AppError]:
        """True when an identical stimulus already exists at (category, level)."""
        query = select(PoolItem.id).where(
            PoolItem.category == category,
            PoolItem.level == level,
            PoolItem.prompt_text == prompt_text,
        ).limit(1)
        return Ok((await self._db.execute(query)).scalar_one_or_none() is not None)
