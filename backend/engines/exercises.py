"""Exercise pool service.

Serves each learner exercises they have not seen before, reusing the
shared pool first and generating new items only when the pool has
nothing left for them at that category and level.

Request lifecycle:
    REQUESTED -> POOL_LOOKUP -> SERVED
                             -> GENERATING -> GENERATED -> SERVED
                                           -> FAILED
Submission lifecycle:
    SERVED -> GRADED (at most once)
"""
import random
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.database import commit_or_rollback
from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    invalid_format,
    map_db_errors,
    not_found,
    required_field,
    validation_error,
)
from core.logging import engine_logger
from engines.attempts import AttemptStats, AttemptStore, AttemptRecord
from engines.catalog import CATEGORIES, LEVELS, is_multiple_choice
from engines.generator import ItemGenerator
from engines.pool import PoolStore
from engines.sessions import SessionLimits, SessionProgress, SessionTracker
from models import Attempt, PoolItem

log = engine_logger()


@dataclass(slots=True, frozen=True)
class ExercisePolicy:
    points_per_correct: int = 10
    normalize_answers: bool = False
    exclusion_limit: int = 30
    limits: SessionLimits = field(default_factory=SessionLimits)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExercisePolicy":
        return cls(
            points_per_correct=settings.POINTS_PER_CORRECT,
            normalize_answers=settings.NORMALIZE_ANSWERS,
            exclusion_limit=settings.GENERATION_EXCLUSION_LIMIT,
            limits=SessionLimits(
                exercise_cap=settings.EXERCISE_SESSION_CAP,
                conversation_cap=settings.CONVERSATION_MESSAGE_CAP,
            ),
        )


@dataclass(slots=True)
class ServedExercise:
    """An exercise as shown to the learner: no answer, no feedback."""
    attempt_id: UUID
    session_id: UUID
    pool_item_id: UUID
    category: str
    level: str
    exercise_kind: str
    prompt_text: str
    options: list[str]
    grammar_rule: str | None
    example_sentence: str | None
    blank_position: int | None
    source: str  # pool, generated

    @classmethod
    def build(cls, attempt: Attempt, item: PoolItem, source: str) -> "ServedExercise":
        return cls(
            attempt_id=attempt.id,
            session_id=attempt.session_id,
            pool_item_id=item.id,
            category=item.category,
            level=item.level,
            exercise_kind=item.exercise_kind,
            prompt_text=item.prompt_text,
            options=list(item.options or []) if is_multiple_choice(item.exercise_kind) else [],
            grammar_rule=item.grammar_rule,
            example_sentence=item.example_sentence,
            blank_position=item.blank_position,
            source=source,
        )


@dataclass(slots=True)
class SubmissionResult:
    attempt_id: UUID
    is_correct: bool
    correct_answer: str
    feedback: str | None
    points_awarded: int
    session: SessionProgress


def parse_uuid(value: str | UUID | None, field_name: str) -> Result[UUID, AppError]:
    if isinstance(value, UUID):
        return Ok(value)
    if not value:
        return required_field(field_name, origin="exercise_service")
    try:
        return Ok(UUID(str(value)))
    except ValueError:
        return invalid_format(field_name, "UUID", str(value), origin="exercise_service")


def check_category_level(category: str | None, level: str | None) -> Result[tuple[str, str], AppError]:
    if not category:
        return required_field("category", origin="exercise_service")
    if category not in CATEGORIES:
        return invalid_format("category", " | ".join(CATEGORIES), category, origin="exercise_service")
    if not level:
        return required_field("level", origin="exercise_service")
    if level not in LEVELS:
        return invalid_format("level", " | ".join(LEVELS), level, origin="exercise_service")
    return Ok((category, level))


class ExercisePoolService:
    """Orchestrates pool lookup, generation, serving and grading.

    One instance works within one database session (one request).
    """

    __slots__ = ('_db', '_generator', '_policy', 'pool', 'attempts', 'sessions')

    def __init__(
        self,
        db: AsyncSession,
        generator: ItemGenerator,
        *,
        rng: random.Random | None = None,
        policy: ExercisePolicy | None = None,
    ):
        self._db = db
        self._generator = generator
        self._policy = policy or ExercisePolicy()
        self.pool = PoolStore(db, rng)
        self.attempts = AttemptStore(db)
        self.sessions = SessionTracker(db, self._policy.limits)

    async def get_next_exercise(
        self,
        category: str,
        level: str,
        user_id: str,
        session_id: str | UUID,
    ) -> Result[ServedExercise, AppError]:
        """Serve one exercise the learner has never been served in this category.

        Nothing is written when generation fails.
        """
        # REQUESTED
        match check_category_level(category, level):
            case Err() as err:
                return err
        if not user_id:
            return required_field("user_id", origin="exercise_service")
        match parse_uuid(session_id, "session_id"):
            case Ok(sid):
                pass
            case err:
                return err

        match await self.sessions.require_active(sid, user_id, category):
            case Err() as err:
                await self._db.rollback()
                return err

        # POOL_LOOKUP
        match await self.pool.find_unattempted(category, level, attempted_by=user_id):
            case Ok(item):
                pass
            case err:
                await self._db.rollback()
                return err

        source = "pool"
        if item is None:
            # GENERATING
            source = "generated"
            match await self._generate(category, level, user_id):
                case Ok(new_item):
                    item = new_item
                case err:
                    await self._db.rollback()
                    return err

        # SERVED
        match await self.attempts.create(user_id, sid, item.id):
            case Ok(attempt):
                pass
            case err:
                await self._db.rollback()
                return err

        match await commit_or_rollback(self._db):
            case Err() as err:
                log.error("exercise_serve_commit_failed", user_id=user_id, code=err.error.code.name)
                return err

        log.info(
            "exercise_served",
            user_id=user_id,
            session_id=str(sid),
            category=category,
            level=level,
            item_id=str(item.id),
            attempt_id=str(attempt.id),
            source=source,
        )
        return Ok(ServedExercise.build(attempt, item, source))

    async def _generate(self, category: str, level: str, user_id: str) -> Result[PoolItem, AppError]:
        match await self.attempts.seen_prompts(user_id, category, self._policy.exclusion_limit):
            case Ok(exclusions):
                pass
            case err:
                return err

        log.info("pool_exhausted", user_id=user_id, category=category, level=level)
        match await self._generator.generate(category, level, exclusions):
            case Ok(draft):
                pass
            case Err(error) as err:
                log.warning(
                    "exercise_generation_failed",
                    user_id=user_id,
                    category=category,
                    level=level,
                    code=error.code.name,
                )
                return err

        # GENERATED
        return await self.pool.insert(draft, origin="generated")

    async def submit(
        self,
        attempt_id: str | UUID,
        user_answer: str | None,
        *,
        elapsed_seconds: float = 0.0,
        user_id: str | None = None,
    ) -> Result[SubmissionResult, AppError]:
        """Grade an answer once and fold the result into the session totals.

        Grading and the session update commit together.
        """
        match parse_uuid(attempt_id, "attempt_id"):
            case Ok(aid):
                pass
            case err:
                return err
        if user_answer is None or user_answer == "":
            return required_field("user_answer", origin="exercise_service")
        if elapsed_seconds < 0:
            return validation_error(
                "elapsed_seconds must not be negative",
                field="elapsed_seconds",
                value=str(elapsed_seconds),
                origin="exercise_service",
            )

        if user_id is not None:
            match await self._check_owner(aid, user_id):
                case Err() as err:
                    await self._db.rollback()
                    return err

        match await self.attempts.grade(
            aid,
            user_answer,
            normalize=self._policy.normalize_answers,
            elapsed_seconds=elapsed_seconds,
        ):
            case Ok(graded):
                pass
            case err:
                await self._db.rollback()
                return err

        points = self._policy.points_per_correct if graded.is_correct else 0
        match await self.sessions.record_result(
            graded.session_id,
            points=points,
            elapsed_seconds=elapsed_seconds,
        ):
            case Ok(progress):
                pass
            case err:
                await self._db.rollback()
                return err

        match await commit_or_rollback(self._db):
            case Err() as err:
                log.error("submission_commit_failed", attempt_id=str(aid), code=err.error.code.name)
                return err

        log.info(
            "exercise_graded",
            attempt_id=str(aid),
            session_id=str(graded.session_id),
            is_correct=graded.is_correct,
            points=points,
            session_completed=progress.is_completed,
        )
        return Ok(SubmissionResult(
            attempt_id=aid,
            is_correct=graded.is_correct,
            correct_answer=graded.correct_answer,
            feedback=graded.feedback,
            points_awarded=points,
            session=progress,
        ))

    @map_db_errors("exercise_service")
    async def _check_owner(self, attempt_id: UUID, user_id: str) -> Result[None, AppError]:
        attempt = await self._db.get(Attempt, attempt_id)
        if attempt is None or attempt.user_id != user_id:
            return not_found("Attempt", attempt_id, origin="exercise_service")
        return Ok(None)

    async def history(
        self, user_id: str, category: str, *, limit: int = 50
    ) -> Result[list[AttemptRecord], AppError]:
        if not user_id:
            return required_field("user_id", origin="exercise_service")
        if category not in CATEGORIES:
            return invalid_format("category", " | ".join(CATEGORIES), category, origin="exercise_service")
        return await self.attempts.history(user_id, category, limit=limit)

    async def stats(self, user_id: str, category: str) -> Result[AttemptStats, AppError]:
        if not user_id:
            return required_field("user_id", origin="exercise_service")
        if category not in CATEGORIES:
            return invalid_format("category", " | ".join(CATEGORIES), category, origin="exercise_service")
        return await self.attempts.stats(
            user_id, category, points_per_correct=self._policy.points_per_correct
        )
