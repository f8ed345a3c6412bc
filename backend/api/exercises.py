"""Exercise API: serve, grade, history and stats for grammar and vocabulary."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.deps import get_exercise_service
from core.errors import raise_result
from engines.catalog import Level
from engines.exercises import ExercisePoolService

router = APIRouter()


class NextExerciseRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    session_id: UUID
    level: Level


class ExerciseResponse(BaseModel):
    """A served exercise. The answer is only revealed after submission."""
    attempt_id: UUID
    session_id: UUID
    pool_item_id: UUID
    category: str
    level: str
    exercise_kind: str
    prompt_text: str
    options: list[str]
    grammar_rule: str | None = None
    example_sentence: str | None = None
    blank_position: int | None = None
    source: str

    class Config:
        from_attributes = True


class SubmitRequest(BaseModel):
    attempt_id: UUID
    user_answer: str = Field(max_length=2000)
    elapsed_seconds: float = Field(0.0, ge=0)
    user_id: str | None = Field(None, max_length=64)


class SessionProgressResponse(BaseModel):
    session_id: UUID
    exercises_completed: int
    score: int
    duration_seconds: float
    is_completed: bool

    class Config:
        from_attributes = True


class SubmitResponse(BaseModel):
    attempt_id: UUID
    is_correct: bool
    correct_answer: str
    feedback: str | None
    points_awarded: int
    session: SessionProgressResponse

    class Config:
        from_attributes = True


class HistoryEntry(BaseModel):
    attempt_id: UUID
    pool_item_id: UUID
    session_id: UUID
    level: str
    exercise_kind: str
    prompt_text: str
    user_answer: str | None
    is_correct: bool | None
    correct_answer: str | None
    created_at: datetime | None
    graded_at: datetime | None

    class Config:
        from_attributes = True


class KindStats(BaseModel):
    total: int
    correct: int


class StatsResponse(BaseModel):
    category: str
    total_exercises: int
    total_correct: int
    total_points: int
    accuracy: float
    by_kind: dict[str, KindStats]


@router.post("/submit", response_model=SubmitResponse)
async def submit_answer(
    data: SubmitRequest,
    service: ExercisePoolService = Depends(get_exercise_service),
):
    """Grade an answer. Each attempt can be graded once; a second submission gets 409."""
    result = await service.submit(
        data.attempt_id,
        data.user_answer,
        elapsed_seconds=data.elapsed_seconds,
        user_id=data.user_id,
    )
    raise_result(result)
    return result.unwrap()


@router.post("/{category}/next", response_model=ExerciseResponse)
async def next_exercise(
    category: str,
    data: NextExerciseRequest,
    service: ExercisePoolService = Depends(get_exercise_service),
):
    """Serve an exercise this learner has never seen, generating one if the pool is exhausted."""
    result = await service.get_next_exercise(category, data.level, data.user_id, data.session_id)
    raise_result(result)
    return result.unwrap()


@router.get("/{category}/history", response_model=list[HistoryEntry])
async def exercise_history(
    category: str,
    user_id: str = Query(..., min_length=1, max_length=64),
    limit: int = Query(50, ge=1, le=200),
    service: ExercisePoolService = Depends(get_exercise_service),
):
    result = await service.history(user_id, category, limit=limit)
    raise_result(result)
    return result.unwrap()


@router.get("/{category}/stats", response_model=StatsResponse)
async def exercise_stats(
    category: str,
    user_id: str = Query(..., min_length=1, max_length=64),
    service: ExercisePoolService = Depends(get_exercise_service),
):
    """Totals over graded attempts in one category."""
    result = await service.stats(user_id, category)
    raise_result(result)
    stats = result.unwrap()
    return StatsResponse(
        category=category,
        total_exercises=stats.total_exercises,
        total_correct=stats.total_correct,
        total_points=stats.total_points,
        accuracy=round(stats.accuracy, 3),
        by_kind={kind: KindStats(**counts) for kind, counts in stats.by_kind.items()},
    )
