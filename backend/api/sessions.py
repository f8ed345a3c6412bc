"""Learning session API."""
from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_session_tracker
from core.database import commit_or_rollback, get_db
from core.errors import not_found, raise_result
from engines.catalog import Level
from engines.sessions import SessionTracker

router = APIRouter()


class SessionCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    mode: Literal["grammar", "vocabulary"]
    level: Level = "beginner"


class SessionResponse(BaseModel):
    id: UUID
    user_id: str
    mode: str
    difficulty_level: str
    scenario: str | None
    exercises_completed: int
    score: int
    duration_seconds: float
    is_completed: bool
    created_at: datetime | None
    completed_at: datetime | None

    class Config:
        from_attributes = True


@router.post("", response_model=SessionResponse, status_code=201)
async def start_session(
    data: SessionCreate,
    tracker: SessionTracker = Depends(get_session_tracker),
    db: AsyncSession = Depends(get_db),
):
    """Open a grammar or vocabulary session. Conversations open via /api/conversation/start."""
    result = await tracker.start(data.user_id, data.mode, data.level)
    raise_result(result)
    raise_result(await commit_or_rollback(db))
    return result.unwrap()


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: UUID,
    user_id: str | None = Query(None, max_length=64),
    tracker: SessionTracker = Depends(get_session_tracker),
):
    result = await tracker.get(session_id)
    raise_result(result)
    session = result.unwrap()
    if user_id is not None and session.user_id != user_id:
        raise_result(not_found("LearningSession", session_id, origin="api.sessions"))
    return session


@router.post("/{session_id}/complete", response_model=SessionResponse)
async def complete_session(
    session_id: UUID,
    user_id: str | None = Query(None, max_length=64),
    tracker: SessionTracker = Depends(get_session_tracker),
    db: AsyncSession = Depends(get_db),
):
    """Close a session before it reaches its cap."""
    result = await tracker.complete(session_id, user_id)
    raise_result(result)
    raise_result(await commit_or_rollback(db))
    return result.unwrap()
