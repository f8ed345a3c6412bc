"""Conversation practice API."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.deps import AppResources, get_conversation_engine, get_resources
from core.errors import raise_result
from engines.conversation import ConversationEngine

router = APIRouter()


class ScenarioResponse(BaseModel):
    key: str
    title: str
    description: str
    levels: list[str]


class StartRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    scenario: str = Field(min_length=1, max_length=50)
    level: str | None = None  # Unknown levels fall back to beginner


class StartResponse(BaseModel):
    session_id: UUID
    scenario: str
    level: str
    message: str
    resumed: bool


class ChatRequest(BaseModel):
    session_id: UUID
    message: str = Field(min_length=1, max_length=2000)
    user_id: str | None = Field(None, max_length=64)
    context: str | None = Field(None, max_length=1000)
    elapsed_seconds: float = Field(0.0, ge=0)


class ChatResponse(BaseModel):
    session_id: UUID
    ai_reply: str
    corrected_text: str | None
    correction_explanation: str | None
    context_summary: str | None
    exercises_completed: int
    session_completed: bool


class MessageResponse(BaseModel):
    id: UUID
    turn: int
    role: str
    content: str
    corrected_text: str | None = None
    correction_explanation: str | None = None
    context_summary: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get("/scenarios", response_model=list[ScenarioResponse])
async def list_scenarios(resources: AppResources = Depends(get_resources)):
    return [
        ScenarioResponse(
            key=s.key,
            title=s.title,
            description=s.description,
            levels=sorted(s.greetings),
        )
        for s in resources.scenarios.all()
    ]


@router.post("/start", response_model=StartResponse)
async def start_conversation(
    data: StartRequest,
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    """Open (or resume) a scenario conversation and get the tutor's opening line."""
    result = await engine.start(data.user_id, data.scenario, data.level)
    raise_result(result)
    started = result.unwrap()
    return StartResponse(
        session_id=started.session_id,
        scenario=started.scenario,
        level=started.level,
        message=started.greeting,
        resumed=started.resumed,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    data: ChatRequest,
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    result = await engine.chat(
        data.session_id,
        data.message,
        user_id=data.user_id,
        context=data.context,
        elapsed_seconds=data.elapsed_seconds,
    )
    raise_result(result)
    turn = result.unwrap()
    return ChatResponse(
        session_id=turn.session_id,
        ai_reply=turn.reply.ai_reply,
        corrected_text=turn.reply.corrected_text,
        correction_explanation=turn.reply.correction_explanation,
        context_summary=turn.reply.context_summary,
        exercises_completed=turn.session.exercises_completed,
        session_completed=turn.session.is_completed,
    )


@router.get("/{session_id}/history", response_model=list[MessageResponse])
async def conversation_history(
    session_id: UUID,
    user_id: str | None = Query(None, max_length=64),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    result = await engine.history(session_id, user_id)
    raise_result(result)
    return result.unwrap()
