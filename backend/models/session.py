from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Boolean, Index, Text
from sqlalchemy.orm import relationship

from core.database import Base, GUID


class LearningSession(Base):
    """A run of practice in one mode, aggregating score and time."""
    __tablename__ = "learning_sessions"
    __table_args__ = (
        Index("ix_learning_sessions_user_mode", "user_id", "mode"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)
    mode = Column(String(20), nullable=False)  # grammar, vocabulary, conversation
    difficulty_level = Column(String(20), nullable=False, default="beginner")
    scenario = Column(String(50))  # Conversation scenario key
    exercises_completed = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Float, nullable=False, default=0.0)
    score = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)

    attempts = relationship("Attempt", back_populates="session", cascade="all, delete-orphan")
    messages = relationship(
        "ConversationMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ConversationMessage.turn",
    )


class ConversationMessage(Base):
    """One turn in a scripted conversation scenario."""
    __tablename__ = "conversation_messages"
    __table_args__ = (
        Index("ix_conversation_messages_session_turn", "session_id", "turn"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    session_id = Column(GUID, ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False)
    scenario = Column(String(50), nullable=False, default="general")
    turn = Column(Integer, nullable=False, default=0)  # Position within the session
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    corrected_text = Column(Text)
    correction_explanation = Column(Text)
    context_summary = Column(Text)
    proficiency_level = Column(String(20))
    created_at = Column(DateTime, default=datetime.utcnow)

    session = relationship("LearningSession", back_populates="messages")
