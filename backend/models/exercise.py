"""Exercise pool and per-user attempt tables.

Pool items are shared across users and never edited once written.
Attempts link one user (within one learning session) to one pool item.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, Boolean, Float, Index, JSON
from sqlalchemy.orm import relationship

from core.database import Base, GUID


class PoolItem(Base):
    """Reusable exercise shared by all learners of a level."""
    __tablename__ = "exercise_pool"
    __table_args__ = (
        Index("ix_exercise_pool_category_level", "category", "level"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    category = Column(String(20), nullable=False)  # grammar, vocabulary
    level = Column(String(20), nullable=False)  # beginner, intermediate, advanced
    prompt_text = Column(Text, nullable=False)  # Sentence (grammar) or word (vocabulary)
    exercise_kind = Column(String(30), nullable=False)
    correct_answer = Column(Text, nullable=False)
    options = Column(JSON, default=list)
    grammar_rule = Column(Text)
    feedback = Column(Text)
    example_sentence = Column(Text)
    blank_position = Column(Integer)
    origin = Column(String(20), nullable=False, default="generated")  # seed, generated
    created_at = Column(DateTime, default=datetime.utcnow)

    attempts = relationship("Attempt", back_populates="pool_item")


class Attempt(Base):
    """One learner's encounter with one pool item."""
    __tablename__ = "exercise_attempts"
    __table_args__ = (
        Index("ix_exercise_attempts_user_category", "user_id", "category"),
        Index("ix_exercise_attempts_session", "session_id"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)
    session_id = Column(GUID, ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False)
    pool_item_id = Column(GUID, ForeignKey("exercise_pool.id"), nullable=False)
    category = Column(String(20), nullable=False)
    user_answer = Column(Text)  # Null until submitted
    is_correct = Column(Boolean)  # Null until graded
    elapsed_seconds = Column(Float)
    created_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime)

    pool_item = relationship("PoolItem", back_populates="attempts")
    session = relationship("LearningSession", back_populates="attempts")
