from models.exercise import PoolItem, Attempt
from models.session import LearningSession, ConversationMessage

__all__ = [
    "PoolItem", "Attempt",
    "LearningSession", "ConversationMessage",
]
