from engines.catalog import ExerciseDraft, CATEGORIES, LEVELS
from engines.llm import LanguageModel, OpenAIChatModel
from engines.generator import ItemGenerator
from engines.pool import PoolStore
from engines.attempts import AttemptStore, GradedResult
from engines.sessions import SessionTracker, SessionLimits
from engines.exercises import ExercisePoolService, ExercisePolicy, ServedExercise, SubmissionResult
from engines.conversation import ConversationEngine, ScenarioBook

__all__ = [
    "ExerciseDraft",
    "CATEGORIES",
    "LEVELS",
    "LanguageModel",
    "OpenAIChatModel",
    "ItemGenerator",
    "PoolStore",
    "AttemptStore",
    "GradedResult",
    "SessionTracker",
    "SessionLimits",
    "ExercisePoolService",
    "ExercisePolicy",
    "ServedExercise",
    "SubmissionResult",
    "ConversationEngine",
    "ScenarioBook",
]
