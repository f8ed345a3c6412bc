from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./linguaai.db"

    # Backend
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000
    APP_DEBUG: bool = True
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    SLOW_REQUEST_MS: float = 5000  # Requests that reach the language model are slow by nature

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # True for production (structured JSON), False for dev (colored)
    LOG_SQL: bool = False   # Enable SQLAlchemy query logging

    # Language model (any OpenAI-compatible chat completions endpoint)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str | None = None
    GENERATION_TIMEOUT_SECONDS: float = 20.0
    GENERATION_MAX_TOKENS: int = 600
    GENERATION_EXCLUSION_LIMIT: int = 30  # Seen prompts passed to the model as a hint
    CHAT_MAX_TOKENS: int = 400

    # Exercises
    POINTS_PER_CORRECT: int = 10
    NORMALIZE_ANSWERS: bool = False  # Exact string comparison unless enabled
    POOL_SELECTION_SEED: int | None = None

    # Sessions
    EXERCISE_SESSION_CAP: int = 20
    CONVERSATION_MESSAGE_CAP: int = 30
    CONVERSATION_HISTORY_WINDOW: int = 10
    SCENARIOS_PATH: str | None = None  # Defaults to data/scenarios.yaml in the repo

    @property
    def has_language_model(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
