import random
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import conversation, exercises, sessions
from api.deps import AppResources
from core.config import Settings, settings
from core.database import build_engine, build_sessionmaker, create_tables
from core.logging import configure_logging, get_logger
from core.middleware import RequestLoggingMiddleware, SlowRequestMiddleware
from core.errors import register_error_handlers
from engines.conversation import ScenarioBook
from engines.llm import OpenAIChatModel

# Initialize logging before anything else
configure_logging(
    level=settings.LOG_LEVEL,
    json_logs=settings.LOG_JSON,
    log_sql=settings.LOG_SQL,
)

log = get_logger(__name__)

VERSION = "0.1.0"


def build_resources(config: Settings) -> AppResources:
    """Build process-wide resources from settings."""
    engine = build_engine(config.DATABASE_URL, echo=config.LOG_SQL)
    return AppResources(
        settings=config,
        engine=engine,
        sessionmaker=build_sessionmaker(engine),
        scenarios=ScenarioBook.from_yaml(config.SCENARIOS_PATH),
        language_model=OpenAIChatModel.from_settings(config),
        rng=random.Random(config.POOL_SELECTION_SEED),
    )


def create_app(resources: AppResources | None = None, config: Settings | None = None) -> FastAPI:
    """Build the API app.

    Pass prebuilt resources to run against a test database or a fake
    language model; otherwise they are built from settings at startup.
    """
    config = resources.settings if resources else (config or settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("startup", message="LinguaAI API starting up")
        owned = resources is None
        app.state.resources = build_resources(config) if owned else resources
        res: AppResources = app.state.resources

        if res.language_model is None:
            log.warning("language_model_unconfigured", message="Exercise generation and conversation disabled")

        try:
            await create_tables(res.engine)
            log.info("database_connected", message="Database tables initialized")
        except Exception as e:
            log.warning("database_unavailable", error=str(e), message="App starting without database")

        yield

        log.info("shutdown", message="LinguaAI API shutting down")
        if owned:
            await res.engine.dispose()
            if isinstance(res.language_model, OpenAIChatModel):
                await res.language_model.close()
            log.debug("resources_disposed", message="Database and model clients closed")

    app = FastAPI(
        title="LinguaAI API",
        description="English practice with a shared exercise pool, per-learner attempt history and scenario conversations",
        version=VERSION,
        lifespan=lifespan,
    )
    if resources is not None:
        app.state.resources = resources

    # Register structured error handlers
    register_error_handlers(app)

    # Middleware (order matters: last added = first executed)
    app.add_middleware(SlowRequestMiddleware, slow_threshold_ms=config.SLOW_REQUEST_MS)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
    app.include_router(exercises.router, prefix="/api/exercises", tags=["exercises"])
    app.include_router(conversation.router, prefix="/api/conversation", tags=["conversation"])

    @app.get("/health")
    async def health_check():
        res: AppResources | None = getattr(app.state, "resources", None)
        return {
            "status": "healthy",
            "version": VERSION,
            "language_model": bool(res and res.language_model),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    log.info("server_config", host=settings.BACKEND_HOST, port=settings.BACKEND_PORT, debug=settings.APP_DEBUG)
    uvicorn.run(
        "main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.APP_DEBUG,
        log_config=None,  # Disable uvicorn's default logging, we handle it
    )
