# Core module exports
from core.config import settings, get_settings
from core.database import Base, GUID, build_engine, build_sessionmaker, get_db
from core.logging import (
    configure_logging,
    get_logger,
    bind_context,
    clear_context,
    generate_correlation_id,
    api_logger,
    engine_logger,
    db_logger,
    pool_logger,
    generator_logger,
    conversation_logger,
)
