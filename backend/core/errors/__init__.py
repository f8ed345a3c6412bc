"""Monadic Error Handling System

Result[T, E] containers with a typed AppError taxonomy, in the style of
Rust's Result / Haskell's Either.

Usage:
    from core.errors import Ok, Err, Result, AppError, not_found

    async def get_item(item_id: UUID) -> Result[PoolItem, AppError]:
        item = await db.get(PoolItem, item_id)
        if item is None:
            return not_found("PoolItem", item_id, origin="pool_store")
        return Ok(item)

    match await get_item(item_id):
        case Ok(item):
            ...
        case Err(error):
            log.warning("lookup_failed", code=error.code.name)
"""
from .types import (
    Result,
    Ok,
    Err,
    AppError,
    ErrorCode,
    ErrorContext,
    sequence_results,
    require,
)

from .builders import (
    # Network / language model (E1xxx)
    network_error,
    timeout_error,
    external_service_unavailable,
    rate_limited,
    generation_failed,
    invalid_model_output,
    # Validation (E2xxx)
    validation_error,
    required_field,
    invalid_format,
    # Database (E4xxx)
    db_error,
    not_found,
    duplicate_key,
    foreign_key_violation,
    db_connection_failed,
    transaction_failed,
    # Business (E5xxx)
    business_error,
    state_conflict,
    precondition_failed,
    already_graded,
    # Internal (E9xxx)
    internal_error,
)

from .boundaries import (
    ErrorMapper,
    DatabaseErrorMapper,
    ValidationErrorMapper,
    map_errors,
    map_db_errors,
)

from .handlers import (
    AppErrorException,
    register_error_handlers,
    result_to_response,
    raise_error,
    raise_result,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "AppError",
    "ErrorCode",
    "ErrorContext",
    "sequence_results",
    "require",
    "network_error",
    "timeout_error",
    "external_service_unavailable",
    "rate_limited",
    "generation_failed",
    "invalid_model_output",
    "validation_error",
    "required_field",
    "invalid_format",
    "db_error",
    "not_found",
    "duplicate_key",
    "foreign_key_violation",
    "db_connection_failed",
    "transaction_failed",
    "business_error",
    "state_conflict",
    "precondition_failed",
    "already_graded",
    "internal_error",
    "ErrorMapper",
    "DatabaseErrorMapper",
    "ValidationErrorMapper",
    "map_errors",
    "map_db_errors",
    "AppErrorException",
    "register_error_handlers",
    "result_to_response",
    "raise_error",
    "raise_result",
]
