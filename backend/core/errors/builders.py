"""Domain-Specific Error Builders

Ergonomic constructors for typed errors across all domains.
Each builder returns an Err wrapping an AppError with the right code.
"""
from uuid import UUID

from .types import AppError, ErrorCode, ErrorContext, Err


# =============================================================================
# Network / Language model errors (E1xxx)
# =============================================================================

def network_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E1000_NETWORK_GENERIC,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    """Create network/external service error."""
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in metadata.items() if v is not None},
        cause=cause,
    ))


def timeout_error(
    operation: str, timeout_seconds: float, origin: str = ""
) -> Err[AppError]:
    return network_error(
        f"Operation '{operation}' timed out after {timeout_seconds}s",
        code=ErrorCode.E1002_TIMEOUT,
        origin=origin,
        operation=operation,
        timeout_seconds=timeout_seconds,
    )


def external_service_unavailable(
    service: str, reason: str = "", origin: str = ""
) -> Err[AppError]:
    msg = f"External service '{service}' unavailable"
    if reason:
        msg += f": {reason}"
    return network_error(
        msg,
        code=ErrorCode.E1010_EXTERNAL_SERVICE_UNAVAILABLE,
        origin=origin,
        service=service,
    )


def rate_limited(
    service: str, retry_after: float | None = None, origin: str = ""
) -> Err[AppError]:
    return network_error(
        f"Rate limited by '{service}'",
        code=ErrorCode.E1013_RATE_LIMITED,
        origin=origin,
        service=service,
        retry_after=retry_after,
    )


def generation_failed(
    reason: str, *, origin: str = "", cause: Exception | None = None
) -> Err[AppError]:
    """The language model call itself failed."""
    return network_error(
        f"Exercise temporarily unavailable: {reason}",
        code=ErrorCode.E1030_GENERATION_FAILED,
        origin=origin,
        cause=cause,
    )


def invalid_model_output(
    reason: str, *, raw: str | None = None, origin: str = ""
) -> Err[AppError]:
    """The language model answered but the payload is unusable."""
    return network_error(
        f"Exercise temporarily unavailable: invalid model output ({reason})",
        code=ErrorCode.E1031_GENERATION_INVALID_OUTPUT,
        origin=origin,
        reason=reason,
        raw_preview=raw[:200] if raw else None,
    )


# =============================================================================
# Validation Errors (E2xxx)
# =============================================================================

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC,
    field: str | None = None,
    value: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    """Create validation error."""
    meta = {"field": field, "value": value, **metadata}
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in meta.items() if v is not None},
    ))


def required_field(field: str, origin: str = "") -> Err[AppError]:
    return validation_error(
        f"Required field '{field}' is missing",
        code=ErrorCode.E2001_REQUIRED_FIELD_MISSING,
        field=field,
        origin=origin,
    )


def invalid_format(
    field: str, expected: str, got: str | None = None, origin: str = ""
) -> Err[AppError]:
    msg = f"Invalid format for '{field}': expected {expected}"
    if got:
        msg += f", got '{got}'"
    return validation_error(
        msg,
        code=ErrorCode.E2002_INVALID_FORMAT,
        field=field,
        expected=expected,
        origin=origin,
    )


# =============================================================================
# Database Errors (E4xxx)
# =============================================================================

def db_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E4000_DATABASE_GENERIC,
    table: str | None = None,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    """Create database error."""
    meta = {"table": table, **metadata}
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in meta.items() if v is not None},
        cause=cause,
    ))


def not_found(
    entity: str,
    id: str | UUID | None = None,
    origin: str = "",
) -> Err[AppError]:
    msg = f"{entity} not found"
    if id:
        msg += f": {id}"
    return db_error(
        msg,
        code=ErrorCode.E4010_NOT_FOUND,
        entity=entity,
        entity_id=str(id) if id else None,
        origin=origin,
    )


def duplicate_key(
    entity: str, field: str, value: str, origin: str = ""
) -> Err[AppError]:
    return db_error(
        f"{entity} with {field}='{value}' already exists",
        code=ErrorCode.E4011_DUPLICATE_KEY,
        entity=entity,
        field=field,
        value=value,
        origin=origin,
    )


def foreign_key_violation(
    entity: str, reference: str, origin: str = ""
) -> Err[AppError]:
    return db_error(
        f"Referenced {reference} does not exist for {entity}",
        code=ErrorCode.E4012_FOREIGN_KEY_VIOLATION,
        entity=entity,
        reference=reference,
        origin=origin,
    )


def db_connection_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    msg = "Database connection failed"
    if reason:
        msg += f": {reason}"
    return db_error(
        msg,
        code=ErrorCode.E4001_CONNECTION_FAILED,
        origin=origin,
    )


def transaction_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    msg = "Database transaction failed"
    if reason:
        msg += f": {reason}"
    return db_error(
        msg,
        code=ErrorCode.E4003_TRANSACTION_FAILED,
        origin=origin,
    )


# =============================================================================
# Business Logic Errors (E5xxx)
# =============================================================================

def business_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E5000_BUSINESS_GENERIC,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    """Create business logic error."""
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
    ))


def state_conflict(
    entity: str, current_state: str, required_state: str, origin: str = ""
) -> Err[AppError]:
    return business_error(
        f"{entity} is in '{current_state}' state, requires '{required_state}'",
        code=ErrorCode.E5002_STATE_CONFLICT,
        entity=entity,
        current_state=current_state,
        required_state=required_state,
        origin=origin,
    )


def precondition_failed(
    condition: str, reason: str = "", origin: str = ""
) -> Err[AppError]:
    msg = f"Precondition failed: {condition}"
    if reason:
        msg += f" ({reason})"
    return business_error(
        msg,
        code=ErrorCode.E5003_PRECONDITION_FAILED,
        condition=condition,
        origin=origin,
    )


def already_graded(
    attempt_id: str | UUID, is_correct: bool | None = None, origin: str = ""
) -> Err[AppError]:
    return business_error(
        f"Attempt {attempt_id} has already been graded",
        code=ErrorCode.E5005_ALREADY_GRADED,
        attempt_id=str(attempt_id),
        is_correct=is_correct,
        origin=origin,
    )


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================

def internal_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E9001_UNEXPECTED_ERROR,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    """Create internal/unexpected error."""
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata=metadata,
        cause=cause,
    ))


