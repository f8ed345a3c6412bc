"""Error Boundary Mappers

Module boundary error mapping for clean error propagation.
Each store/engine has a single error type at its boundary, with
library exceptions (SQLAlchemy, OpenAI, pydantic) mapped there.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from functools import wraps
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy.exc import (
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
)

from .types import (
    AppError,
    ErrorCode,
    ErrorContext,
    Err,
    Ok,
    Result,
)
from .builders import (
    db_connection_failed,
    duplicate_key,
    foreign_key_violation,
    internal_error,
    timeout_error,
    transaction_failed,
)

T = TypeVar("T")


class ErrorMapper(ABC, Generic[T]):
    """Abstract base for error mappers at module boundaries."""

    @abstractmethod
    def map_error(self, error: AppError) -> AppError:
        """Map internal error to boundary error."""

    @abstractmethod
    def map_exception(self, exc: Exception) -> AppError:
        """Map a raised exception to boundary error."""

    def map_result(self, result: Result[T, AppError]) -> Result[T, AppError]:
        """Map errors in Result while preserving success values."""
        match result:
            case Ok(_):
                return result
            case Err(e):
                return Err(self.map_error(e))


class DatabaseErrorMapper(ErrorMapper[T]):
    """Maps SQLAlchemy exceptions to storage errors (E4xxx)."""

    def __init__(self, origin: str = "database"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if 4000 <= error.code.value < 5000:
            return error
        return error.with_context(origin=self.origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, IntegrityError):
            return self._map_integrity_error(exc)
        if isinstance(exc, OperationalError):
            return self._map_operational_error(exc)
        if isinstance(exc, SQLAlchemyError):
            return transaction_failed(str(exc), origin=self.origin).error

        return internal_error(
            f"Database error: {exc}",
            origin=self.origin,
            cause=exc,
        ).error

    def _map_integrity_error(self, exc: IntegrityError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "duplicate key" in lowered or "unique constraint" in lowered:
            return duplicate_key(
                entity="record",
                field="unknown",
                value="unknown",
                origin=self.origin,
            ).error

        if "foreign key" in lowered:
            return foreign_key_violation(
                entity="record",
                reference="unknown",
                origin=self.origin,
            ).error

        return AppError(
            code=ErrorCode.E4013_CHECK_CONSTRAINT,
            message=f"Constraint violation: {message}",
            context=ErrorContext(origin=self.origin),
            cause=exc,
        )

    def _map_operational_error(self, exc: OperationalError) -> AppError:
        message = str(exc.orig) if exc.orig else str(exc)
        lowered = message.lower()

        if "timeout" in lowered:
            return timeout_error("database query", 30.0, origin=self.origin).error

        if "connection" in lowered or "connect" in lowered or "unable to open" in lowered:
            return db_connection_failed(message, origin=self.origin).error

        return transaction_failed(message, origin=self.origin).error


class ValidationErrorMapper(ErrorMapper[T]):
    """Maps pydantic validation errors to E2xxx errors."""

    def __init__(self, origin: str = "validation"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if 2000 <= error.code.value < 3000:
            return error
        return error.with_context(origin=self.origin)

    def map_exception(self, exc: Exception) -> AppError:
        errors = exc.errors() if hasattr(exc, "errors") else []
        if not errors:
            return AppError(
                code=ErrorCode.E2000_VALIDATION_GENERIC,
                message=str(exc),
                context=ErrorContext(origin=self.origin),
            )
        return self.combine(self.map_pydantic_errors(errors))

    def map_pydantic_errors(self, errors: list[dict]) -> list[AppError]:
        """Map pydantic v2 error dicts to AppErrors."""
        result = []
        for err in errors:
            field = ".".join(str(loc) for loc in err.get("loc", []))
            msg = err.get("msg", "Validation error")
            err_type = err.get("type", "value_error")

            if err_type == "missing":
                code = ErrorCode.E2001_REQUIRED_FIELD_MISSING
            elif err_type.endswith("_type") or err_type.endswith("_parsing"):
                code = ErrorCode.E2004_INVALID_TYPE
            elif err_type in ("json_invalid", "json_type"):
                code = ErrorCode.E2021_INVALID_JSON
            elif err_type == "value_error":
                code = ErrorCode.E2002_INVALID_FORMAT
            else:
                code = ErrorCode.E2000_VALIDATION_GENERIC

            result.append(AppError(
                code=code,
                message=f"{field}: {msg}" if field else msg,
                context=ErrorContext(origin=self.origin),
                metadata={"field": field, "error_type": err_type},
            ))

        return result

    def combine(self, errors: list[AppError]) -> AppError:
        """Fold several field errors into one response error."""
        if len(errors) == 1:
            return errors[0]
        codes = {e.code for e in errors}
        code = codes.pop() if len(codes) == 1 else ErrorCode.E2000_VALIDATION_GENERIC
        return AppError(
            code=code,
            message="; ".join(e.message for e in errors),
            context=ErrorContext(origin=self.origin),
            metadata={"fields": [e.metadata.get("field") for e in errors]},
        )


def map_errors(mapper: ErrorMapper[T]):
    """Decorator to map errors at function boundaries.

    Usage:
        @map_errors(DatabaseErrorMapper("attempt_store"))
        async def grade(...) -> Result[GradedResult, AppError]:
            ...
    """
    def decorator(fn: Callable[..., Awaitable[Result[T, AppError]]]):
        @wraps(fn)
        async def wrapper(*args, **kwargs) -> Result[T, AppError]:
            try:
                result = await fn(*args, **kwargs)
                return mapper.map_result(result)
            except Exception as e:
                return Err(mapper.map_exception(e))
        return wrapper
    return decorator


def map_db_errors(origin: str = "database"):
    """Convenience decorator for database error mapping."""
    return map_errors(DatabaseErrorMapper(origin))
