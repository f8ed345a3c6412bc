"""Monadic Error Handling Types

Result/Either types for deterministic, composable error propagation
between stores, engines and the HTTP boundary.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING, Callable, Generic, Iterator, NoReturn,
    TypeVar, Union, final,
)
from uuid import uuid4

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound="AppError")
F = TypeVar("F", bound="AppError")


class ErrorCode(Enum):
    """Hierarchical error code taxonomy.

    E1xxx: Network/External service failures (language model)
    E2xxx: Validation errors
    E4xxx: Database errors
    E5xxx: Business logic errors
    E9xxx: Internal/Unknown errors
    """
    # Network/External (E1xxx)
    E1000_NETWORK_GENERIC = 1000
    E1002_TIMEOUT = 1002
    E1010_EXTERNAL_SERVICE_UNAVAILABLE = 1010
    E1011_EXTERNAL_SERVICE_ERROR = 1011
    E1013_RATE_LIMITED = 1013
    E1030_GENERATION_FAILED = 1030
    E1031_GENERATION_INVALID_OUTPUT = 1031

    # Validation (E2xxx)
    E2000_VALIDATION_GENERIC = 2000
    E2001_REQUIRED_FIELD_MISSING = 2001
    E2002_INVALID_FORMAT = 2002
    E2003_OUT_OF_RANGE = 2003
    E2004_INVALID_TYPE = 2004
    E2021_INVALID_JSON = 2021

    # Database (E4xxx)
    E4000_DATABASE_GENERIC = 4000
    E4001_CONNECTION_FAILED = 4001
    E4003_TRANSACTION_FAILED = 4003
    E4010_NOT_FOUND = 4010
    E4011_DUPLICATE_KEY = 4011
    E4012_FOREIGN_KEY_VIOLATION = 4012
    E4013_CHECK_CONSTRAINT = 4013

    # Business Logic (E5xxx)
    E5000_BUSINESS_GENERIC = 5000
    E5001_OPERATION_NOT_ALLOWED = 5001
    E5002_STATE_CONFLICT = 5002
    E5003_PRECONDITION_FAILED = 5003
    E5005_ALREADY_GRADED = 5005

    # Internal (E9xxx)
    E9000_INTERNAL_GENERIC = 9000
    E9001_UNEXPECTED_ERROR = 9001
    E9002_NOT_IMPLEMENTED = 9002

    @property
    def http_status(self) -> int:
        """Map error code to appropriate HTTP status."""
        code = self.value
        if code == 1013:
            return 429
        if 1000 <= code < 1100:
            return 502 if code in (1011, 1031) else 503
        if 2000 <= code < 2100:
            return 400
        if code == 4010:
            return 404
        if 4011 <= code < 4020:
            return 409
        if 4000 <= code < 4100:
            return 503
        if 5000 <= code < 5010:
            return 409
        return 500

    @property
    def category(self) -> str:
        """Human-readable error category."""
        code = self.value
        if 1000 <= code < 2000:
            return "network"
        if 2000 <= code < 3000:
            return "validation"
        if 4000 <= code < 5000:
            return "database"
        if 5000 <= code < 6000:
            return "business"
        return "internal"

    @property
    def retryable(self) -> bool:
        """Whether a caller may safely repeat the request unchanged."""
        return self in _RETRYABLE


_RETRYABLE = frozenset({
    ErrorCode.E1000_NETWORK_GENERIC,
    ErrorCode.E1002_TIMEOUT,
    ErrorCode.E1010_EXTERNAL_SERVICE_UNAVAILABLE,
    ErrorCode.E1013_RATE_LIMITED,
    ErrorCode.E1030_GENERATION_FAILED,
    ErrorCode.E1031_GENERATION_INVALID_OUTPUT,
    ErrorCode.E4001_CONNECTION_FAILED,
    ErrorCode.E4003_TRANSACTION_FAILED,
})


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Immutable context for error tracing and debugging."""
    correlation_id: str = field(default_factory=lambda: str(uuid4())[:8])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str = ""
    user_id: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class AppError:
    """Base application error with full context.

    All errors carry:
    - Typed error code from taxonomy
    - Human-readable message
    - Structured metadata for debugging
    - Tracing context
    - Optional cause for error chaining
    """
    code: ErrorCode
    message: str
    context: ErrorContext = field(default_factory=ErrorContext)
    metadata: dict = field(default_factory=dict)
    cause: Exception | None = None

    @property
    def error_id(self) -> str:
        return f"{self.code.name}:{self.context.correlation_id}"

    def with_context(self, **kwargs) -> AppError:
        """Create new error with updated context."""
        new_ctx = ErrorContext(
            correlation_id=kwargs.get("correlation_id") or self.context.correlation_id,
            timestamp=self.context.timestamp,
            origin=kwargs.get("origin", self.context.origin),
            user_id=kwargs.get("user_id", self.context.user_id),
            request_id=kwargs.get("request_id", self.context.request_id),
        )
        return AppError(
            code=self.code,
            message=self.message,
            context=new_ctx,
            metadata={**self.metadata, **kwargs.get("metadata", {})},
            cause=self.cause,
        )

    def with_metadata(self, **kwargs) -> AppError:
        return AppError(
            code=self.code,
            message=self.message,
            context=self.context,
            metadata={**self.metadata, **kwargs},
            cause=self.cause,
        )

    def to_dict(self) -> dict:
        """Serialize error for API responses."""
        return {
            "error": {
                "code": self.code.name,
                "code_num": self.code.value,
                "message": self.message,
                "category": self.code.category,
                "retryable": self.code.retryable,
                "correlation_id": self.context.correlation_id,
                "timestamp": self.context.timestamp.isoformat(),
                "metadata": self.metadata,
            }
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (correlation_id={self.context.correlation_id})"


@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success variant of Result monad."""
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ValueError(f"Called unwrap_err on Ok: {self.value!r}")

    def map(self, f: Callable[[T], U]) -> Result[U, AppError]:
        """Transform the success value."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[AppError], F]) -> Result[T, F]:
        return self  # type: ignore

    def and_then(self, f: Callable[[T], Result[U, AppError]]) -> Result[U, AppError]:
        """Chain operations that may fail."""
        return f(self.value)

    async def and_then_async(
        self, f: Callable[[T], Awaitable[Result[U, AppError]]]
    ) -> Result[U, AppError]:
        return await f(self.value)

    def __iter__(self) -> Iterator[T]:
        yield self.value


@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure variant of Result monad."""
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        """Raises because Err has no value to unwrap."""
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_err(self) -> E:
        return self.error

    def map(self, f: Callable[[T], U]) -> Result[U, E]:
        return self  # type: ignore

    def map_err(self, f: Callable[[E], F]) -> Result[T, F]:
        """Transform the error."""
        return Err(f(self.error))

    def and_then(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return self  # type: ignore

    async def and_then_async(
        self, f: Callable[[T], Awaitable[Result[U, E]]]
    ) -> Result[U, E]:
        return self  # type: ignore

    def __iter__(self) -> Iterator:
        return iter([])


Result = Union[Ok[T], Err[E]]


def sequence_results(results: list[Result[T, AppError]]) -> Result[list[T], AppError]:
    """Sequence Results, failing fast on first error."""
    values: list[T] = []

    for r in results:
        match r:
            case Ok(v):
                values.append(v)
            case Err(e):
                return Err(e)

    return Ok(values)


def require(
    value: T | None,
    error: Err[AppError],
) -> Result[T, AppError]:
    """Convert nullable to Result, returning the given Err if None."""
    return Ok(value) if value is not None else error
