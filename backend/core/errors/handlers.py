"""FastAPI Exception Handlers

Integrates the monadic error handling system with FastAPI's exception
handling. Converts AppErrors, request validation errors and standard
exceptions to structured HTTP responses.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging import get_logger

from .boundaries import ValidationErrorMapper
from .types import AppError, ErrorCode, ErrorContext, Result

log = get_logger("errors.handlers")

_validation_mapper: ValidationErrorMapper = ValidationErrorMapper("request_validation")


class AppErrorException(Exception):
    """Exception wrapper for AppError.

    Raised from route handlers, which do not return Results.
    """

    def __init__(self, error: AppError):
        self.error = error
        super().__init__(str(error))


def result_to_response(error: AppError) -> JSONResponse:
    """Convert AppError to FastAPI JSONResponse."""
    status_code = error.code.http_status

    log_method = log.warning if status_code < 500 else log.error
    log_method(
        "error_response",
        error_code=error.code.name,
        error_code_num=error.code.value,
        message=error.message,
        category=error.code.category,
        correlation_id=error.context.correlation_id,
        origin=error.context.origin,
        metadata=error.metadata,
    )

    return JSONResponse(
        status_code=status_code,
        content=error.to_dict(),
    )


def _request_context(request: Request) -> dict:
    return {
        "correlation_id": getattr(request.state, "correlation_id", None)
        or request.headers.get("X-Correlation-ID", ""),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_error_handler(request: Request, exc: AppErrorException) -> JSONResponse:
    return result_to_response(exc.error.with_context(**_request_context(request)))


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle standard HTTP exceptions with structured error response."""
    status_code = exc.status_code
    code_map = {
        400: ErrorCode.E2000_VALIDATION_GENERIC,
        404: ErrorCode.E4010_NOT_FOUND,
        405: ErrorCode.E5001_OPERATION_NOT_ALLOWED,
        409: ErrorCode.E5002_STATE_CONFLICT,
        422: ErrorCode.E2000_VALIDATION_GENERIC,
        429: ErrorCode.E1013_RATE_LIMITED,
    }

    code = code_map.get(status_code)
    if code is None:
        code = ErrorCode.E9001_UNEXPECTED_ERROR if status_code >= 500 else ErrorCode.E9000_INTERNAL_GENERIC

    error = AppError(
        code=code,
        message=str(exc.detail) if exc.detail else f"HTTP {status_code}",
        context=ErrorContext(
            correlation_id=_request_context(request)["correlation_id"],
            origin="http",
        ),
    )

    return result_to_response(error)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body/query validation failures as E2xxx errors (400)."""
    error = _validation_mapper.map_exception(exc).with_context(
        origin="request_validation",
        **_request_context(request),
    )
    return result_to_response(error)


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all handler: converts to internal error and logs the traceback."""
    error = AppError(
        code=ErrorCode.E9001_UNEXPECTED_ERROR,
        message="An unexpected error occurred",
        context=ErrorContext(
            correlation_id=_request_context(request)["correlation_id"],
            origin="unhandled",
        ),
        cause=exc,
    )

    log.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error_message=str(exc),
        correlation_id=error.context.correlation_id,
    )

    return result_to_response(error)


def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers on FastAPI app."""
    app.add_exception_handler(AppErrorException, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def raise_error(error: AppError) -> None:
    """Raise AppError as exception.

    Usage:
        if not session:
            raise_error(not_found("LearningSession", session_id).error)
    """
    raise AppErrorException(error)


def raise_result(result: Result) -> None:
    """Raise error if Result is Err, otherwise return.

    Usage:
        result = await service.submit(...)
        raise_result(result)  # Raises if Err
        return result.unwrap()
    """
    if result.is_err():
        raise AppErrorException(result.unwrap_err())
