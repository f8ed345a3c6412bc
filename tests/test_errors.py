import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from core.errors import (
    DatabaseErrorMapper,
    Err,
    ErrorCode,
    Ok,
    ValidationErrorMapper,
    already_graded,
    invalid_model_output,
    map_db_errors,
    not_found,
    raise_result,
    register_error_handlers,
    require,
    sequence_results,
)


@pytest.mark.parametrize("code, status", [
    (ErrorCode.E1002_TIMEOUT, 503),
    (ErrorCode.E1010_EXTERNAL_SERVICE_UNAVAILABLE, 503),
    (ErrorCode.E1013_RATE_LIMITED, 429),
    (ErrorCode.E1030_GENERATION_FAILED, 503),
    (ErrorCode.E1031_GENERATION_INVALID_OUTPUT, 502),
    (ErrorCode.E2001_REQUIRED_FIELD_MISSING, 400),
    (ErrorCode.E4001_CONNECTION_FAILED, 503),
    (ErrorCode.E4010_NOT_FOUND, 404),
    (ErrorCode.E4011_DUPLICATE_KEY, 409),
    (ErrorCode.E5003_PRECONDITION_FAILED, 409),
    (ErrorCode.E5005_ALREADY_GRADED, 409),
    (ErrorCode.E9001_UNEXPECTED_ERROR, 500),
])
def test_http_status_mapping(code, status):
    assert code.http_status == status


def test_retryable_codes():
    assert ErrorCode.E1030_GENERATION_FAILED.retryable
    assert ErrorCode.E4003_TRANSACTION_FAILED.retryable
    assert not ErrorCode.E5005_ALREADY_GRADED.retryable
    assert not ErrorCode.E2002_INVALID_FORMAT.retryable


def test_error_to_dict():
    error = already_graded("abc", True, origin="attempt_store").error
    body = error.to_dict()["error"]

    assert body["code"] == "E5005_ALREADY_GRADED"
    assert body["category"] == "business"
    assert body["retryable"] is False
    assert body["metadata"]["attempt_id"] == "abc"


def test_invalid_model_output_truncates_raw():
    error = invalid_model_output("bad", raw="x" * 500).error

    assert len(error.metadata["raw_preview"]) == 200


def test_result_helpers():
    assert sequence_results([Ok(1), Ok(2)]).unwrap() == [1, 2]
    assert sequence_results([Ok(1), not_found("Thing", "1")]).is_err()
    assert require(None, not_found("Thing", "x")).is_err()
    assert require(5, not_found("Thing", "x")).unwrap() == 5
    assert Ok(2).map(lambda v: v * 3).unwrap() == 6
    assert Err("e").unwrap_or(7) == 7


def test_database_mapper():
    mapper = DatabaseErrorMapper("tests")

    dup = mapper.map_exception(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: t.id")))
    conn = mapper.map_exception(OperationalError("SELECT", {}, Exception("unable to open database file")))

    assert dup.code == ErrorCode.E4011_DUPLICATE_KEY
    assert conn.code == ErrorCode.E4001_CONNECTION_FAILED


async def test_map_db_errors_catches_exceptions():
    @map_db_errors("tests")
    async def broken():
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    result = await broken()

    assert result.unwrap_err().code == ErrorCode.E4003_TRANSACTION_FAILED


def test_validation_mapper():
    class Body(BaseModel):
        name: str
        count: int

    with pytest.raises(ValidationError) as info:
        Body.model_validate({"count": "many"})

    error = ValidationErrorMapper("tests").map_exception(info.value)

    assert error.code == ErrorCode.E2000_VALIDATION_GENERIC
    assert set(error.metadata["fields"]) == {"name", "count"}


async def test_handlers_render_structured_errors():
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/missing")
    async def missing():
        raise_result(not_found("Widget", "42"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        missing_resp = await client.get("/missing", headers={"X-Correlation-ID": "corr-1"})
        boom_resp = await client.get("/boom")

    assert missing_resp.status_code == 404
    assert missing_resp.json()["error"]["correlation_id"] == "corr-1"
    assert boom_resp.status_code == 500
    assert boom_resp.json()["error"]["code"] == "E9001_UNEXPECTED_ERROR"
