"""Unit tests for the central error translator."""

import json

import pytest
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

from backend.app.api.errors import error_response
from backend.app.config import Settings
from backend.app.errors import (
    AccountDisabled,
    ApiError,
    Conflict,
    Forbidden,
    InvalidQuery,
    NotFound,
    OwnerRequired,
    RateLimitExceeded,
    Unauthenticated,
)


def _body(response) -> dict:  # type: ignore[no-untyped-def]
    return json.loads(response.body)


@pytest.fixture
def dev_settings() -> Settings:
    return Settings(environment="development", database_url=None)


@pytest.fixture
def prod_settings() -> Settings:
    return Settings(environment="production", database_url=None)


@pytest.mark.parametrize(
    "exc,status",
    [
        (Unauthenticated(), 401),
        (AccountDisabled(), 401),
        (Forbidden(), 403),
        (OwnerRequired(), 403),
        (NotFound(), 404),
        (Conflict(), 409),
        (InvalidQuery(), 400),
        (RateLimitExceeded(30), 429),
    ],
)
def test_taxonomy_status_codes(exc: ApiError, status: int, prod_settings: Settings) -> None:
    response = error_response(exc, prod_settings)

    assert response.status_code == status
    assert _body(response) == {"message": exc.message}


def test_unauthenticated_sets_www_authenticate(prod_settings: Settings) -> None:
    response = error_response(Unauthenticated(), prod_settings)

    assert response.headers["www-authenticate"] == "Bearer"


def test_rate_limit_sets_retry_after(prod_settings: Settings) -> None:
    response = error_response(RateLimitExceeded(42), prod_settings)

    assert response.headers["retry-after"] == "42"


def test_http_exception_passthrough(prod_settings: Settings) -> None:
    response = error_response(HTTPException(status_code=405, detail="Method Not Allowed"), prod_settings)

    assert response.status_code == 405
    assert _body(response) == {"message": "Method Not Allowed"}


def test_validation_error_is_400(prod_settings: Settings) -> None:
    exc = RequestValidationError(
        [{"loc": ("body", "title"), "msg": "Field required", "type": "missing"}]
    )

    response = error_response(exc, prod_settings)

    assert response.status_code == 400
    assert _body(response) == {"message": "title: Field required"}


def test_unexpected_error_hides_stack_in_production(prod_settings: Settings) -> None:
    response = error_response(RuntimeError("db password is hunter2"), prod_settings)

    assert response.status_code == 500
    assert _body(response) == {"message": "Internal server error"}


def test_unexpected_error_includes_stack_outside_production(dev_settings: Settings) -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        response = error_response(e, dev_settings)

    body = _body(response)
    assert response.status_code == 500
    assert body["message"] == "Internal server error"
    assert "RuntimeError: boom" in body["stack"]


def test_client_errors_never_include_stack(dev_settings: Settings) -> None:
    assert "stack" not in _body(error_response(NotFound(), dev_settings))
