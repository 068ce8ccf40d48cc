# src/resilience/tests/test_api/test_error_handlers.py
import logging
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from resilience.api import error_handlers
from resilience.api.error_handlers import GENERIC_ERROR_MESSAGE, register_exception_handlers
from resilience.core.logging.middleware import RequestIDMiddleware
from resilience.exceptions.base import StructuredError
from resilience.exceptions.codes import ErrorCode
from resilience.retry.engine import with_retry
from resilience.retry.policy import RetryPolicy


def create_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)

    @app.get("/users/{user_id}")
    async def get_user(user_id: int):
        raise StructuredError.of(ErrorCode.NOT_FOUND, "User not found", details={"user_id": user_id})

    @app.get("/limited")
    async def limited():
        raise StructuredError.of(ErrorCode.RATE_LIMIT_EXCEEDED, "Too many requests")

    @app.get("/items")
    async def list_items(limit: int):
        return {"limit": limit}

    @app.get("/crash")
    async def crash():
        raise RuntimeError("database password leaked in message")

    @app.get("/accounts/{account_id}")
    async def get_account(account_id: int):
        async def lookup():
            raise StructuredError.of(ErrorCode.NOT_FOUND, "missing")

        return await with_retry(lookup, RetryPolicy(max_retries=3))

    @app.get("/reports")
    async def build_report():
        async def render():
            raise TypeError("bad operand")

        return await with_retry(render, RetryPolicy(max_retries=3))

    return app


@pytest.fixture()
def client():
    # unhandled errors must come back as responses, not be re-raised into the test
    return TestClient(create_app(), raise_server_exceptions=False)


def test_structured_error_envelope(client):
    resp = client.get("/users/7", headers={"X-Request-ID": "req-7"})

    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["message"] == "User not found"
    assert body["error"]["details"] == {"user_id": 7}
    assert body["error"]["traceId"] == "req-7"
    assert body["error"]["path"] == "/users/7"
    assert "timestamp" in body["error"]


def test_status_follows_code(client):
    assert client.get("/limited").status_code == 429


def test_request_validation_error(client):
    resp = client.get("/items", params={"limit": "many"})

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "query.limit"


def test_unhandled_error_outside_production(client):
    resp = client.get("/crash")

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert error["message"] == "database password leaked in message"


def test_unhandled_error_hidden_in_production(client, monkeypatch):
    monkeypatch.setattr(error_handlers, "get_settings", lambda: SimpleNamespace(is_production=True))

    resp = client.get("/crash")

    assert resp.status_code == 500
    assert resp.json()["error"]["message"] == GENERIC_ERROR_MESSAGE


def test_each_failure_logged_once(client, caplog):
    caplog.set_level(logging.INFO, logger="resilience.failures")

    client.get("/users/1", headers={"X-Request-ID": "req-1"})

    records = [r for r in caplog.records if r.name == "resilience.failures"]
    assert len(records) == 1
    assert records[0].levelno == logging.INFO  # NOT_FOUND is low severity
    assert records[0].request_id == "req-1"
    assert records[0].context["method"] == "GET"


@pytest.mark.parametrize(
    "path, status, message",
    [
        ("/accounts/3", 404, "Non-retryable error encountered"),
        ("/reports", 500, "Non-retryable error encountered"),
    ],
)
def test_failure_reported_by_retry_not_logged_again(client, caplog, path, status, message):
    caplog.set_level(logging.INFO, logger="resilience.failures")

    resp = client.get(path)

    assert resp.status_code == status
    records = [r for r in caplog.records if r.name == "resilience.failures" and hasattr(r, "error")]
    assert [r.getMessage() for r in records] == [message]
