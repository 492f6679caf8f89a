"""
Unit tests for middleware.
"""

import json
import logging

import pytest

from routewire.http.request import RawRequest, build_request
from routewire.http.response import Response
from routewire.middleware import (
    CORSConfig,
    CORSMiddleware,
    FunctionMiddleware,
    LoggingMiddleware,
    MiddlewarePipeline,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    TokenBucket,
    function_middleware,
)


def make_request(method: str = "GET", path: str = "/", headers=None, remote_address: str = "10.0.0.1"):
    return build_request(RawRequest(method=method, path=path, headers=headers, remote_address=remote_address))


def ok_handler(req, res):
    res.json({"ok": True})


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMiddlewarePipeline:
    """Tests for chain assembly."""

    def test_first_added_is_outermost(self):
        calls = []

        def tracer(label):
            def middleware(req, res, next):
                calls.append(f"{label}:in")
                next(req, res)
                calls.append(f"{label}:out")
            return FunctionMiddleware(middleware, name=label)

        pipeline = MiddlewarePipeline().use(tracer("a"), tracer("b"))
        handler = pipeline.wrap(lambda req, res: calls.append("handler"))
        handler(make_request(), Response())

        assert calls == ["a:in", "b:in", "handler", "b:out", "a:out"]
        assert [m.name for m in pipeline] == ["a", "b"]
        assert len(pipeline) == 2

    def test_short_circuit_skips_handler(self):
        @function_middleware
        def require_token(req, res, next):
            if not req.bearer_token:
                res.error(401, "Missing token")
                return
            next(req, res)

        handler = MiddlewarePipeline().add(require_token).wrap(ok_handler)

        denied = Response()
        handler(make_request(), denied)
        assert denied.status_code == 401

        allowed = Response()
        handler(make_request(headers={"Authorization": "Bearer t"}), allowed)
        assert allowed.status_code == 200

    def test_empty_pipeline_returns_handler(self):
        assert MiddlewarePipeline().wrap(ok_handler) is ok_handler


class TestCORSMiddleware:
    """Tests for CORS."""

    def test_preflight_short_circuits(self):
        called = []
        handler = MiddlewarePipeline().add(CORSMiddleware()).wrap(lambda req, res: called.append(True))
        response = Response()

        handler(make_request("OPTIONS", "/api", headers={"Origin": "https://app.example"}), response)

        assert called == []
        assert response.status_code == 204
        assert response.get("Access-Control-Allow-Origin") == "*"
        assert response.get("Access-Control-Allow-Methods") == "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        assert response.get("Vary") == "Origin"

    def test_simple_request_gets_origin(self):
        handler = MiddlewarePipeline().add(CORSMiddleware()).wrap(ok_handler)
        response = Response()

        handler(make_request(headers={"Origin": "https://app.example"}), response)

        assert response.status_code == 200
        assert response.get("Access-Control-Allow-Origin") == "*"

    def test_allow_list(self):
        config = CORSConfig(allow_origins=["https://app.example"], allow_credentials=True)
        handler = MiddlewarePipeline().add(CORSMiddleware(config)).wrap(ok_handler)

        allowed = Response()
        handler(make_request(headers={"Origin": "https://app.example"}), allowed)
        assert allowed.get("Access-Control-Allow-Origin") == "https://app.example"
        assert allowed.get("Access-Control-Allow-Credentials") == "true"

        blocked = Response()
        handler(make_request(headers={"Origin": "https://evil.example"}), blocked)
        assert blocked.get("Access-Control-Allow-Origin") == ""

    def test_wildcard_with_credentials_echoes_origin(self):
        config = CORSConfig(allow_credentials=True)

        assert config.resolve_origin("https://app.example") == "https://app.example"
        assert config.resolve_origin("") == "*"


class TestRateLimitMiddleware:
    """Tests for the token bucket limiter."""

    def test_token_bucket(self):
        bucket = TokenBucket.full(2, 1.0, now=0.0)

        assert bucket.consume(0.0) is True
        assert bucket.consume(0.0) is True
        assert bucket.consume(0.0) is False
        assert bucket.time_until_available(0.5) == pytest.approx(0.5)
        assert bucket.consume(1.0) is True

    def test_allows_burst_then_rejects(self):
        clock = FakeClock()
        limiter = RateLimitMiddleware(requests_per_second=1, burst_size=2, clock=clock)
        handler = MiddlewarePipeline().add(limiter).wrap(ok_handler)

        first, second, third = Response(), Response(), Response()
        handler(make_request(), first)
        handler(make_request(), second)
        handler(make_request(), third)

        assert first.status_code == 200
        assert first.get("X-RateLimit-Limit") == "2"
        assert first.get("X-RateLimit-Remaining") == "1"
        assert second.get("X-RateLimit-Remaining") == "0"

        assert third.status_code == 429
        assert third.get("Retry-After") == "1"
        assert third.get("X-RateLimit-Remaining") == "0"
        assert json.loads(third.body)["error"] is True

    def test_clients_are_independent(self):
        limiter = RateLimitMiddleware(requests_per_second=1, burst_size=1, clock=FakeClock())
        handler = MiddlewarePipeline().add(limiter).wrap(ok_handler)

        a, b = Response(), Response()
        handler(make_request(remote_address="10.0.0.1"), Response())
        handler(make_request(remote_address="10.0.0.1"), a)
        handler(make_request(remote_address="10.0.0.2"), b)

        assert a.status_code == 429
        assert b.status_code == 200
        assert limiter.tracked_clients == 2

    def test_refill_over_time(self):
        clock = FakeClock()
        limiter = RateLimitMiddleware(requests_per_second=1, burst_size=1, clock=clock)
        handler = MiddlewarePipeline().add(limiter).wrap(ok_handler)

        handler(make_request(), Response())
        clock.now = 1.0
        response = Response()
        handler(make_request(), response)

        assert response.status_code == 200

    def test_idle_buckets_cleaned_up(self):
        clock = FakeClock()
        limiter = RateLimitMiddleware(clock=clock, cleanup_interval=10, bucket_ttl=30)
        handler = MiddlewarePipeline().add(limiter).wrap(ok_handler)

        handler(make_request(remote_address="10.0.0.1"), Response())
        clock.now = 100.0
        handler(make_request(remote_address="10.0.0.2"), Response())

        assert limiter.tracked_clients == 1

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            RateLimitMiddleware(requests_per_second=0)


class TestSecurityHeadersMiddleware:
    """Tests for security headers."""

    def test_adds_headers(self):
        handler = MiddlewarePipeline().add(SecurityHeadersMiddleware()).wrap(ok_handler)
        response = Response()
        handler(make_request(), response)

        assert response.get("X-Frame-Options") == "DENY"
        assert response.get("X-Content-Type-Options") == "nosniff"
        assert response.content_type == "application/json; charset=utf-8"

    def test_keeps_handler_values(self):
        def framed(req, res):
            res.set("X-Frame-Options", "SAMEORIGIN").text("embed me")

        handler = MiddlewarePipeline().add(SecurityHeadersMiddleware()).wrap(framed)
        response = Response()
        handler(make_request(), response)

        assert response.get("X-Frame-Options") == "SAMEORIGIN"

    def test_hsts_only_secure(self):
        handler = MiddlewarePipeline().add(SecurityHeadersMiddleware(hsts_only_secure=True)).wrap(ok_handler)
        response = Response()
        handler(make_request(), response)

        assert response.get("Strict-Transport-Security") == ""


class TestLoggingMiddleware:
    """Tests for access logging."""

    def test_text_line(self, caplog):
        handler = MiddlewarePipeline().add(LoggingMiddleware()).wrap(ok_handler)

        with caplog.at_level(logging.INFO, logger="routewire.access"):
            handler(make_request("GET", "/users"), Response())

        assert len(caplog.records) == 1
        message = caplog.records[0].getMessage()
        assert message.startswith("10.0.0.1 - - [")
        assert '"GET /users" 200 12 ' in message

    def test_json_line(self, caplog):
        handler = MiddlewarePipeline().add(LoggingMiddleware(log_format="json")).wrap(ok_handler)

        with caplog.at_level(logging.INFO, logger="routewire.access"):
            handler(make_request("GET", "/users", headers={"X-Request-ID": "abc"}), Response())

        entry = json.loads(caplog.records[0].getMessage())
        assert entry["request_id"] == "abc"
        assert entry["path"] == "/users"
        assert entry["status_code"] == 200

    def test_skip_paths(self, caplog):
        handler = MiddlewarePipeline().add(LoggingMiddleware(skip_paths=["/health"])).wrap(ok_handler)

        with caplog.at_level(logging.INFO, logger="routewire.access"):
            handler(make_request("GET", "/health"), Response())

        assert caplog.records == []

    def test_failure_logged_and_reraised(self, caplog):
        def broken(req, res):
            raise ValueError("bad")

        handler = MiddlewarePipeline().add(LoggingMiddleware()).wrap(broken)

        with caplog.at_level(logging.INFO, logger="routewire.access"):
            with pytest.raises(ValueError):
                handler(make_request("GET", "/x"), Response())

        assert caplog.records[0].levelno == logging.ERROR
        assert "Request failed: GET /x - ValueError: bad" in caplog.records[0].getMessage()

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")
