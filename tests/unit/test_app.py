"""
Unit tests for App.dispatch.
"""

import logging
import re
import threading

import pytest

from routewire import App, AppConfig, RequestStats
from routewire import app as app_module
from routewire.http.response import ResponseEndedError


class TestDispatch:
    """Tests for the request lifecycle."""

    def test_matched_route(self, app, make_raw):
        reply = app.dispatch(make_raw("GET", "/users/42"))

        assert reply.status_code == 200
        assert reply.reason == "OK"
        assert reply.json() == {"id": "42"}

    def test_json_body_echo(self, app, make_raw):
        reply = app.dispatch(make_raw(
            "POST", "/echo",
            body=b'{"name": "John"}',
            headers={"Content-Type": "application/json"},
        ))

        assert reply.json() == {"received": {"name": "John"}}

    def test_unmatched_is_404_envelope(self, app, make_raw):
        reply = app.dispatch(make_raw("GET", "/nope"))
        body = reply.json()

        assert reply.status_code == 404
        assert body["error"] is True
        assert body["message"] == "Cannot GET /nope"

    def test_method_mismatch_is_404(self, app, make_raw):
        reply = app.dispatch(make_raw("DELETE", "/test"))

        assert reply.status_code == 404
        assert reply.json()["message"] == "Cannot DELETE /test"

    def test_create_with_success_envelope(self, make_raw):
        app = App()

        @app.post("/users")
        def create_user(req, res):
            res.status(201).success(req.parsed_body, "Created")

        reply = app.dispatch(make_raw(
            "POST", "/users",
            body=b'{"name": "Ada"}',
            headers={"Content-Type": "application/json"},
        ))

        assert reply.status_code == 201
        assert reply.json() == {"success": True, "message": "Created", "data": {"name": "Ada"}}

    def test_strict_route_does_not_match_shorter_path(self, app, make_raw):
        assert app.dispatch(make_raw("GET", "/users")).status_code == 404

    def test_lenient_routing(self, make_raw):
        app = App(AppConfig(strict_routing=False))
        app.get("/user/:id")(lambda req, res: res.json(req.params))

        assert app.dispatch(make_raw("GET", "/user")).json() == {}

    def test_stamped_headers(self, app, make_raw):
        reply = app.dispatch(make_raw("GET", "/test", headers={"X-Request-ID": "req-1"}))

        assert reply.header("X-Powered-By") == "routewire"
        assert reply.header("X-Request-ID") == "req-1"
        assert re.match(r"^\d+\.\d{2}ms$", reply.header("X-Response-Time"))
        assert re.match(r"^total;dur=\d+\.\d{2}$", reply.header("Server-Timing"))

    def test_powered_by_disabled(self, make_raw):
        app = App(AppConfig(powered_by=""))

        assert app.dispatch(make_raw("GET", "/health")).header("X-Powered-By") == ""

    def test_route_params_reach_handler_only(self, make_raw):
        app = App()
        seen = []

        @app.use
        def capture(req, res, next):
            seen.append(dict(req.params))
            next(req, res)

        app.get("/items/:sku")(lambda req, res: seen.append(dict(req.params)))
        app.dispatch(make_raw("GET", "/items/A-1"))

        assert seen == [{}, {"sku": "A-1"}]


class TestFailures:
    """Tests for error handling in the pipeline."""

    def test_handler_exception_becomes_500(self, app, make_raw, caplog):
        with caplog.at_level(logging.ERROR, logger="routewire.app"):
            reply = app.dispatch(make_raw("GET", "/boom"))
        body = reply.json()

        assert reply.status_code == 500
        assert body["error"] is True
        assert body["message"] == "Internal Server Error"
        assert "details" not in body
        assert any("Unhandled error in GET /boom" in r.getMessage() for r in caplog.records)
        assert caplog.records[-1].exc_info is not None

    def test_boom_counts_as_error(self, app, make_raw):
        before = app.stats.snapshot()
        app.dispatch(make_raw("GET", "/boom"))
        after = app.stats.snapshot()

        assert after["errorRequests"] == before["errorRequests"] + 1
        assert after["totalRequests"] == before["totalRequests"] + 1
        assert after["paths"] == {"/boom": 1}

    def test_expose_errors_adds_details(self, make_raw):
        app = App(AppConfig(expose_errors=True))

        @app.get("/fail")
        def fail(req, res):
            raise KeyError("missing")

        assert app.dispatch(make_raw("GET", "/fail")).json()["details"] == "KeyError: 'missing'"

    def test_failure_discards_partial_response(self, make_raw):
        app = App()

        @app.get("/partial")
        def partial(req, res):
            res.set("X-Partial", "1").json({"half": True})
            raise RuntimeError("late failure")

        reply = app.dispatch(make_raw("GET", "/partial"))

        assert reply.status_code == 500
        assert reply.header("X-Partial") == ""
        assert reply.header("X-Request-ID")

    def test_write_after_end_is_500(self, make_raw):
        app = App()

        @app.get("/twice")
        def twice(req, res):
            res.end("first")
            res.text("second")

        assert app.dispatch(make_raw("GET", "/twice")).status_code == 500

    def test_middleware_exception_becomes_500(self, make_raw):
        app = App()

        @app.use
        def broken(req, res, next):
            raise RuntimeError("middleware failure")

        assert app.dispatch(make_raw("GET", "/health")).status_code == 500

    def test_deeply_nested_json_body(self, app, make_raw):
        reply = app.dispatch(make_raw(
            "POST", "/echo",
            body=b"[" * 100000 + b"]" * 100000,
            headers={"Content-Type": "application/json"},
        ))

        assert reply.status_code == 200
        assert reply.json() == {"received": {}}

    def test_request_build_failure_becomes_500(self, app, make_raw, monkeypatch):
        real_build = app_module.build_request

        def fragile_build(raw, trust_proxy=False):
            if raw.headers:
                raise ValueError("unparseable headers")
            return real_build(raw, trust_proxy=trust_proxy)

        monkeypatch.setattr(app_module, "build_request", fragile_build)
        reply = app.dispatch(make_raw("GET", "/test", headers={"X-Odd": "1"}))

        assert reply.status_code == 500
        assert reply.json()["message"] == "Internal Server Error"
        assert app.stats.snapshot()["errorRequests"] == 1
        assert app.stats.snapshot()["activeRequests"] == 0

    def test_header_injection_becomes_500(self, make_raw):
        app = App()
        app.get("/go")(lambda req, res: res.redirect(req.query.get("to", "/")))

        reply = app.dispatch(make_raw("GET", "/go", query_params={"to": "/x\r\nSet-Cookie: admin=1"}))

        assert reply.status_code == 500
        assert reply.header("Set-Cookie") == ""
        assert reply.header("Location") == ""

    def test_after_hook_failure_becomes_500(self, make_raw):
        app = App()
        app.get("/ok")(lambda req, res: res.text("ok"))

        @app.after
        def broken(req, res):
            raise RuntimeError("after failure")

        assert app.dispatch(make_raw("GET", "/ok")).status_code == 500


class TestLifecycle:
    """Tests for registration rules and hooks."""

    def test_after_hooks_run_in_order(self, make_raw):
        app = App()
        app.get("/ok")(lambda req, res: res.text("ok"))

        @app.after
        def first(req, res):
            res.append("X-Order", "first")

        @app.after
        def second(req, res):
            res.append("X-Order", "second")

        reply = app.dispatch(make_raw("GET", "/ok"))

        assert reply.header_values("X-Order") == ["first", "second"]

    def test_after_hooks_run_on_404(self, make_raw):
        app = App()
        app.after(lambda req, res: res.set("X-After", "yes"))

        assert app.dispatch(make_raw("GET", "/missing")).header("X-After") == "yes"

    def test_registration_after_dispatch_raises(self, app, make_raw):
        app.dispatch(make_raw("GET", "/test"))

        with pytest.raises(RuntimeError):
            app.get("/late")(lambda req, res: None)
        with pytest.raises(RuntimeError):
            app.use(lambda req, res, next: next(req, res))
        with pytest.raises(RuntimeError):
            app.after(lambda req, res: None)

    def test_user_routes_take_precedence_over_builtins(self, make_raw):
        app = App()
        app.get("/health")(lambda req, res: res.text("custom"))

        assert app.dispatch(make_raw("GET", "/health")).text == "custom"

    def test_builtins_can_be_disabled(self, make_raw):
        app = App(AppConfig(builtin_endpoints=False))

        assert app.dispatch(make_raw("GET", "/health")).status_code == 404

    def test_url_for(self, app):
        assert app.url_for("get_user", id=9) == "/users/9"

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            App(AppConfig(port=70000))


class TestCORS:
    """Tests for the CORS switch."""

    def test_preflight_skips_routing(self, make_raw):
        app = App(AppConfig(cors_enabled=True))
        calls = []
        app.options("/api")(lambda req, res: calls.append(True))

        reply = app.dispatch(make_raw("OPTIONS", "/api", headers={"Origin": "https://app.example"}))

        assert reply.status_code == 204
        assert reply.header("Access-Control-Allow-Origin") == "*"
        assert calls == []

    def test_cors_headers_on_normal_response(self, make_raw):
        app = App(AppConfig(cors_enabled=True, cors_origins=["https://app.example"]))
        app.get("/data")(lambda req, res: res.json([]))

        reply = app.dispatch(make_raw("GET", "/data", headers={"Origin": "https://app.example"}))

        assert reply.header("Access-Control-Allow-Origin") == "https://app.example"
        assert reply.header("Vary") == "Origin"


class TestStatsRecording:
    """Tests for per-dispatch statistics."""

    def test_route_pattern_recorded(self, app, make_raw):
        app.dispatch(make_raw("GET", "/users/1"))
        app.dispatch(make_raw("GET", "/users/2"))
        app.dispatch(make_raw("GET", "/unknown"))

        snapshot = app.stats.snapshot()
        assert snapshot["paths"] == {"/users/:id": 2, "<unmatched>": 1}
        assert snapshot["statusCodes"] == {"200": 2, "404": 1}
        assert snapshot["activeRequests"] == 0

    def test_unmatched_paths_share_one_key(self, app, make_raw):
        for i in range(500):
            app.dispatch(make_raw("GET", f"/scan/{i}"))

        paths = app.stats.snapshot()["paths"]
        assert paths == {"<unmatched>": 500}

    def test_metrics_endpoint(self, make_raw):
        stats = RequestStats()
        app = App(stats=stats)
        app.get("/ok")(lambda req, res: res.text("ok"))
        app.dispatch(make_raw("GET", "/ok"))

        reply = app.dispatch(make_raw("GET", "/metrics"))

        assert reply.json()["totalRequests"] == 1
        assert reply.header("Cache-Control") == "no-store"
        assert stats.snapshot()["totalRequests"] == 2

    def test_concurrent_dispatch(self, app, make_raw):
        def worker():
            for i in range(50):
                app.dispatch(make_raw("GET", "/boom" if i % 5 == 0 else "/test"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = app.stats.snapshot()
        assert snapshot["totalRequests"] == 400
        assert snapshot["errorRequests"] == 80
        assert snapshot["successRequests"] + snapshot["errorRequests"] == snapshot["totalRequests"]
        assert snapshot["activeRequests"] == 0


def test_response_ended_error_is_runtime_error():
    assert issubclass(ResponseEndedError, RuntimeError)
