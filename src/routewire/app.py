"""
=============================================================================
APPLICATION & DISPATCH PIPELINE
=============================================================================

App ties the route table, middleware and statistics together and turns
one RawRequest into one Reply.

=============================================================================
ONE DISPATCH
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        App.dispatch(raw)                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Received          RawRequest from the transport                   │
    │      │                                                               │
    │   RequestBuilt      build_request(raw, trust_proxy)                 │
    │      │                                                               │
    │   PreRoutingHooks   CORS (if enabled) → app.use(...) middleware     │
    │      │              an OPTIONS preflight stops here with 204        │
    │      │                                                               │
    │   Matched ─────────► handler(request with params, response)         │
    │   Unmatched ───────► 404 {"error": true, "message": "Cannot GET /x"} │
    │      │                                                               │
    │   HandlerExecuted   after-hooks; any exception → fresh 500 envelope │
    │      │                                                               │
    │   Serialized        X-Powered-By, X-Request-ID, X-Response-Time,    │
    │      │              Server-Timing; response.to_reply()              │
    │      │                                                               │
    │   Recorded          stats.record(...) exactly once; unmatched       │
    │      │              requests share the "<unmatched>" path key       │
    │      │                                                               │
    │   Sent              Reply back to the transport                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No exception leaves dispatch(). A failing handler, middleware or
after-hook is logged with its traceback and answered with a 500.

=============================================================================
USAGE
=============================================================================

    app = App(AppConfig(cors_enabled=True))
    app.use(LoggingMiddleware())

    @app.get("/users/:id")
    def get_user(req, res):
        res.json({"id": req.get_param("id")})

    app.listen()        # or hand app.dispatch to any transport

=============================================================================
"""

import dataclasses
import logging
import threading
import time
from typing import Any, Callable, List, Optional, Union

from .config import AppConfig
from .handlers.health import HealthHandler
from .http.request import RawRequest, Request, build_request
from .http.response import Reply, Response
from .http.router import Handler, Route, RouteRegistrar, Router
from .http.status_codes import HTTPStatus
from .middleware.base import FunctionMiddleware, Middleware, MiddlewareFunc, MiddlewarePipeline, NextHandler
from .middleware.cors import CORSConfig, CORSMiddleware
from .stats import RequestStats
from .transport import serve

logger = logging.getLogger(__name__)

AfterHook = Callable[[Request, Response], Any]

# Response.locals key holding the matched route pattern
ROUTE_KEY = "route"

# Stats key for requests no route claimed; keeps the per-path map bounded
UNMATCHED_PATH = "<unmatched>"


class App(RouteRegistrar):
    """
    Route table plus dispatch pipeline.

    Register routes and middleware first. The first dispatch freezes the
    setup; later registrations raise RuntimeError.
    """

    def __init__(self, config: Optional[AppConfig] = None, stats: Optional[RequestStats] = None):
        self.config = config or AppConfig()
        self.config.validate()

        self.stats = stats or RequestStats()
        self.router = Router(strict=self.config.strict_routing)
        self.health = HealthHandler(self.stats)

        self._middleware = MiddlewarePipeline()
        self._after_hooks: List[AfterHook] = []
        self._handler: Optional[NextHandler] = None
        self._build_lock = threading.Lock()

    # =========================================================================
    # SETUP
    # =========================================================================

    def add_route(self, method: str, pattern: str, handler: Handler, name: Optional[str] = None) -> Route:
        return self.router.add_route(method, pattern, handler, name)

    def use(self, middleware: Union[Middleware, MiddlewareFunc]) -> "App":
        """
        Add a pre-routing hook. Plain (request, response, next) functions
        are accepted too.
        """
        self._ensure_not_started("add middleware")
        if not isinstance(middleware, Middleware):
            middleware = FunctionMiddleware(middleware)
        self._middleware.add(middleware)
        return self

    def after(self, hook: AfterHook) -> AfterHook:
        """
        Run hook(request, response) after routing, on every request.

            @app.after
            def tag(req, res):
                res.set("X-Served-By", "api-1")
        """
        self._ensure_not_started("add an after-hook")
        self._after_hooks.append(hook)
        return hook

    def url_for(self, name: str, **params: Any) -> Optional[str]:
        return self.router.url_for(name, **params)

    def routes(self) -> List[Route]:
        return self.router.routes()

    def _ensure_not_started(self, action: str) -> None:
        if self._handler is not None:
            raise RuntimeError(f"cannot {action} after dispatch has started")

    def _ensure_built(self) -> NextHandler:
        handler = self._handler
        if handler is not None:
            return handler

        with self._build_lock:
            if self._handler is None:
                self._handler = self._build()
            return self._handler

    def _build(self) -> NextHandler:
        """Register built-ins, freeze the table and assemble the chain."""
        if self.config.builtin_endpoints:
            self.router.add_route("GET", "/health", self.health.handle, "health")
            self.router.add_route("GET", "/health/live", self.health.liveness, "health_live")
            self.router.add_route("GET", "/health/ready", self.health.readiness, "health_ready")
            self.router.add_route("GET", "/metrics", self.health.metrics, "metrics")
        self.router.freeze()

        pipeline = MiddlewarePipeline()
        if self.config.cors_enabled:
            pipeline.add(CORSMiddleware(CORSConfig(allow_origins=list(self.config.cors_origins))))
        pipeline.use(*self._middleware)

        logger.debug("Route table frozen with %d routes:\n%s", len(self.router), self.router.describe())
        return pipeline.wrap(self._route)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, raw: RawRequest) -> Reply:
        """Handle one inbound request. Always returns a Reply."""
        handler = self._ensure_built()
        started = time.perf_counter()
        self.stats.start()
        try:
            try:
                request = build_request(raw, trust_proxy=self.config.trust_proxy)
            except Exception as exc:
                # Headers and body are the untrusted parts; retry without them
                request = build_request(RawRequest(
                    method=raw.method or "GET",
                    path=raw.path or "/",
                    remote_address=raw.remote_address,
                ))
                response = self._failure_response(request, exc)
            else:
                response = self._handle(handler, request)

            elapsed_ms = (time.perf_counter() - started) * 1000
            self._stamp(request, response, elapsed_ms)
            reply = response.to_reply()
        finally:
            self.stats.finish()

        self.stats.record(
            request.method,
            response.locals.get(ROUTE_KEY) or UNMATCHED_PATH,
            reply.status_code,
            elapsed_ms,
        )
        return reply

    def _handle(self, handler: NextHandler, request: Request) -> Response:
        """Run the chain and after-hooks; any failure becomes a 500."""
        response = Response()
        try:
            handler(request, response)
            for hook in self._after_hooks:
                hook(request, response)
        except Exception as exc:
            route = response.locals.get(ROUTE_KEY)
            response = self._failure_response(request, exc)
            if route:
                response.locals[ROUTE_KEY] = route
        return response

    def _route(self, request: Request, response: Response) -> None:
        """Innermost link of the chain: match and invoke the handler."""
        match = self.router.match(request.method, request.path)
        if match is None:
            response.error(HTTPStatus.NOT_FOUND, f"Cannot {request.method} {request.path}")
            return

        response.locals[ROUTE_KEY] = match.route.pattern
        match.route.handler(dataclasses.replace(request, params=match.params), response)

    def _failure_response(self, request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        details = f"{type(exc).__name__}: {exc}" if self.config.expose_errors else None
        return Response().error(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error", details)

    def _stamp(self, request: Request, response: Response, elapsed_ms: float) -> None:
        if self.config.powered_by:
            response.set("X-Powered-By", self.config.powered_by)
        response.set("X-Request-ID", request.request_id)
        response.set("X-Response-Time", f"{elapsed_ms:.2f}ms")
        response.set("Server-Timing", f"total;dur={elapsed_ms:.2f}")

    # =========================================================================
    # SERVING
    # =========================================================================

    def listen(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Serve on the stdlib threading transport until interrupted."""
        serve(self, host or self.config.host, self.config.port if port is None else port)
