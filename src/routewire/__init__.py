"""
=============================================================================
ROUTEWIRE - HTTP Request/Response Core
=============================================================================

Turns a transport's raw request into a typed Request, routes it to a
handler, lets the handler build a Response fluently, and hands back a
Reply ready for the wire.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ROUTEWIRE                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   transport.py     ThreadingHTTPServer ⇄ RawRequest / Reply         │
    │        │                                                             │
    │   app.py           dispatch pipeline, built-in endpoints            │
    │        │                                                             │
    │   middleware/      logging, CORS, rate limiting, security headers   │
    │        │                                                             │
    │   http/            codec, headers, request, response, router        │
    │        │                                                             │
    │   stats.py         thread-safe request counters                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The core never touches sockets. Anything that can produce a RawRequest
and write a Reply can drive App.dispatch.

=============================================================================
QUICK START
=============================================================================

    from routewire import App, AppConfig

    app = App(AppConfig(port=3000))

    @app.get("/users/:id")
    def get_user(req, res):
        res.json({"id": req.get_param("id")})

    @app.post("/users")
    def create_user(req, res):
        res.status(201).success(req.parsed_body, "Created")

    app.listen()

=============================================================================
"""

from .app import App
from .config import AppConfig, configure_logging
from .http import (
    CookieOptions,
    Headers,
    HTTPStatus,
    RawRequest,
    Reply,
    Request,
    Response,
    ResponseEndedError,
    Router,
)
from .stats import RequestStats
from .transport import make_server, serve

__version__ = "1.0.0"

__all__ = [
    "App",
    "AppConfig",
    "configure_logging",
    "CookieOptions",
    "Headers",
    "HTTPStatus",
    "RawRequest",
    "Reply",
    "Request",
    "Response",
    "ResponseEndedError",
    "Router",
    "RequestStats",
    "make_server",
    "serve",
]
