"""
=============================================================================
ROUTEWIRE CLI ENTRY POINT
=============================================================================

Runs a small demo application on the threading transport.

=============================================================================
USAGE
=============================================================================

    # Run with defaults (localhost:8080)
    python -m routewire

    # Custom port, JSON access logs
    python -m routewire --port 3000 --log-format json

    # Behind a reverse proxy
    python -m routewire --host 0.0.0.0 --trust-proxy

    # Enable CORS
    python -m routewire --cors

Settings not given on the command line come from ROUTEWIRE_* environment
variables (see config.py).

=============================================================================
DEMO ROUTES
=============================================================================

    GET    /                      route table as JSON
    GET    /hello/:name           params + query (?greeting=Hi)
    GET    /api/users             paginated list (?page=2&limit=5)
    GET    /api/users/:id         single user or 404 envelope
    POST   /api/users             JSON body, 201 or 400 envelope
    GET    /api/session           cookies in, cookies out
    GET    /files/:name           file from the working directory
    GET    /old-home              302 → /
    GET    /boom                  unhandled error → 500 envelope
    GET    /health, /metrics      built-in endpoints

=============================================================================
"""

import argparse
import logging
from pathlib import Path

from . import __version__
from .app import App
from .config import AppConfig, configure_logging
from .http.status_codes import HTTPStatus
from .middleware import LoggingMiddleware, SecurityHeadersMiddleware

logger = logging.getLogger(__name__)

USERS = [{"id": i, "name": f"user{i}", "email": f"user{i}@example.com"} for i in range(1, 24)]


def create_demo_app(config: AppConfig) -> App:
    """Build the demo application."""
    app = App(config)
    app.use(LoggingMiddleware(log_format=config.log_format, skip_paths=["/health/live"]))
    app.use(SecurityHeadersMiddleware())

    @app.get("/", name="index")
    def index(req, res):
        res.json({
            "name": "routewire",
            "version": __version__,
            "routes": [{"method": r.method, "path": r.pattern} for r in app.routes()],
        }, pretty=True)

    @app.get("/hello/:name")
    def hello(req, res):
        greeting = req.get_query("greeting", "Hello")
        res.text(f"{greeting}, {req.get_param('name')}!")

    api = app.group("/api")

    @api.get("/users")
    def list_users(req, res):
        try:
            page = max(int(req.get_query("page", "1")), 1)
            limit = max(int(req.get_query("limit", "10")), 1)
        except ValueError:
            res.error(HTTPStatus.BAD_REQUEST, "page and limit must be integers")
            return
        start = (page - 1) * limit
        res.paginate(USERS[start:start + limit], page, limit, len(USERS))

    @api.get("/users/:id", name="get_user")
    def get_user(req, res):
        user = next((u for u in USERS if str(u["id"]) == req.get_param("id")), None)
        if user is None:
            res.error(HTTPStatus.NOT_FOUND, f"User {req.get_param('id')} not found")
            return
        res.etag(f"user-{user['id']}")
        if req.is_fresh(f'"user-{user["id"]}"'):
            res.status(HTTPStatus.NOT_MODIFIED).end()
            return
        res.success(user)

    @api.post("/users")
    def create_user(req, res):
        if not req.validate_json(["name", "email"]):
            res.error(HTTPStatus.BAD_REQUEST, "name and email are required")
            return
        user = {"id": len(USERS) + 1, "name": req.parsed_body["name"], "email": req.parsed_body["email"]}
        USERS.append(user)
        res.set("Location", app.url_for("get_user", id=user["id"]))
        res.status(HTTPStatus.CREATED).success(user, "User created")

    @api.get("/session")
    def session(req, res):
        visits = int(req.get_cookie("visits", "0") or 0) + 1
        res.cookie("visits", str(visits), max_age=3600)
        res.json({"visits": visits, "cookies": req.cookies})

    @app.get("/files/:name")
    def send_file(req, res):
        res.send_file(Path.cwd() / Path(req.get_param("name")).name)

    @app.get("/old-home")
    def old_home(req, res):
        res.redirect(app.url_for("index"))

    @app.get("/boom")
    def boom(req, res):
        raise RuntimeError("demo failure")

    return app


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="routewire demo server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m routewire                      # Run with defaults
  python -m routewire --port 3000          # Custom port
  python -m routewire --host 0.0.0.0       # Listen on all interfaces
  python -m routewire --cors               # Enable CORS
        """
    )

    env_config = AppConfig.from_env()

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=env_config.host,
        help=f"Host to bind to (default: {env_config.host}, use 0.0.0.0 for containers)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=env_config.port,
        help=f"Port to listen on (default: {env_config.port})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # FEATURE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=env_config.log_level,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=env_config.log_format,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--cors",
        action="store_true",
        default=env_config.cors_enabled,
        help="Enable CORS for all origins (development convenience)"
    )

    parser.add_argument(
        "--trust-proxy",
        action="store_true",
        default=env_config.trust_proxy,
        help="Take client address, protocol and host from proxy headers"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"routewire {__version__}"
    )

    args = parser.parse_args()

    config = AppConfig(
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        log_format=args.log_format,
        cors_enabled=args.cors,
        cors_origins=env_config.cors_origins,
        trust_proxy=args.trust_proxy,
        expose_errors=env_config.expose_errors,
        strict_routing=env_config.strict_routing,
    )
    configure_logging(config)

    app = create_demo_app(config)
    logger.info(f"Registered {len(app.routes())} routes")
    app.listen()


if __name__ == "__main__":
    main()
