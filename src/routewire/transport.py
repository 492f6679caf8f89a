"""
=============================================================================
THREADING TRANSPORT
=============================================================================

Glue between the standard library's ThreadingHTTPServer and App.dispatch.
The server owns sockets, request-line parsing and one thread per
connection; this module only converts between its handler object and the
RawRequest/Reply pair.

    ┌──────────────────┐   RawRequest   ┌──────────────┐
    │ BaseHTTPRequest- │ ─────────────► │ App.dispatch │
    │ Handler (thread) │ ◄───────────── │              │
    └──────────────────┘     Reply      └──────────────┘

=============================================================================
WHAT HAPPENS HERE
=============================================================================

    Content-Length     read exactly that many bytes, 413 above max_body_size,
                       400 if it is not a number
    request target     urlsplit() into path and query string
    HEAD               dispatched as GET, body not written
    malformed lines    answered 400 by BaseHTTPRequestHandler itself

Server log lines (normally written to stderr) go through logging instead.

=============================================================================
"""

import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional, Type
from urllib.parse import urlsplit

from .http.request import RawRequest
from .http.response import Reply
from .http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


class RoutewireRequestHandler(BaseHTTPRequestHandler):
    """
    Per-connection handler. The app is attached by make_server() on a
    subclass, so one class serves exactly one App.
    """

    app: Any = None
    max_body_size: int = 10 * 1024 * 1024
    protocol_version = "HTTP/1.1"
    server_version = "routewire"

    def do_GET(self) -> None:
        self._handle()

    def do_HEAD(self) -> None:
        self._handle(method="GET", include_body=False)

    def do_POST(self) -> None:
        self._handle()

    def do_PUT(self) -> None:
        self._handle()

    def do_PATCH(self) -> None:
        self._handle()

    def do_DELETE(self) -> None:
        self._handle()

    def do_OPTIONS(self) -> None:
        self._handle()

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST → RawRequest
    # ─────────────────────────────────────────────────────────────────────

    def _handle(self, method: Optional[str] = None, include_body: bool = True) -> None:
        body = self._read_body()
        if body is None:
            return

        target = urlsplit(self.path)
        raw = RawRequest(
            method=method or self.command,
            path=target.path or "/",
            query_string=target.query,
            body=body,
            headers=list(self.headers.items()),
            remote_address=self.client_address[0],
            http_version=self.request_version,
        )
        self._write_reply(self.app.dispatch(raw), include_body)

    def _read_body(self) -> Optional[bytes]:
        """Request body, or None after an error reply has been sent."""
        length_header = self.headers.get("Content-Length")
        if not length_header:
            return b""

        try:
            length = int(length_header)
        except ValueError:
            self._reject(HTTPStatus.BAD_REQUEST, "Invalid Content-Length")
            return None

        if length < 0:
            self._reject(HTTPStatus.BAD_REQUEST, "Invalid Content-Length")
            return None
        if length > self.max_body_size:
            self._reject(HTTPStatus.PAYLOAD_TOO_LARGE, "Request body too large")
            return None

        return self.rfile.read(length) if length else b""

    # ─────────────────────────────────────────────────────────────────────
    # Reply → WIRE
    # ─────────────────────────────────────────────────────────────────────

    def _write_reply(self, reply: Reply, include_body: bool = True) -> None:
        self.send_response(reply.status_code, reply.reason)
        for name, value in reply.headers:
            self.send_header(name, value)
        if not reply.header("Content-Length"):
            self.send_header("Content-Length", str(len(reply.body)))
        self.end_headers()

        if include_body and reply.body:
            self.wfile.write(reply.body)

    def _reject(self, status: HTTPStatus, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status.value, status.phrase)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)
        self.close_connection = True

    # BaseHTTPRequestHandler writes these to stderr by default
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def log_error(self, format: str, *args: Any) -> None:
        logger.warning("%s - %s", self.address_string(), format % args)


def make_server(app: Any, host: str = "127.0.0.1", port: int = 8080) -> ThreadingHTTPServer:
    """
    Bind a ThreadingHTTPServer that dispatches every request to app.

    Port 0 lets the OS pick a free port; read it back from
    server.server_address[1].
    """
    handler_class: Type[RoutewireRequestHandler] = type(
        "BoundRequestHandler",
        (RoutewireRequestHandler,),
        {"app": app, "max_body_size": app.config.max_body_size},
    )
    server = ThreadingHTTPServer((host, port), handler_class)
    server.daemon_threads = True
    return server


def serve(app: Any, host: str = "127.0.0.1", port: int = 8080) -> None:
    """Serve app until interrupted with Ctrl+C."""
    try:
        server = make_server(app, host, port)
    except OSError as e:
        logger.error(f"Failed to bind to {host}:{port}: {e}")
        raise

    bound_host, bound_port = server.server_address[:2]
    logger.info(f"Server listening on http://{bound_host}:{bound_port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Received SIGINT, shutting down...")
    finally:
        server.server_close()
        logger.info("Server stopped")
