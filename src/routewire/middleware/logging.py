"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log record per request on the "routewire.access" logger, as an
Apache-style line or as JSON:

    text:  10.0.0.7 - - [01/Jan/2026:12:00:00 +0000] "GET /users/42" 200 27 3.14ms
    json:  {"request_id": "9f1c...", "method": "GET", "path": "/users/42", ...}

Route the access log separately from application logs with ordinary
logging configuration:

    logging.getLogger("routewire.access").addHandler(file_handler)

A request whose handler raises is logged at ERROR and the exception is
re-raised for the dispatcher to turn into a 500.

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from ..http.request import Request
from ..http.response import Response
from .base import Middleware, NextHandler

logger = logging.getLogger("routewire.access")


@dataclass
class RequestLog:
    """Structured access-log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Access logging. Add it first so it sees every request, including
    the ones other middleware reject.

        app.use(LoggingMiddleware(log_format="json", skip_paths=["/health"]))
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        start = time.perf_counter()
        try:
            next(request, response)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "Request failed: %s %s - %s: %s (%.2fms)",
                request.method, request.path, type(exc).__name__, exc, duration_ms,
            )
            raise

        if request.path in self.skip_paths:
            return

        duration_ms = (time.perf_counter() - start) * 1000
        entry = self.build_entry(request, response, duration_ms)
        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

    @staticmethod
    def build_entry(request: Request, response: Response, duration_ms: float) -> RequestLog:
        query = request.original_url.partition("?")[2]
        return RequestLog(
            request_id=request.request_id,
            method=request.method,
            path=request.path,
            query=query,
            client_ip=request.ip or request.remote_address,
            user_agent=request.user_agent or "-",
            status_code=int(response.status_code),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )
