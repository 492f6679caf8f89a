"""
=============================================================================
BUILT-IN HEALTH AND METRICS ENDPOINTS
=============================================================================

Read-only GET handlers the App registers for itself when
AppConfig.builtin_endpoints is on.

    ┌──────────────────┬──────────────────────────────────────────────────┐
    │ Endpoint         │ Answers                                          │
    ├──────────────────┼──────────────────────────────────────────────────┤
    │ /health          │ {status, uptime, timestamp, activeConnections}   │
    │ /health/live     │ Is the process up? Always 200 while it runs.     │
    │ /health/ready    │ Can it take traffic? 503 if any check fails.     │
    │ /metrics         │ RequestStats snapshot                            │
    └──────────────────┴──────────────────────────────────────────────────┘

All of them send Cache-Control: no-store. A cached health answer is
worse than none.

Dependency checks are plain callables returning HealthStatus:

    def check_database() -> HealthStatus:
        return HealthStatus(healthy=db.ping())

    health.add_check("database", check_database)

A check that raises counts as unhealthy; its message is reported.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

from ..http.request import Request
from ..http.response import Response, utc_timestamp
from ..http.status_codes import HTTPStatus
from ..stats import RequestStats

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    healthy: bool
    message: str = "OK"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            **self.details,
        }


HealthCheck = Callable[[], HealthStatus]


class HealthHandler:
    """
    Health, liveness, readiness and metrics handlers sharing one
    RequestStats.

        health = HealthHandler(stats)
        router.get("/health")(health.handle)
        router.get("/metrics")(health.metrics)
    """

    def __init__(self, stats: RequestStats):
        self.stats = stats
        self._checks: Dict[str, HealthCheck] = {}

    def add_check(self, name: str, check: HealthCheck) -> "HealthHandler":
        self._checks[name] = check
        return self

    def run_checks(self) -> Tuple[bool, Dict[str, Dict[str, Any]]]:
        """Run every registered check. Returns (all healthy, per-check results)."""
        results: Dict[str, Dict[str, Any]] = {}
        all_healthy = True
        for name, check in self._checks.items():
            try:
                status = check()
            except Exception as exc:
                logger.warning("Health check %r raised: %s", name, exc)
                results[name] = {"status": "unhealthy", "error": str(exc)}
                all_healthy = False
                continue
            results[name] = status.to_dict()
            all_healthy = all_healthy and status.healthy
        return all_healthy, results

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def handle(self, request: Request, response: Response) -> None:
        """
        Overall health.

        With no checks registered this is always 200 "healthy". With
        checks, any failure turns it into 503 "unhealthy" and the
        per-check results are included.
        """
        healthy, results = self.run_checks()
        snapshot = self.stats.snapshot()

        body: Dict[str, Any] = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime": snapshot["uptime"],
            "timestamp": utc_timestamp(),
            "activeConnections": snapshot["activeRequests"],
        }
        if results:
            body["checks"] = results

        status = HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE
        response.set("Cache-Control", "no-store").json(body, status=status)

    def liveness(self, request: Request, response: Response) -> None:
        # Liveness ignores dependency checks
        response.set("Cache-Control", "no-store").json({"status": "alive"})

    def readiness(self, request: Request, response: Response) -> None:
        healthy, results = self.run_checks()
        body: Dict[str, Any] = {"status": "ready" if healthy else "not ready"}
        if results:
            body["checks"] = results
        status = HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE
        response.set("Cache-Control", "no-store").json(body, status=status)

    def metrics(self, request: Request, response: Response) -> None:
        response.set("Cache-Control", "no-store").json(self.stats.snapshot())
