"""
=============================================================================
REQUEST STATISTICS
=============================================================================

The one piece of mutable state shared by every dispatch.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        RequestStats                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   worker 1 ──► record("GET", "/users/:id", 200, 3.1) ─┐              │
    │   worker 2 ──► record("POST", "/users", 500, 12.7) ───┼──► [ lock ]  │
    │   /metrics ──► snapshot() ────────────────────────────┘              │
    │                                                                      │
    │   One lock guards the whole record, held only for the update or     │
    │   the copy. Readers always see totals that add up:                  │
    │                                                                      │
    │       totalRequests == successRequests + errorRequests              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

success means status < 400; error means status >= 400.

The App owns an instance and passes it where it is needed. There is no
module-level singleton.

=============================================================================
"""

import threading
import time
from collections import Counter
from typing import Any, Dict, Optional


class RequestStats:
    """
    Lock-guarded request counters.

    Usage:
        stats = RequestStats()
        stats.start()
        ...
        stats.finish()
        stats.record("GET", "/users/:id", 200, 4.2)
        stats.snapshot()["totalRequests"]    # 1
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self.started_at = clock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.total_requests = 0
        self.success_requests = 0
        self.error_requests = 0
        self.status_codes: Counter = Counter()
        self.methods: Counter = Counter()
        self.paths: Counter = Counter()
        self.active_requests = 0
        self._total_time_ms = 0.0

    # =========================================================================
    # UPDATES
    # =========================================================================

    def start(self) -> None:
        """A dispatch has begun."""
        with self._lock:
            self.active_requests += 1

    def finish(self) -> None:
        """A dispatch begun with start() has ended."""
        with self._lock:
            self.active_requests -= 1

    def record(self, method: str, path: str, status: int, duration_ms: float) -> None:
        """Count one completed request."""
        with self._lock:
            self.total_requests += 1
            if status < 400:
                self.success_requests += 1
            else:
                self.error_requests += 1
            self.status_codes[int(status)] += 1
            self.methods[method] += 1
            self.paths[path] += 1
            self._total_time_ms += duration_ms

    def reset(self) -> None:
        with self._lock:
            self._reset_counters()
            self.started_at = self._clock()

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def uptime(self) -> float:
        """Seconds since construction or the last reset()."""
        return self._clock() - self.started_at

    @property
    def average_response_time(self) -> float:
        with self._lock:
            return self._average()

    def _average(self) -> float:
        if not self.total_requests:
            return 0.0
        return self._total_time_ms / self.total_requests

    def snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        """
        Consistent copy of every counter, keyed for JSON output.

            {
                "totalRequests": 12,
                "successRequests": 11,
                "errorRequests": 1,
                "statusCodes": {"200": 11, "500": 1},
                "methods": {"GET": 12},
                "paths": {"/users/:id": 12},
                "averageResponseTime": 2.37,
                "activeRequests": 0,
                "uptime": 81.4
            }
        """
        with self._lock:
            current = self._clock() if now is None else now
            return {
                "totalRequests": self.total_requests,
                "successRequests": self.success_requests,
                "errorRequests": self.error_requests,
                "statusCodes": {str(code): count for code, count in sorted(self.status_codes.items())},
                "methods": dict(self.methods),
                "paths": dict(self.paths),
                "averageResponseTime": round(self._average(), 3),
                "activeRequests": self.active_requests,
                "uptime": round(current - self.started_at, 3),
            }
