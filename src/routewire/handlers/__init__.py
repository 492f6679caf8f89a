"""Built-in request handlers."""

from .health import HealthCheck, HealthHandler, HealthStatus

__all__ = ["HealthCheck", "HealthHandler", "HealthStatus"]
