"""
=============================================================================
MIDDLEWARE
=============================================================================

Pre-routing hooks with the signature (request, response, next).

    LoggingMiddleware           access log on "routewire.access"
    CORSMiddleware              preflight 204 + Access-Control-* headers
    RateLimitMiddleware         per-client token buckets, 429 + Retry-After
    SecurityHeadersMiddleware   nosniff, DENY framing, HSTS, referrer policy

Order matters. First added runs outermost:

    app.use(LoggingMiddleware())       # sees everything, even rejections
    app.use(CORSMiddleware())          # preflights answered before limits
    app.use(RateLimitMiddleware())

=============================================================================
"""

from .base import FunctionMiddleware, Middleware, MiddlewarePipeline, NextHandler, function_middleware
from .cors import CORSConfig, CORSMiddleware
from .logging import LoggingMiddleware, RequestLog
from .rate_limit import RateLimitMiddleware, TokenBucket
from .security import SecurityHeadersMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",
    "CORSConfig",
    "CORSMiddleware",
    "LoggingMiddleware",
    "RequestLog",
    "RateLimitMiddleware",
    "TokenBucket",
    "SecurityHeadersMiddleware",
]
