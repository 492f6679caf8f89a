"""
Security headers on every response.

Applies Response.security_headers() after the handler has run, without
overwriting a header the handler set itself (a page that must be framed
can still send its own X-Frame-Options).
"""

from ..http.request import Request
from ..http.response import Response
from .base import Middleware, NextHandler


class SecurityHeadersMiddleware(Middleware):
    def __init__(self, hsts_max_age: int = 31536000, hsts_only_secure: bool = False):
        self.hsts_max_age = hsts_max_age
        # Strict-Transport-Security is ignored by browsers over plain http
        self.hsts_only_secure = hsts_only_secure

    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        next(request, response)

        defaults = Response().security_headers(self.hsts_max_age)
        if self.hsts_only_secure and not request.secure:
            defaults.remove("Strict-Transport-Security")
        defaults.remove("Content-Type")

        for name, value in defaults.headers.items():
            if name not in response.headers:
                response.set(name, value)
