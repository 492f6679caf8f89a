"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

Answers preflight requests and labels every other response with the
Access-Control-* headers a browser needs before it will hand the body to
cross-origin JavaScript.

    PREFLIGHT                                   ACTUAL REQUEST

    OPTIONS /api/users                          DELETE /api/users/1
    Origin: https://app.example                 Origin: https://app.example
         │                                           │
         ▼                                           ▼
    204 No Content  (routing skipped)           next(req, res) → handler
    Access-Control-Allow-Origin                 Access-Control-Allow-Origin
    Access-Control-Allow-Methods                Vary: Origin
    Access-Control-Allow-Headers
    Access-Control-Max-Age

=============================================================================
ORIGIN MATCHING
=============================================================================

    allow_origins = ["*"]                 any origin; "*" is echoed, or the
                                          caller's origin when credentials
                                          are allowed (browsers reject "*"
                                          together with credentials)
    allow_origins = ["https://a.example"] only listed origins; others get
                                          no CORS headers and the browser
                                          blocks the response

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..http.request import Request
from ..http.response import DEFAULT_CORS_HEADERS, DEFAULT_CORS_METHODS, Response
from ..http.status_codes import HTTPStatus
from .base import Middleware, NextHandler


@dataclass
class CORSConfig:
    """
    CORS policy.

        CORSConfig()                                       # allow everything
        CORSConfig(allow_origins=["https://app.example"],
                   allow_credentials=True)                 # production
    """

    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_METHODS))
    allow_headers: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_HEADERS))
    expose_headers: List[str] = field(default_factory=list)
    # Cannot be combined with a literal "*" origin; see resolve_origin()
    allow_credentials: bool = False
    max_age: int = 86400

    def resolve_origin(self, origin: str) -> Optional[str]:
        """Value for Access-Control-Allow-Origin, or None if not allowed."""
        if "*" in self.allow_origins:
            if self.allow_credentials and origin:
                return origin
            return "*"
        if origin in self.allow_origins:
            return origin
        return None


class CORSMiddleware(Middleware):
    """
    Preflight short-circuit plus CORS headers on every response.

    Place it after logging and before anything that can reject a request
    (auth, rate limiting), so a preflight always gets its answer.
    """

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        origin = request.get_header("Origin")

        if request.method == "OPTIONS":
            self._preflight(response, origin)
            return

        next(request, response)
        self.apply(response, origin)

    def _preflight(self, response: Response, origin: str) -> None:
        response.status(HTTPStatus.NO_CONTENT)
        allowed = self.config.resolve_origin(origin)
        if allowed is None:
            return
        response.cors(
            origin=allowed,
            methods=self.config.allow_methods,
            headers=self.config.allow_headers,
            credentials=self.config.allow_credentials,
            max_age=self.config.max_age,
        )
        response.vary("Origin")

    def apply(self, response: Response, origin: str) -> None:
        """Add the non-preflight CORS headers to a finished response."""
        allowed = self.config.resolve_origin(origin)
        if allowed is None:
            return

        response.set("Access-Control-Allow-Origin", allowed)
        if self.config.allow_credentials:
            response.set("Access-Control-Allow-Credentials", "true")
        if self.config.expose_headers:
            response.set("Access-Control-Expose-Headers", ", ".join(self.config.expose_headers))
        response.vary("Origin")
