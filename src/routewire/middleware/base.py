"""
=============================================================================
MIDDLEWARE INTERFACE
=============================================================================

Pre-routing hooks wrapped around the router, first added = outermost.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ONE DISPATCH, THREE HOOKS                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   (req, res) ──► Logging ──► CORS ──► RateLimit ──► router           │
    │                     │          │          │            │             │
    │                  [before]   [before]   [before]     handler          │
    │                     │          │          │            │             │
    │                  [after]    [after]    [after]  ◄──────┘             │
    │                                                                      │
    │   Any hook may stop early by filling in res and NOT calling next:   │
    │   CORS answers OPTIONS with 204, RateLimit answers 429.             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The Response is a mutable accumulator, so hooks do not return anything.
They work on the same res object the handler will see:

    class Stamp(Middleware):
        def __call__(self, request, response, next):
            response.set("X-Before", "1")
            next(request, response)
            response.set("X-After", "1")

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional

from ..http.request import Request
from ..http.response import Response

logger = logging.getLogger(__name__)

# next(request, response): continue down the chain
NextHandler = Callable[[Request, Response], None]


class Middleware(ABC):
    """
    Base class for pre-routing hooks.

    Subclasses implement __call__(request, response, next). Call
    next(request, response) to continue, or leave it uncalled to
    short-circuit with whatever the hook wrote into response.
    """

    @abstractmethod
    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered list of middleware that wraps a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware()).add(CORSMiddleware())
        handler = pipeline.wrap(route_request)
        handler(request, response)

    wrap() builds the chain back to front, so the first middleware added
    runs first on the way in and last on the way out.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug("Added middleware: %s", middleware.name)
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for item in middleware:
            self.add(item)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Return handler with every middleware layered around it."""
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: Request, response: Response) -> None:
            middleware(request, response, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

MiddlewareFunc = Callable[[Request, Response, NextHandler], None]


class FunctionMiddleware(Middleware):
    """Adapts a plain (request, response, next) function to Middleware."""

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", "middleware")

    def __call__(self, request: Request, response: Response, next: NextHandler) -> None:
        self._func(request, response, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """
    Decorator turning a function into middleware.

        @function_middleware
        def require_token(req, res, next):
            if not req.bearer_token:
                res.error(401, "Missing token")
                return
            next(req, res)

        app.use(require_token)
    """
    return FunctionMiddleware(func)
