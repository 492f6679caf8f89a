"""
=============================================================================
ROUTE TABLE & MATCHER
=============================================================================

Stores (method, pattern, handler) entries in registration order and maps an
inbound (method, path) pair to the first entry that matches.

=============================================================================
MATCHING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        GET /users/42                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Registered (in order)            Tried                             │
    │   ─────────────────────            ─────                             │
    │   GET  /health                     method ok, "health" ≠ "users"     │
    │   POST /users/:id                  method differs                    │
    │   GET  /users/:id                  ← MATCH  {"id": "42"}             │
    │   ALL  /users/:id                  never reached                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Pattern and path are split on "/" and compared position by position:

    "/users/:id/posts/:post_id"  →  ["", "users", ":id", "posts", ":post_id"]
    "/users/42/posts/7"          →  ["", "users", "42",  "posts", "7"]

    literal      must be equal
    :name        captures any non-empty segment

There are no wildcard or regex segments, and no specificity ranking:
register /users/me before /users/:id if both should exist.

=============================================================================
SEGMENT COUNT
=============================================================================

    strict (default)   counts must be equal; /user/:id does NOT match /user
    lenient            compare only up to the shorter side; /user/:id
                       matches /user with params {}

=============================================================================
LIFETIME
=============================================================================

The table is append-only during setup and is frozen on the first dispatch.
Registering a route after that raises RuntimeError, so worker threads can
read it without locking.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote

from .request import normalize_path

# Methods the "ALL" registration covers
SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
ALL = "ALL"

# handler(request, response) mutates the response; its return value is ignored
Handler = Callable[[Any, Any], Any]


def split_path(path: str) -> Tuple[str, ...]:
    return tuple(path.split("/"))


@dataclass(frozen=True)
class Route:
    """
    One registered endpoint.

        Route(method="GET", pattern="/users/:id", handler=get_user,
              name="get_user", segments=("", "users", ":id"))
    """

    method: str
    pattern: str
    handler: Handler
    name: Optional[str] = None
    segments: Tuple[str, ...] = field(default=(), repr=False)

    @property
    def param_names(self) -> List[str]:
        return [segment[1:] for segment in self.segments if segment.startswith(":")]

    def allows(self, method: str) -> bool:
        if self.method == ALL:
            return method in SUPPORTED_METHODS
        return self.method == method

    def match_path(self, path_segments: Tuple[str, ...], strict: bool = True) -> Optional[Dict[str, str]]:
        """Captured params if the path fits this pattern, else None."""
        if strict and len(path_segments) != len(self.segments):
            return None

        params: Dict[str, str] = {}
        for expected, actual in zip(self.segments, path_segments):
            if expected.startswith(":"):
                if not actual:
                    return None
                params[expected[1:]] = unquote(actual)
            elif expected != actual:
                return None
        return params


@dataclass(frozen=True)
class RouteMatch:
    """A matched route and the parameters extracted from the path."""

    route: Route
    params: Dict[str, str]


class RouteRegistrar:
    """
    Decorator sugar shared by Router and its prefixed groups.

    Subclasses provide add_route(); everything here forwards to it.
    """

    def add_route(self, method: str, pattern: str, handler: Handler, name: Optional[str] = None) -> Route:
        raise NotImplementedError

    def route(self, method: str, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route().

            @router.route("GET", "/users")
            def list_users(req, res):
                res.json([])
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, pattern, handler, name)
            return handler
        return decorator

    def get(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("GET", pattern, name)

    def post(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("POST", pattern, name)

    def put(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("PUT", pattern, name)

    def patch(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("PATCH", pattern, name)

    def delete(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("DELETE", pattern, name)

    def options(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route("OPTIONS", pattern, name)

    def all(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register for every supported method."""
        return self.route(ALL, pattern, name)

    def group(self, prefix: str) -> "RouteGroup":
        """
        Register routes under a common prefix.

            api = router.group("/api/v1")

            @api.get("/users")          # GET /api/v1/users
            def list_users(req, res):
                ...

        Grouped routes go into the same ordered table as everything else,
        so registration order still decides ties.
        """
        return RouteGroup(self, prefix)


class RouteGroup(RouteRegistrar):
    """A prefix bound to a parent registrar."""

    def __init__(self, parent: RouteRegistrar, prefix: str):
        self.parent = parent
        self.prefix = normalize_path(prefix).rstrip("/")

    def add_route(self, method: str, pattern: str, handler: Handler, name: Optional[str] = None) -> Route:
        return self.parent.add_route(method, self.prefix + normalize_path(pattern), handler, name)


class Router(RouteRegistrar):
    """
    Ordered route table with first-match lookup.

    Usage:
        router = Router()

        @router.get("/users/:id", name="get_user")
        def get_user(req, res):
            res.json({"id": req.get_param("id")})

        router.match("GET", "/users/42").params     # {"id": "42"}
        router.url_for("get_user", id=42)           # "/users/42"
    """

    def __init__(self, strict: bool = True):
        self.strict = strict
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}
        self._frozen = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(self, method: str, pattern: str, handler: Handler, name: Optional[str] = None) -> Route:
        """
        Append a route to the table.

        Raises:
            RuntimeError: The table is frozen (dispatch has started)
            ValueError: Unknown method
        """
        if self._frozen:
            raise RuntimeError(
                f"cannot register {method} {pattern}: routes are frozen once dispatch starts"
            )

        method = method.upper()
        if method != ALL and method not in SUPPORTED_METHODS:
            raise ValueError(f"unsupported method {method!r}")

        pattern = normalize_path(pattern)
        route = Route(
            method=method,
            pattern=pattern,
            handler=handler,
            name=name,
            segments=split_path(pattern),
        )
        self._routes.append(route)
        if name:
            self._named_routes[name] = route
        return route

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        First route whose method and pattern both fit, or None.

        Pure: reads the table, touches nothing else.
        """
        method = method.upper()
        path_segments = split_path(normalize_path(path))

        for route in self._routes:
            if not route.allows(method):
                continue
            params = route.match_path(path_segments, self.strict)
            if params is not None:
                return RouteMatch(route=route, params=params)

        return None

    def url_for(self, name: str, **params: Any) -> Optional[str]:
        """
        Build a path for a named route, or None if no route has that name.

        Placeholders without a value are left as written.
        """
        route = self._named_routes.get(name)
        if route is None:
            return None

        parts = []
        for segment in route.segments:
            key = segment[1:]
            if segment.startswith(":") and key in params:
                parts.append(quote(str(params[key]), safe=""))
            else:
                parts.append(segment)
        return "/".join(parts) or "/"

    def routes(self) -> List[Route]:
        return list(self._routes)

    def describe(self) -> str:
        """
        Route table as text, one route per line:

              GET      /health
              GET      /users/:id
              ALL      /echo
        """
        return "\n".join(f"  {route.method:8} {route.pattern}" for route in self._routes)

    def __len__(self) -> int:
        return len(self._routes)
