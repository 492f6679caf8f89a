"""
=============================================================================
REQUEST MODEL
=============================================================================

Turns the transport's raw inbound request into a normalized, read-only
Request value that handlers query.

=============================================================================
FROM RAW TO NORMALIZED
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      build_request(raw)                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   RawRequest (from transport)          Request (to handler)          │
    │   ───────────────────────────          ────────────────────          │
    │   method  "get"                ──►     method      "GET"             │
    │   path    "/users/42/"         ──►     path        "/users/42"       │
    │   query_string "page=2"        ──►     query       {"page": "2"}     │
    │   headers [("Cookie", ...)]    ──►     headers     Headers(...)      │
    │                                        cookies     {"sid": "abc"}    │
    │   body    b'{"name": "Ann"}'   ──►     parsed_body {"name": "Ann"}   │
    │   remote_address "10.0.0.7"    ──►     ip / ips    (proxy policy)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Route parameters are unknown until the router runs. The dispatcher attaches
them with dataclasses.replace(), producing a new Request rather than
mutating the one the middleware already saw.

=============================================================================
TOTAL ACCESSORS
=============================================================================

Nothing here raises on missing data. Every getter takes a default, and a
body that fails to parse becomes {}:

    request.get_query("page", "1")      # "1" when ?page is absent
    request.get_header("X-Missing")     # ""
    request.parsed_body                 # {} for malformed JSON

=============================================================================
"""

import base64
import binascii
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .codec import parse_query
from .headers import HeaderSource, Headers, parse_cookies

# Proxy headers consulted by get_real_ip(), highest trust first.
REAL_IP_HEADERS = (
    "X-Real-IP",
    "X-Forwarded-For",
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Client-IP",
)

_MOBILE_MARKERS = ("mobile", "android", "iphone")


def normalize_path(path: str) -> str:
    """
    Strip the trailing slash from a path, except for the root.

        "/users/"  → "/users"
        "/"        → "/"
        ""         → "/"
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


@dataclass(frozen=True)
class RawRequest:
    """
    What the transport hands to the dispatcher.

    The transport has already parsed the request line and headers; this
    value carries the pieces verbatim. query_params, when given, holds
    pairs the transport split itself and is applied on top of query_string.
    """

    method: str
    path: str
    query_string: str = ""
    query_params: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    headers: HeaderSource = None
    remote_address: str = ""
    scheme: str = "http"
    http_version: str = "HTTP/1.1"


@dataclass(frozen=True)
class Request:
    """
    Normalized, immutable view of one inbound HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method        Upper-cased HTTP method
        path          Normalized path (no trailing slash except "/")
        original_url  Path plus "?query" exactly as received
        protocol      "http" or "https"
        hostname      Host header without the port
        params        Route placeholders → matched segments
        query         Decoded query string (last duplicate wins)
        headers       Case-insensitive Headers
        cookies       Parsed Cookie header
        body          Raw body bytes
        parsed_body   dict/list for JSON, dict for forms, {} otherwise
        ip, ips       Client address and forwarded chain
        secure        True when protocol is https
        request_id    X-Request-ID from the client, or a fresh UUID
        start_time    Wall-clock time the request was built

    =========================================================================
    """

    method: str
    path: str
    original_url: str = ""
    protocol: str = "http"
    hostname: str = ""
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    headers: Headers = field(default_factory=Headers)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    parsed_body: Any = field(default_factory=dict)
    remote_address: str = ""
    ip: str = ""
    ips: Tuple[str, ...] = ()
    secure: bool = False
    request_id: str = ""
    start_time: float = field(default_factory=time.time)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_param(self, key: str, default: str = "") -> str:
        return self.params.get(key, default)

    def get_query(self, key: str, default: str = "") -> str:
        return self.query.get(key, default)

    def get_cookie(self, key: str, default: str = "") -> str:
        return self.cookies.get(key, default)

    def get_header(self, key: str, default: str = "") -> str:
        """Header value by name, any casing."""
        return self.headers.get(key, default)

    # =========================================================================
    # CONTENT NEGOTIATION
    # =========================================================================

    @property
    def content_type(self) -> str:
        """
        Media type without parameters.

        "application/json; charset=utf-8" → "application/json"
        """
        return self.get_header("Content-Type").split(";", 1)[0].strip()

    @property
    def is_json(self) -> bool:
        return "application/json" in self.get_header("Content-Type")

    def accepts(self, mime: str) -> bool:
        """True if Accept mentions mime, or allows anything with */*."""
        accept = self.get_header("Accept")
        return mime in accept or "*/*" in accept

    @property
    def user_agent(self) -> str:
        return self.get_header("User-Agent")

    @property
    def is_mobile(self) -> bool:
        agent = self.user_agent.lower()
        return any(marker in agent for marker in _MOBILE_MARKERS)

    @property
    def is_ajax(self) -> bool:
        return self.get_header("X-Requested-With").lower() == "xmlhttprequest"

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    @property
    def bearer_token(self) -> str:
        """Token from "Authorization: Bearer <token>", or ""."""
        scheme, _, credentials = self.get_header("Authorization").partition(" ")
        if scheme.lower() != "bearer":
            return ""
        return credentials.strip()

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        """(username, password) from HTTP Basic auth, None if absent or malformed."""
        scheme, _, credentials = self.get_header("Authorization").partition(" ")
        if scheme.lower() != "basic" or not credentials:
            return None
        try:
            decoded = base64.b64decode(credentials.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        username, sep, password = decoded.partition(":")
        if not sep:
            return None
        return username, password

    # =========================================================================
    # CLIENT ADDRESS
    # =========================================================================

    def get_real_ip(self) -> str:
        """
        Best guess at the originating client address.

        Checks proxy headers in a fixed order (see REAL_IP_HEADERS) and
        uses the first one present. X-Forwarded-For contributes only its
        first entry. Falls back to the transport's peer address.
        """
        return resolve_real_ip(self.headers, self.remote_address)

    def parse_forwarded_ips(self) -> List[str]:
        """X-Forwarded-For as a list, client first, proxies after."""
        return forwarded_chain(self.headers)

    # =========================================================================
    # CACHING
    # =========================================================================

    def is_fresh(self, etag: str, last_modified: Optional[str] = None) -> bool:
        """
        Conditional-request check against a resource validator.

        Exact string comparison only: If-None-Match must equal etag, or
        If-Modified-Since must equal last_modified when one is given.
        """
        if etag and self.get_header("If-None-Match") == etag:
            return True
        if last_modified is not None:
            return self.get_header("If-Modified-Since") == last_modified
        return False

    # =========================================================================
    # BODY HELPERS
    # =========================================================================

    def validate_json(self, required_fields: Iterable[str]) -> bool:
        """True if the parsed body is an object holding every field."""
        if not isinstance(self.parsed_body, dict):
            return False
        return all(name in self.parsed_body for name in required_fields)

    def get_all_data(self) -> Dict[str, Any]:
        """
        Body, route params and query merged into one dict.

        Precedence: params override body keys; query only fills keys
        that neither body nor params provided.
        """
        data: Dict[str, Any] = {}
        if isinstance(self.parsed_body, dict):
            data.update(self.parsed_body)
        data.update(self.params)
        for key, value in self.query.items():
            data.setdefault(key, value)
        return data

    def elapsed_ms(self) -> float:
        """Milliseconds since the request was built."""
        return (time.time() - self.start_time) * 1000


# =============================================================================
# BUILDING
# =============================================================================

def _parse_json(body: bytes) -> Optional[Any]:
    """Parsed JSON document, or None when the body is not valid JSON."""
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        # RecursionError: nesting deeper than the interpreter stack
        return None


def parse_body(body: bytes, content_type_header: str) -> Any:
    """
    Classify and parse a request body.

    - application/json whose first non-blank byte is "{" or "[" → JSON
    - application/x-www-form-urlencoded → parse_query()
    - anything else, or any parse failure → {}
    """
    if "application/json" in content_type_header:
        stripped = body.lstrip()
        if stripped[:1] in (b"{", b"["):
            parsed = _parse_json(stripped)
            if isinstance(parsed, (dict, list)):
                return parsed
        return {}

    if "application/x-www-form-urlencoded" in content_type_header:
        return parse_query(body.decode("utf-8", errors="replace"))

    return {}


def resolve_real_ip(headers: Headers, remote_address: str) -> str:
    """First present proxy header from REAL_IP_HEADERS, else the peer address."""
    for name in REAL_IP_HEADERS:
        value = headers.get(name).strip()
        if name == "X-Forwarded-For":
            value = value.split(",", 1)[0].strip()
        if value:
            return value
    return remote_address


def forwarded_chain(headers: Headers) -> List[str]:
    """Entries of X-Forwarded-For, trimmed, empties dropped."""
    forwarded = headers.get("X-Forwarded-For")
    return [entry.strip() for entry in forwarded.split(",") if entry.strip()]


def build_request(raw: RawRequest, trust_proxy: bool = False) -> Request:
    """
    Build a Request from the transport's RawRequest.

    Args:
        raw: The inbound request as the transport saw it.
        trust_proxy: Honour X-Forwarded-* and the other proxy headers when
                     resolving ip, ips, protocol and hostname. Leave off
                     unless a trusted proxy sits in front of the app, or
                     clients can spoof their address.
    """
    headers = Headers(raw.headers)
    body = raw.body or b""

    query = parse_query(raw.query_string)
    query.update(raw.query_params)

    original_url = raw.path or "/"
    if raw.query_string:
        original_url = f"{original_url}?{raw.query_string.lstrip('?')}"

    protocol = raw.scheme.lower() or "http"
    host = headers.get("Host")
    ip = raw.remote_address
    ips: Tuple[str, ...] = ()

    if trust_proxy:
        forwarded_proto = headers.get("X-Forwarded-Proto").split(",", 1)[0].strip()
        protocol = forwarded_proto.lower() or protocol
        host = headers.get("X-Forwarded-Host").split(",", 1)[0].strip() or host
        ips = tuple(forwarded_chain(headers))
        ip = resolve_real_ip(headers, raw.remote_address)

    return Request(
        method=raw.method.upper(),
        path=normalize_path(raw.path),
        original_url=original_url,
        protocol=protocol,
        hostname=_strip_port(host),
        query=query,
        headers=headers,
        cookies=parse_cookies(headers.get("Cookie")),
        body=body,
        parsed_body=parse_body(body, headers.get("Content-Type")),
        remote_address=raw.remote_address,
        ip=ip,
        ips=ips,
        secure=protocol == "https",
        request_id=_request_id(headers.get("X-Request-ID")),
    )


def _strip_port(host: str) -> str:
    """Hostname part of a Host header ("example.com:8080" → "example.com")."""
    if host.startswith("["):
        # IPv6 literal: "[::1]:8080"
        return host.split("]", 1)[0] + "]"
    return host.split(":", 1)[0]


def _request_id(inbound: str) -> str:
    """Client-supplied X-Request-ID, or a fresh UUID when absent or unsafe to echo."""
    if inbound and "\r" not in inbound and "\n" not in inbound:
        return inbound
    return str(uuid.uuid4())
