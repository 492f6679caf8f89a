"""
=============================================================================
HEADER AND COOKIE MODEL
=============================================================================

Case-insensitive header storage plus both sides of cookie handling.

=============================================================================
HEADER STORAGE
=============================================================================

HTTP header names are case-insensitive (RFC 7230), but responses should be
written back with the casing the application chose. Headers keeps both:

    ┌──────────────────┬──────────────────────────────────────────────┐
    │ key (lowercase)  │ (display name, [values...])                  │
    ├──────────────────┼──────────────────────────────────────────────┤
    │ "content-type"   │ ("Content-Type", ["application/json"])       │
    │ "set-cookie"     │ ("Set-Cookie", ["a=1; Path=/", "b=2; ..."])  │
    └──────────────────┴──────────────────────────────────────────────┘

    headers.get("CONTENT-TYPE")   → O(1) dict lookup on "content-type"
    headers.set(name, value)      → replaces every value (last write wins)
    headers.add(name, value)      → appends a value (one wire line each)

Duplicate inbound header lines resolve last-write-wins: building Headers
from a pair list calls set() for each pair in wire order.

=============================================================================
COOKIES
=============================================================================

    Read side:   "sid=abc; theme=dark"  →  {"sid": "abc", "theme": "dark"}

    Write side:  Set-Cookie: sid=abc; Max-Age=3600; Path=/; HttpOnly; SameSite=Lax

Each cookie must be its own Set-Cookie line. Folding several cookies into
one comma-joined line breaks clients, because Expires dates contain commas.

=============================================================================
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

HeaderSource = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]

# Sentinel date used when clearing a cookie
COOKIE_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"


class Headers:
    """
    Header mapping with case-insensitive lookup and case-preserving output.

    Usage:
        headers = Headers({"Content-Type": "text/html"})
        headers.get("content-type")        # "text/html"
        headers.add("Set-Cookie", "a=1")
        headers.add("Set-Cookie", "b=2")
        list(headers.items())              # one pair per stored value
    """

    def __init__(self, source: HeaderSource = None):
        self._store: Dict[str, Tuple[str, List[str]]] = {}
        if source is None:
            return
        pairs = source.items() if isinstance(source, Mapping) else source
        for name, value in pairs:
            self.set(name, value)

    # =========================================================================
    # WRITE
    # =========================================================================

    def set(self, name: str, value: str) -> None:
        """Replace all values of a header (last write wins)."""
        self._store[name.lower()] = (name, [str(value)])

    def add(self, name: str, value: str) -> None:
        """Append another value, producing a separate header line."""
        key = name.lower()
        if key in self._store:
            self._store[key][1].append(str(value))
        else:
            self._store[key] = (name, [str(value)])

    def setdefault(self, name: str, value: str) -> str:
        """Set the header only if it is absent; return the stored value."""
        if name.lower() not in self._store:
            self.set(name, value)
        return self.get(name)

    def remove(self, name: str) -> None:
        """Delete a header if present."""
        self._store.pop(name.lower(), None)

    # =========================================================================
    # READ
    # =========================================================================

    def get(self, name: str, default: str = "") -> str:
        """Return the first value of a header, or default."""
        entry = self._store.get(name.lower())
        if entry is None:
            return default
        return entry[1][0]

    def get_all(self, name: str) -> List[str]:
        """Return every value stored for a header."""
        entry = self._store.get(name.lower())
        return list(entry[1]) if entry else []

    def items(self) -> Iterator[Tuple[str, str]]:
        """Yield (display name, value) once per stored value."""
        for display, values in self._store.values():
            for value in values:
                yield display, value

    def keys(self) -> List[str]:
        return [display for display, _ in self._store.values()]

    def to_dict(self) -> Dict[str, str]:
        """Flatten to {display name: first value}."""
        return {display: values[0] for display, values in self._store.values()}

    def copy(self) -> "Headers":
        clone = Headers()
        clone._store = {
            key: (display, list(values))
            for key, (display, values) in self._store.items()
        }
        return clone

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._store

    def __getitem__(self, name: str) -> str:
        entry = self._store.get(name.lower())
        if entry is None:
            raise KeyError(name)
        return entry[1][0]

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        if name.lower() not in self._store:
            raise KeyError(name)
        self.remove(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return sorted(self.items()) == sorted(other.items())
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({list(self.items())!r})"


# =============================================================================
# COOKIE PARSING
# =============================================================================

def parse_cookies(header: str) -> Dict[str, str]:
    """
    Parse a Cookie request header into a name → value dict.

    Splits on ";", trims whitespace around each pair, splits on the first
    "=". Pairs without "=" are ignored. Later duplicates win.
    """
    cookies: Dict[str, str] = {}
    if not header:
        return cookies

    for pair in header.split(";"):
        pair = pair.strip()
        name, sep, value = pair.partition("=")
        if sep:
            cookies[name] = value

    return cookies


# =============================================================================
# COOKIE ENCODING
# =============================================================================

@dataclass(frozen=True)
class CookieOptions:
    """
    Attributes for an outbound Set-Cookie line.

    Defaults are the safe ones: scoped to the whole site, hidden from
    JavaScript, and not sent on cross-site subrequests.
    """

    max_age: Optional[int] = None
    expires: Optional[str] = None
    domain: Optional[str] = None
    path: Optional[str] = "/"
    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = "Lax"


def serialize_cookie(name: str, value: str, options: Optional[CookieOptions] = None) -> str:
    """
    Build a single Set-Cookie header value.

    Attribute order:
        name=value; Max-Age; Expires; Domain; Path; Secure; HttpOnly; SameSite

    Example:
        >>> serialize_cookie("sid", "abc", CookieOptions(max_age=3600))
        'sid=abc; Max-Age=3600; Path=/; HttpOnly; SameSite=Lax'
    """
    opts = options or CookieOptions()
    parts = [f"{name}={value}"]

    if opts.max_age is not None:
        parts.append(f"Max-Age={int(opts.max_age)}")
    if opts.expires:
        parts.append(f"Expires={opts.expires}")
    if opts.domain:
        parts.append(f"Domain={opts.domain}")
    if opts.path:
        parts.append(f"Path={opts.path}")
    if opts.secure:
        parts.append("Secure")
    if opts.http_only:
        parts.append("HttpOnly")
    if opts.same_site:
        parts.append(f"SameSite={opts.same_site}")

    return "; ".join(parts)
