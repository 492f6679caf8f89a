"""
=============================================================================
RESPONSE MODEL
=============================================================================

Accumulates outbound state (status, headers, body) through a fluent
builder, then hands the transport an immutable Reply.

=============================================================================
LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ONE RESPONSE, ONE CALL                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Response()            status 200, text/plain; charset=utf-8        │
    │       │                                                              │
    │       ▼                                                              │
    │   handler mutates       res.status(201).set("X-Id", "7").json(...)   │
    │       │                                                              │
    │       ▼                                                              │
    │   res.end()             ended = True, body is now frozen             │
    │       │                                                              │
    │       ▼                                                              │
    │   res.to_reply()        Reply(status_code, reason, headers, body)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every mutator returns self, so calls chain:

    res.status(HTTPStatus.CREATED).cache(60).json({"id": 7})

content_type is not a separate field. It reads and writes the
Content-Type header entry, so the two can never disagree.

=============================================================================
AFTER end()
=============================================================================

Writing a body after end() is a programmer error and raises
ResponseEndedError. Header setters and status() stay allowed so that the
dispatch pipeline can still stamp X-Response-Time and friends.

    res.end("done")
    res.set("X-Extra", "1")     # fine
    res.json({"late": True})    # ResponseEndedError

=============================================================================
ENVELOPES
=============================================================================

    error(404, "Not here")
        {"error": true, "status": 404, "message": "Not here",
         "timestamp": "2026-01-01T12:00:00.000Z"}

    success({"id": 1})
        {"success": true, "message": "Success", "data": {"id": 1}}

    paginate(items, page=2, limit=10, total=25)
        {"success": true, "data": [...],
         "pagination": {"page": 2, "limit": 10, "total": 25,
                        "totalPages": 3, "hasNext": true, "hasPrev": true}}

=============================================================================
"""

import csv
import io
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime, formatdate
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .headers import COOKIE_EPOCH, CookieOptions, Headers, serialize_cookie
from .mime_types import get_content_type
from .status_codes import HTTPStatus, reason_phrase

DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"

DEFAULT_CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
DEFAULT_CORS_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]

_JSONP_CALLBACK_UNSAFE = re.compile(r"[^A-Za-z0-9_$.]")


class ResponseEndedError(RuntimeError):
    """A body write was attempted after Response.end()."""


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_http_date(when: Union[datetime, float, int]) -> str:
    """
    Format a datetime or epoch timestamp as an HTTP-date (RFC 7231).

        Wed, 01 Jan 2026 12:00:00 GMT

    Naive datetimes are taken to be UTC.
    """
    if isinstance(when, datetime):
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return format_datetime(when.astimezone(timezone.utc), usegmt=True)
    return formatdate(float(when), usegmt=True)


def _header_value(name: str, value: Any) -> str:
    """str(value), refusing CR/LF so a value cannot start a new header line."""
    text = str(value)
    if "\r" in text or "\n" in text:
        raise ValueError(f"header {name!r} value contains a line break")
    return text


@dataclass(frozen=True)
class Reply:
    """
    What the core hands back to the transport.

    headers holds one (name, value) pair per wire line, so several
    Set-Cookie entries stay separate.
    """

    status_code: int
    reason: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    content_type: str = DEFAULT_CONTENT_TYPE

    def header(self, name: str, default: str = "") -> str:
        """First value of a header, matched case-insensitively."""
        values = self.header_values(name)
        return values[0] if values else default

    def header_values(self, name: str) -> List[str]:
        wanted = name.lower()
        return [value for key, value in self.headers if key.lower() == wanted]

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode a JSON body. Raises ValueError if the body is not JSON."""
        return json.loads(self.body.decode("utf-8"))


class Response:
    """
    Fluent, mutable builder for one outbound response.

    =========================================================================
    METHOD GROUPS
    =========================================================================

        Status      status, send_status
        Headers     set, append, get, remove, type
        Body        send, text, html, xml, json, jsonp, csv, sse
        Envelopes   error, success, paginate
        Files       send_file, download
        Navigation  redirect, links
        Declarative cookie, clear_cookie, cors, security_headers, cache,
                    no_cache, rate_limit, attachment, etag,
                    last_modified, vary
        Terminal    end, to_reply

    =========================================================================
    """

    def __init__(self):
        self.status_code: int = HTTPStatus.OK
        self.body: bytes = b""
        self.headers = Headers()
        self.headers.set("Content-Type", DEFAULT_CONTENT_TYPE)
        self.ended = False
        # Per-request scratch space shared by middleware and handlers
        self.locals: Dict[str, Any] = {}

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type")

    @content_type.setter
    def content_type(self, value: str) -> None:
        self.headers.set("Content-Type", value)

    def __repr__(self) -> str:
        return (
            f"Response(status={int(self.status_code)}, "
            f"content_type={self.content_type!r}, "
            f"body={len(self.body)} bytes, ended={self.ended})"
        )

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _ensure_writable(self, operation: str) -> None:
        if self.ended:
            raise ResponseEndedError(f"cannot call {operation}() after end()")

    def _write(self, operation: str, body: Union[str, bytes], content_type: Optional[str]) -> "Response":
        self._ensure_writable(operation)
        self.body = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        if content_type is not None:
            self.content_type = content_type
        return self

    # =========================================================================
    # STATUS
    # =========================================================================

    def status(self, code: int) -> "Response":
        self.status_code = int(code)
        return self

    def send_status(self, code: int) -> "Response":
        """Set the status and use "<code> <phrase>" as a plain-text body."""
        self._ensure_writable("send_status")
        self.status(code)
        return self._write("send_status", f"{int(code)} {reason_phrase(code)}", DEFAULT_CONTENT_TYPE)

    # =========================================================================
    # HEADERS
    # =========================================================================

    def set(self, name: str, value: Any) -> "Response":
        """Set a header, replacing any earlier value."""
        self.headers.set(name, _header_value(name, value))
        return self

    def append(self, name: str, value: Any) -> "Response":
        """Add another value for a header; each value is its own wire line."""
        self.headers.add(name, _header_value(name, value))
        return self

    def get(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def remove(self, name: str) -> "Response":
        self.headers.remove(name)
        return self

    def type(self, mime: str) -> "Response":
        self.content_type = mime
        return self

    # =========================================================================
    # BODY
    # =========================================================================

    def send(self, data: Any) -> "Response":
        """
        Send a body, choosing the representation from the value's type.

            str          → text/plain; charset=utf-8
            bytes        → body only, Content-Type left as it is
            dict / list  → JSON
            anything else→ str(data) as text
        """
        if isinstance(data, (bytes, bytearray)):
            return self._write("send", data, None)
        if isinstance(data, (dict, list)):
            return self.json(data)
        return self._write("send", "" if data is None else str(data), DEFAULT_CONTENT_TYPE)

    def text(self, data: str) -> "Response":
        return self._write("text", data, DEFAULT_CONTENT_TYPE)

    def html(self, data: str) -> "Response":
        return self._write("html", data, "text/html; charset=utf-8")

    def xml(self, data: str) -> "Response":
        return self._write("xml", data, "application/xml; charset=utf-8")

    def json(self, data: Any, status: Optional[int] = None, pretty: bool = False) -> "Response":
        """
        Serialize data as the JSON body.

        Args:
            data: Any JSON-serializable value
            status: Status to set first, if given
            pretty: Indent the output for humans
        """
        self._ensure_writable("json")
        if status is not None:
            self.status(status)
        indent = 2 if pretty else None
        payload = json.dumps(data, indent=indent, ensure_ascii=False)
        return self._write("json", payload, "application/json; charset=utf-8")

    def jsonp(self, data: Any, callback: str = "callback") -> "Response":
        """
        Wrap JSON in a callback invocation for legacy cross-origin loads.

        The callback name is reduced to [A-Za-z0-9_$.] so that a hostile
        ?callback= value cannot inject script.
        """
        name = _JSONP_CALLBACK_UNSAFE.sub("", callback) or "callback"
        payload = json.dumps(data, ensure_ascii=False)
        self._write("jsonp", f"/**/ {name}({payload});", "text/javascript; charset=utf-8")
        return self.set("X-Content-Type-Options", "nosniff")

    def csv(
        self,
        rows: Iterable[Union[Sequence[Any], Mapping[str, Any]]],
        fieldnames: Optional[Sequence[str]] = None,
        filename: Optional[str] = None,
    ) -> "Response":
        """
        Serialize rows as CSV.

        Rows may be sequences or mappings. For mappings the header row is
        fieldnames, or the keys of the rows in first-seen order. For
        sequences a header row is written only when fieldnames is given.
        A filename turns the response into a download.
        """
        self._ensure_writable("csv")
        rows = list(rows)
        buffer = io.StringIO()

        if rows and isinstance(rows[0], Mapping):
            if fieldnames is None:
                columns: Dict[str, None] = {}
                for row in rows:
                    columns.update(dict.fromkeys(row))
                fieldnames = list(columns)
            writer = csv.DictWriter(buffer, fieldnames=list(fieldnames), extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
        else:
            plain = csv.writer(buffer)
            if fieldnames:
                plain.writerow(fieldnames)
            plain.writerows(rows)

        self._write("csv", buffer.getvalue(), "text/csv; charset=utf-8")
        if filename:
            self.attachment(filename)
        return self

    def sse(
        self,
        data: Any,
        event: Optional[str] = None,
        event_id: Optional[str] = None,
        retry: Optional[int] = None,
    ) -> "Response":
        """
        Send a single Server-Sent Events frame.

            id: 42
            event: update
            retry: 3000
            data: first line
            data: second line
            <blank line>
        """
        self._ensure_writable("sse")
        text = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)

        lines = []
        if event_id is not None:
            lines.append(f"id: {event_id}")
        if event:
            lines.append(f"event: {event}")
        if retry is not None:
            lines.append(f"retry: {int(retry)}")
        lines.extend(f"data: {line}" for line in text.split("\n"))

        self._write("sse", "\n".join(lines) + "\n\n", "text/event-stream")
        self.set("Cache-Control", "no-cache")
        return self.set("Connection", "keep-alive")

    # =========================================================================
    # ENVELOPES
    # =========================================================================

    def error(self, code: int, message: str, details: Any = None) -> "Response":
        """Send the standard JSON error envelope with the given status."""
        envelope: Dict[str, Any] = {
            "error": True,
            "status": int(code),
            "message": message,
        }
        if details is not None:
            envelope["details"] = details
        envelope["timestamp"] = utc_timestamp()
        return self.json(envelope, status=code)

    def success(self, data: Any = None, message: str = "Success") -> "Response":
        return self.json({"success": True, "message": message, "data": data})

    def paginate(self, items: List[Any], page: int, limit: int, total: int) -> "Response":
        """
        Send one page of a collection with navigation metadata.

        totalPages rounds up so a partial last page still counts; a
        non-positive limit yields zero pages.
        """
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return self.json({
            "success": True,
            "data": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": total_pages,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
        })

    # =========================================================================
    # FILES
    # =========================================================================

    def send_file(self, path: Union[str, Path], mime: Optional[str] = None) -> bool:
        """
        Send a file from disk as the body.

        Returns:
            True on success. False if the file cannot be read, in which
            case the response becomes 404 "File Not Found".
        """
        self._ensure_writable("send_file")
        try:
            content = Path(path).read_bytes()
        except OSError:
            self.status(HTTPStatus.NOT_FOUND)
            self._write("send_file", "File Not Found", DEFAULT_CONTENT_TYPE)
            return False

        self._write("send_file", content, mime or get_content_type(path))
        self.cache(3600)
        self.set("Content-Length", len(content))
        return True

    def download(self, path: Union[str, Path], filename: Optional[str] = None) -> bool:
        """send_file() plus Content-Disposition: attachment."""
        if not self.send_file(path):
            return False
        self.attachment(filename or Path(path).name)
        return True

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def redirect(self, url: str, code: int = HTTPStatus.FOUND) -> "Response":
        self._ensure_writable("redirect")
        self.status(code)
        self.set("Location", url)
        return self._write("redirect", f"Redirecting to: {url}", DEFAULT_CONTENT_TYPE)

    def links(self, links: Mapping[str, str]) -> "Response":
        """
        Set the Link header from a rel → href mapping.

            {"next": "/p/3"}  →  Link: </p/3>; rel="next"
        """
        value = ", ".join(f'<{href}>; rel="{rel}"' for rel, href in links.items())
        return self.set("Link", value)

    # =========================================================================
    # DECLARATIVE HEADER SETTERS
    # =========================================================================

    def cookie(
        self,
        name: str,
        value: str,
        options: Optional[CookieOptions] = None,
        **attributes: Any,
    ) -> "Response":
        """
        Add a Set-Cookie line.

        Pass a CookieOptions, or its fields as keyword arguments:

            res.cookie("sid", token, max_age=3600, secure=True)
        """
        if options is None:
            options = CookieOptions(**attributes)
        return self.append("Set-Cookie", serialize_cookie(name, value, options))

    def clear_cookie(self, name: str, path: Optional[str] = "/", domain: Optional[str] = None) -> "Response":
        """Expire a cookie on the client."""
        options = CookieOptions(max_age=0, expires=COOKIE_EPOCH, path=path, domain=domain)
        return self.append("Set-Cookie", serialize_cookie(name, "", options))

    def cors(
        self,
        origin: str = "*",
        methods: Optional[List[str]] = None,
        headers: Optional[List[str]] = None,
        credentials: bool = False,
        max_age: int = 86400,
    ) -> "Response":
        self.set("Access-Control-Allow-Origin", origin)
        self.set("Access-Control-Allow-Methods", ", ".join(methods or DEFAULT_CORS_METHODS))
        self.set("Access-Control-Allow-Headers", ", ".join(headers or DEFAULT_CORS_HEADERS))
        self.set("Access-Control-Max-Age", max_age)
        if credentials:
            self.set("Access-Control-Allow-Credentials", "true")
        return self

    def security_headers(self, hsts_max_age: int = 31536000) -> "Response":
        """
        Apply the baseline browser hardening headers.

            X-Content-Type-Options     nosniff
            X-Frame-Options            DENY
            X-XSS-Protection           1; mode=block
            Strict-Transport-Security  max-age=N; includeSubDomains
            Referrer-Policy            strict-origin-when-cross-origin
        """
        self.set("X-Content-Type-Options", "nosniff")
        self.set("X-Frame-Options", "DENY")
        self.set("X-XSS-Protection", "1; mode=block")
        self.set("Strict-Transport-Security", f"max-age={hsts_max_age}; includeSubDomains")
        return self.set("Referrer-Policy", "strict-origin-when-cross-origin")

    def cache(self, max_age: int = 3600) -> "Response":
        return self.set("Cache-Control", f"public, max-age={max_age}")

    def no_cache(self) -> "Response":
        # Pragma and Expires cover HTTP/1.0 caches
        self.set("Cache-Control", "no-store, no-cache, must-revalidate")
        self.set("Pragma", "no-cache")
        return self.set("Expires", "0")

    def rate_limit(self, limit: int, remaining: int, reset: Optional[int] = None) -> "Response":
        self.set("X-RateLimit-Limit", limit)
        self.set("X-RateLimit-Remaining", remaining)
        if reset is not None:
            self.set("X-RateLimit-Reset", reset)
        return self

    def attachment(self, filename: Optional[str] = None) -> "Response":
        if filename:
            return self.set("Content-Disposition", f'attachment; filename="{filename}"')
        return self.set("Content-Disposition", "attachment")

    def etag(self, value: str, weak: bool = False) -> "Response":
        """Set ETag, quoting the value unless it is already quoted."""
        tag = value if value.startswith('"') else f'"{value}"'
        return self.set("ETag", f"W/{tag}" if weak else tag)

    def last_modified(self, when: Union[datetime, float, int, str]) -> "Response":
        value = when if isinstance(when, str) else format_http_date(when)
        return self.set("Last-Modified", value)

    def vary(self, header_name: str) -> "Response":
        """Add a field to Vary, keeping the ones already listed."""
        fields = [item.strip() for item in self.get("Vary").split(",") if item.strip()]
        if header_name.lower() not in (item.lower() for item in fields):
            fields.append(header_name)
        return self.set("Vary", ", ".join(fields))

    # =========================================================================
    # TERMINAL
    # =========================================================================

    def end(self, data: Union[str, bytes, None] = None) -> "Response":
        """
        Mark the response as finished, optionally replacing the body.

        Calling end() again without data is harmless; calling it with data
        raises ResponseEndedError like any other late body write.
        """
        if data:
            self._write("end", data, None)
        self.ended = True
        return self

    def to_reply(self) -> Reply:
        """Freeze the accumulated state into a Reply for the transport."""
        return Reply(
            status_code=int(self.status_code),
            reason=reason_phrase(self.status_code),
            headers=list(self.headers.items()),
            body=self.body,
            content_type=self.content_type,
        )
