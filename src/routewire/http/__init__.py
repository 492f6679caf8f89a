"""
HTTP model: codecs, headers, the request/response pair and the route table.

    codec.py         percent-decoding and query strings
    headers.py       case-insensitive Headers, cookie parse/serialize
    request.py       RawRequest → Request
    response.py      fluent Response → Reply
    router.py        ordered route table, first-match lookup
    status_codes.py  HTTPStatus with reason phrases
    mime_types.py    file extension → Content-Type
"""

from .codec import build_query, decode, encode, parse_query
from .headers import CookieOptions, Headers, parse_cookies, serialize_cookie
from .request import RawRequest, Request, build_request
from .response import Reply, Response, ResponseEndedError
from .router import ALL, SUPPORTED_METHODS, Route, RouteGroup, RouteMatch, Router, RouteRegistrar
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    "decode",
    "encode",
    "parse_query",
    "build_query",
    "Headers",
    "CookieOptions",
    "parse_cookies",
    "serialize_cookie",
    "RawRequest",
    "Request",
    "build_request",
    "Reply",
    "Response",
    "ResponseEndedError",
    "ALL",
    "SUPPORTED_METHODS",
    "Route",
    "RouteGroup",
    "RouteMatch",
    "Router",
    "RouteRegistrar",
    "HTTPStatus",
    "reason_phrase",
]
