"""
=============================================================================
URL / QUERY CODEC
=============================================================================

Percent-decoding and query-string parsing for the request model.

    "name=John+Doe&city=S%C3%A3o%20Paulo&flag"
        │
        ▼  split on "&", then on the FIRST "="
    [("name", "John+Doe"), ("city", "S%C3%A3o%20Paulo")]     ← "flag" dropped
        │
        ▼  decode() key and value
    {"name": "John Doe", "city": "São Paulo"}

Both operations are total: malformed input degrades (passes through)
instead of raising. A stray "%" that is not followed by two hex digits is
kept literally, so "100%" decodes to "100%".

=============================================================================
"""

from typing import Dict, Mapping

_HEX_DIGITS = set("0123456789abcdefABCDEF")

# RFC 3986 unreserved characters never need escaping
_UNRESERVED = set(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)


def decode(segment: str) -> str:
    """
    Percent-decode a URL component using form-encoding rules.

    - "%XY" becomes the byte 0xXY
    - "+" becomes a space
    - everything else passes through unchanged

    Decoded bytes are read back as UTF-8; invalid sequences are replaced
    rather than rejected.

    Examples:
        >>> decode("John+Doe")
        'John Doe'
        >>> decode("caf%C3%A9")
        'café'
        >>> decode("50%")
        '50%'
    """
    if "%" not in segment and "+" not in segment:
        return segment

    out = bytearray()
    i = 0
    length = len(segment)

    while i < length:
        char = segment[i]
        if (
            char == "%"
            and i + 2 < length
            and segment[i + 1] in _HEX_DIGITS
            and segment[i + 2] in _HEX_DIGITS
        ):
            out.append(int(segment[i + 1:i + 3], 16))
            i += 3
            continue

        if char == "+":
            out.append(0x20)
        else:
            out.extend(char.encode("utf-8"))
        i += 1

    return out.decode("utf-8", errors="replace")


def encode(text: str) -> str:
    """
    Percent-encode a string so that decode(encode(s)) == s.

    Unreserved characters are kept, a space becomes "+", and every other
    character is written as "%XY" escapes of its UTF-8 bytes.
    """
    parts = []
    for char in text:
        if char in _UNRESERVED:
            parts.append(char)
        elif char == " ":
            parts.append("+")
        else:
            parts.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(parts)


def parse_query(raw: str) -> Dict[str, str]:
    """
    Parse a query string (or form-encoded body) into a flat dict.

    Rules:
        - pairs are separated by "&"
        - each pair is split on the first "=" only ("a=b=c" → {"a": "b=c"})
        - pairs without "=" are dropped
        - keys and values are decoded with decode()
        - the last occurrence of a duplicate key wins

    Args:
        raw: Query string, with or without the leading "?"

    Returns:
        Mapping of decoded key → decoded value
    """
    if raw.startswith("?"):
        raw = raw[1:]

    query: Dict[str, str] = {}
    if not raw:
        return query

    for pair in raw.split("&"):
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        query[decode(key)] = decode(value)

    return query


def build_query(params: Mapping[str, object]) -> str:
    """Encode a mapping back into a query string (no leading "?")."""
    return "&".join(
        f"{encode(str(key))}={encode(str(value))}"
        for key, value in params.items()
    )
