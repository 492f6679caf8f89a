"""
Unit tests for the header and cookie model.
"""

from routewire.http.headers import CookieOptions, Headers, parse_cookies, serialize_cookie


class TestHeaders:
    """Tests for Headers."""

    def test_case_insensitive_lookup(self):
        headers = Headers({"Content-Type": "text/html"})

        assert headers.get("content-type") == "text/html"
        assert headers.get("CONTENT-TYPE") == "text/html"
        assert "content-TYPE" in headers

    def test_original_casing_preserved(self):
        headers = Headers()
        headers.set("X-Custom-Header", "1")

        assert list(headers.items()) == [("X-Custom-Header", "1")]

    def test_missing_returns_default(self):
        headers = Headers()

        assert headers.get("X-Missing") == ""
        assert headers.get("X-Missing", "fallback") == "fallback"

    def test_set_replaces_regardless_of_case(self):
        headers = Headers()
        headers.set("Accept", "text/html")
        headers.set("accept", "application/json")

        assert headers.get_all("ACCEPT") == ["application/json"]
        assert len(headers) == 1

    def test_add_keeps_every_value(self):
        headers = Headers()
        headers.add("Set-Cookie", "a=1")
        headers.add("set-cookie", "b=2")

        assert headers.get("Set-Cookie") == "a=1"
        assert list(headers.items()) == [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]

    def test_duplicate_inbound_lines_last_wins(self):
        headers = Headers([("X-Id", "first"), ("x-id", "second")])

        assert headers.get("X-Id") == "second"

    def test_setdefault(self):
        headers = Headers({"X-Frame-Options": "SAMEORIGIN"})

        assert headers.setdefault("x-frame-options", "DENY") == "SAMEORIGIN"
        assert headers.setdefault("Referrer-Policy", "no-referrer") == "no-referrer"

    def test_remove_and_delitem(self):
        headers = Headers({"A": "1", "B": "2"})
        headers.remove("a")
        del headers["b"]

        assert len(headers) == 0

    def test_copy_is_independent(self):
        original = Headers({"A": "1"})
        clone = original.copy()
        clone.add("A", "2")

        assert original.get_all("A") == ["1"]
        assert clone.get_all("A") == ["1", "2"]


class TestParseCookies:
    """Tests for parse_cookies()."""

    def test_basic(self):
        assert parse_cookies("session=abc123; theme=dark") == {"session": "abc123", "theme": "dark"}

    def test_whitespace_trimmed(self):
        assert parse_cookies("  a=1 ;b=2  ") == {"a": "1", "b": "2"}

    def test_value_with_equals(self):
        assert parse_cookies("token=a=b") == {"token": "a=b"}

    def test_pair_without_equals_ignored(self):
        assert parse_cookies("flag; a=1") == {"a": "1"}

    def test_empty(self):
        assert parse_cookies("") == {}


class TestSerializeCookie:
    """Tests for serialize_cookie()."""

    def test_defaults(self):
        assert serialize_cookie("sid", "abc") == "sid=abc; Path=/; HttpOnly; SameSite=Lax"

    def test_all_attributes_in_order(self):
        options = CookieOptions(
            max_age=3600,
            expires="Wed, 21 Oct 2026 07:28:00 GMT",
            domain="example.com",
            path="/app",
            secure=True,
            http_only=True,
            same_site="Strict",
        )

        assert serialize_cookie("sid", "abc", options) == (
            "sid=abc; Max-Age=3600; Expires=Wed, 21 Oct 2026 07:28:00 GMT; "
            "Domain=example.com; Path=/app; Secure; HttpOnly; SameSite=Strict"
        )

    def test_flags_can_be_disabled(self):
        options = CookieOptions(path=None, http_only=False, same_site=None)

        assert serialize_cookie("theme", "dark", options) == "theme=dark"
