"""
Unit tests for HTTP request parsing.
"""

import pytest

from apiserver.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/v1/users/42"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.host == "localhost"
        assert request.user_agent == "pytest"
        assert request.get_header("Authorization") == "Bearer token"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.get_query("verbose") == "1"
        assert request.query_params["tag"] == ["a", "b"]
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.content_type == "application/json"
        assert request.body == b'{"name": "Ada"}'
        assert request.is_keep_alive is False

    def test_parse_path_is_decoded(self):
        raw = b"GET /users/john%20doe HTTP/1.1\r\nHost: localhost\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/users/john doe"

    def test_parse_keeps_escaped_path(self):
        raw = b"GET /users/a%2Fb HTTP/1.1\r\nHost: localhost\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/users/a/b"
        assert request.raw_path == "/users/a%2Fb"
        assert request.escaped_path == "/users/a%2Fb"

    def test_escaped_path_without_raw_path(self):
        request = HTTPRequest(method="GET", path="/users/john doe")

        assert request.escaped_path == "/users/john%20doe"

    def test_parse_invalid_method(self):
        raw = b"BREW /pot HTTP/1.1\r\nHost: localhost\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"NOT A VALID REQUEST\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_missing_header_terminator(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: localhost\r\n")

    def test_parse_path_traversal_blocked(self):
        raw = b"GET /api/../../etc/passwd HTTP/1.1\r\nHost: localhost\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    def test_parse_request_too_large(self):
        raw = b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n" + b"x" * 100

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw, max_size=50)

        assert exc_info.value.status_code == 413

    def test_http_version_parsing(self):
        request = parse_request(b"GET / HTTP/1.0\r\nHost: localhost\r\n\r\n")
        assert request.version == "HTTP/1.0"
        assert request.is_keep_alive is False

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\nHost: localhost\r\n\r\n")
        assert exc_info.value.status_code == 505

    def test_content_length_handling(self):
        raw = (
            b"POST /submit HTTP/1.1\r\n"
            b"Content-Length: 5\r\n"
            b"\r\n"
            b"HelloExtra"
        )
        request = parse_request(raw)

        assert request.body == b"Hello"

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_case_insensitive_headers(self):
        raw = b"GET / HTTP/1.1\r\nAUTHORIZATION: Bearer token\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("authorization") == "Bearer token"
        assert request.get_header("Authorization") == "Bearer token"

    def test_repeated_headers_are_folded(self):
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("Accept") == "a, b"


class TestHTTPRequest:
    """Tests for HTTPRequest accessors and request-scoped copies."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("Authorization") == ""
        assert request.get_header("X-Missing", "fallback") == "fallback"

    def test_host_strips_port(self):
        assert HTTPRequest("GET", "/", headers={"host": "Example.com:8080"}).host == "example.com"
        assert HTTPRequest("GET", "/", headers={"host": "[::1]:8080"}).host == "[::1]"
        assert HTTPRequest("GET", "/").host == ""

    def test_path_value(self):
        request = HTTPRequest("GET", "/users/42", path_params={"userID": "42"})

        assert request.path_value("userID") == "42"
        assert request.path_value("missing") == ""

    def test_with_path_params_returns_copy(self):
        original = HTTPRequest("GET", "/users/42")
        bound = original.with_path_params({"userID": "42"})

        assert bound.path_value("userID") == "42"
        assert original.path_params == {}
        assert bound is not original

    def test_with_path_returns_copy(self):
        original = HTTPRequest("GET", "/api/v1/users/42")
        stripped = original.with_path("/users/42")

        assert stripped.path == "/users/42"
        assert original.path == "/api/v1/users/42"
