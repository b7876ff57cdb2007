"""
Unit tests for HTTP response building.
"""

import json

from apiserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    TEXT_PLAIN,
    format_http_date,
    ok,
    unauthorized,
    not_found,
    method_not_allowed,
    internal_error,
    redirect,
)
from apiserver.http.status_codes import HTTPStatus


class TestHTTPResponse:

    def test_status_line(self):
        response = HTTPResponse(status=HTTPStatus.UNAUTHORIZED)
        assert response.status_line == "HTTP/1.1 401 Unauthorized"

    def test_to_bytes_includes_headers(self):
        response = HTTPResponse(headers={"X-Custom": "value"}, body=b"hi")
        data = response.to_bytes(server_name="test/1.0")

        head, _, body = data.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value" in head
        assert b"Server: test/1.0" in head
        assert b"Date: " in head
        assert body == b"hi"

    def test_to_bytes_sets_content_length(self):
        data = HTTPResponse(body=b"User ID: 42").to_bytes()
        assert b"Content-Length: 11\r\n" in data

    def test_to_bytes_without_body(self):
        data = HTTPResponse(body=b"User ID: 42").to_bytes(include_body=False)

        assert data.endswith(b"\r\n\r\n")
        assert b"Content-Length: 11\r\n" in data
        assert b"User ID" not in data

    def test_set_header_chaining(self):
        response = HTTPResponse().set_header("A", "1").set_header("B", "2")
        assert response.headers == {"A": "1", "B": "2"}


class TestResponseBuilder:

    def test_text_body(self):
        response = ResponseBuilder().text("hello").build()

        assert response.body == b"hello"
        assert response.headers["Content-Type"] == TEXT_PLAIN

    def test_json_body(self):
        response = ResponseBuilder().json({"id": "42"}).build()

        assert response.headers["Content-Type"] == "application/json"
        assert json.loads(response.body) == {"id": "42"}

    def test_redirect(self):
        response = ResponseBuilder().redirect("/new").build()

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "/new"

    def test_redirect_permanent(self):
        assert redirect("/new/", permanent=True).status == 301

    def test_build_copies_headers(self):
        builder = ResponseBuilder().header("A", "1")
        first = builder.build()
        first.set_header("B", "2")

        assert "B" not in builder.build().headers


class TestConvenienceFunctions:

    def test_ok_text(self):
        response = ok("User ID: 42")

        assert response.status == 200
        assert response.text == "User ID: 42"
        assert response.headers["Content-Type"] == TEXT_PLAIN

    def test_unauthorized(self):
        response = unauthorized()

        assert response.status == 401
        assert response.body == b"Unauthorized"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_not_found(self):
        response = not_found()

        assert response.status == 404
        assert response.text == "404 page not found"

    def test_method_not_allowed(self):
        response = method_not_allowed(["GET", "HEAD"])

        assert response.status == 405
        assert response.headers["Allow"] == "GET, HEAD"

    def test_internal_error(self):
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR


class TestHTTPStatus:

    def test_status_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.METHOD_NOT_ALLOWED.phrase == "Method Not Allowed"

    def test_status_categories(self):
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.MOVED_PERMANENTLY.is_redirect
        assert HTTPStatus.UNAUTHORIZED.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error
        assert not HTTPStatus.OK.is_error


class TestFormatHTTPDate:

    def test_format(self):
        from datetime import datetime, timezone
        dt = datetime(2026, 10, 18, 12, 0, 5, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Sun, 18 Oct 2026 12:00:05 GMT"
