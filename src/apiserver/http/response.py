"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses and serialises them for the socket.

    HTTP/1.1 200 OK\r\n                              ← status line
    Content-Type: text/plain; charset=utf-8\r\n
    Content-Length: 10\r\n                           ← auto-added
    Date: Sun, 18 Oct 2026 12:00:00 GMT\r\n          ← auto-added
    Server: apiserver/1.0\r\n                        ← auto-added
    \r\n
    User ID: 42                                      ← body

Handlers return an ``HTTPResponse`` value; nothing is written to the
client until the transport calls ``to_bytes()``. That is what lets a
middleware short-circuit simply by returning its own response instead of
calling ``next``.

Error helpers follow one convention: a plain-text body holding the
message, ``Content-Type: text/plain; charset=utf-8`` and
``X-Content-Type-Options: nosniff``.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be sent.

    Use ``ResponseBuilder`` or the helpers at the bottom of this module for
    anything beyond a bare status code.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. ``HTTP/1.1 401 Unauthorized``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header, returning self for chaining."""
        self.headers[name] = value
        return self

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(
        self,
        server_name: str = "apiserver/1.0",
        include_body: bool = True,
    ) -> bytes:
        """
        Serialise the response.

        Content-Length, Date and Server are filled in when the handler did
        not set them. With ``include_body=False`` (HEAD requests) the
        headers still describe the body that a GET would have returned,
        but the body bytes themselves are omitted.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return head + self.body if include_body else head


class ResponseBuilder:
    """
    Fluent builder for ``HTTPResponse``.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .text("User ID: 42")
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        """Plain-text body."""
        return self.content_type(content_type).body(text)

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """JSON body (UTF-8, ``application/json``)."""
        payload = json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
        return self.content_type("application/json").body(payload)

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """301 when ``permanent`` else 302, with a Location header."""
        status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        return self.status(status).header("Location", location)

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an RFC 7231 HTTP-date.

    Example: ``Sun, 18 Oct 2026 12:00:00 GMT``
    """
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK.

    dict/list bodies become JSON, str bodies plain text, bytes are sent
    as given.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or TEXT_PLAIN)
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def error(message: str, status: Union[HTTPStatus, int]) -> HTTPResponse:
    """
    Plain-text error response carrying ``message`` as the whole body.
    """
    return (ResponseBuilder()
        .status(status)
        .text(message)
        .header("X-Content-Type-Options", "nosniff")
        .build())


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error(message, HTTPStatus.BAD_REQUEST)


def unauthorized(message: str = "Unauthorized") -> HTTPResponse:
    """401 with the message as the body."""
    return error(message, HTTPStatus.UNAUTHORIZED)


def not_found(message: str = "404 page not found") -> HTTPResponse:
    return error(message, HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    response = error("Method Not Allowed", HTTPStatus.METHOD_NOT_ALLOWED)
    return response.set_header("Allow", ", ".join(allowed_methods))


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Keep ``message`` generic; details belong in the log."""
    return error(message, HTTPStatus.INTERNAL_SERVER_ERROR)
