"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes read from a client socket into an ``HTTPRequest``.

    GET /api/v1/users/42?verbose=1 HTTP/1.1\r\n     ← request line
    Host: localhost:8080\r\n                         ← headers
    Authorization: Bearer token\r\n
    \r\n                                             ← blank line
    <body, Content-Length bytes>

Header names are normalised to lower case at parse time (RFC 7230 makes
them case-insensitive), so lookups never need ``.lower()`` on the hot path.

The parsed request is plain data. Request-scoped values discovered later
(path parameters, a path with a mount prefix stripped) are attached to a
*copy* made with ``dataclasses.replace`` so that the object a middleware
saw is never changed behind its back.

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Optional
from urllib.parse import parse_qs, quote, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code to answer with:

        400 Bad Request                 - malformed syntax
        405 Method Not Allowed          - unknown method token
        413 Payload Too Large           - request over the size limit
        505 HTTP Version Not Supported  - anything but 1.0 / 1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Upper-case method token (GET, HEAD, POST, ...).
        path:           URL-decoded path without the query string.
        raw_path:       The path as sent, still percent-encoded ("" if unknown).
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header values keyed by lower-case name.
        query_params:   Query string as dict of lists.
        body:           Raw body bytes (Content-Length bytes).
        path_params:    Wildcard values bound by the router for this request.
        client_address: (ip, port) of the peer.
        raw:            The unparsed request bytes.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)
    raw_path: str = ""

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, e.g. ``application/json``."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def escaped_path(self) -> str:
        """
        Percent-encoded path used for routing.

        ``/users/a%2Fb`` stays one segment here, while ``path`` would
        read it as two.
        """
        return self.raw_path or quote(self.path)

    @property
    def host(self) -> str:
        """Host header with any ``:port`` suffix removed, lower-cased."""
        host = self.headers.get("host", "").strip().lower()
        if host.startswith("["):
            # IPv6 literal: [::1]:8080
            end = host.find("]")
            return host[:end + 1] if end != -1 else host
        return host.rsplit(":", 1)[0] if ":" in host else host

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after the response.

        HTTP/1.1 keeps alive unless the client sends ``Connection: close``;
        HTTP/1.0 closes unless it sends ``Connection: keep-alive``.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def path_value(self, name: str) -> str:
        """
        Value bound to the ``{name}`` wildcard of the matched pattern.

        Returns an empty string when the pattern has no such wildcard,
        so handlers can call it without guarding.
        """
        return self.path_params.get(name, "")

    # =========================================================================
    # REQUEST-SCOPED COPIES
    # =========================================================================

    def with_path(self, path: str, raw_path: str = "") -> "HTTPRequest":
        """Copy of this request addressed to ``path`` (escaped as ``raw_path``)."""
        return replace(self, path=path, raw_path=raw_path)

    def with_path_params(self, params: Dict[str, str]) -> "HTTPRequest":
        """Copy of this request carrying ``params`` as its path parameters."""
        return replace(self, path_params=dict(params))


class RequestParser:
    """
    Parses raw HTTP/1.x request bytes into ``HTTPRequest`` objects.

    Steps:

        1. size check                       → 413
        2. split head / body at CRLF CRLF   → 400 if missing
        3. request line                     → 400 / 405 / 505
        4. header lines                     (lower-cased names)
        5. body trimmed to Content-Length   → 400 if short
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Bytes of exactly one request, as framed by ``Connection``.
            client_address: Peer (ip, port), kept for logging.

        Returns:
            The parsed request.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, raw_path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            raw_path=raw_path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str, Dict[str, list[str]], str]:
        """
        Split ``METHOD SP REQUEST-URI SP HTTP-VERSION``.

        Returns:
            (method, decoded path, escaped path, query params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        raw_path = parsed.path or "/"
        path = unquote(raw_path)
        if not path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {uri!r}")

        # Path traversal: "/api/../../etc/passwd"
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        query_params = parse_qs(parsed.query, keep_blank_values=True)
        return method, path, raw_path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse ``Name: value`` lines.

        Repeated headers are folded into one comma-separated value, and
        obsolete continuation lines (leading whitespace) are appended to
        the previous header. Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway ``RequestParser``."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
