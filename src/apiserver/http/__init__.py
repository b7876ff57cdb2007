"""
HTTP protocol layer: request parsing, responses, status codes, routing.
"""

from .request import HTTPRequest, HTTPParseError, RequestParser, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    error,
    redirect,
    bad_request,
    unauthorized,
    not_found,
    method_not_allowed,
    internal_error,
)
from .status_codes import HTTPStatus
from .router import (
    Router,
    Route,
    RouteMatch,
    RouteError,
    RouteConflictError,
    InvalidPatternError,
    strip_prefix,
)

__all__ = [
    "HTTPRequest",
    "HTTPParseError",
    "RequestParser",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "error",
    "redirect",
    "bad_request",
    "unauthorized",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "HTTPStatus",
    "Router",
    "Route",
    "RouteMatch",
    "RouteError",
    "RouteConflictError",
    "InvalidPatternError",
    "strip_prefix",
]
