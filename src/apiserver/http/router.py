"""
=============================================================================
HANDLER REGISTRY (URL ROUTER)
=============================================================================

Binds (method, host, path) patterns to handlers and picks the handler for
each request.

=============================================================================
PATTERN SYNTAX
=============================================================================

    [METHOD ][HOST]/[PATH]

    "GET /users/{userID}"        GET (and HEAD) only, one named segment
    "/users/{userID}"            any method
    "POST /files/{path...}"      {name...} binds the rest of the path
    "/api/v1/"                   trailing slash: the whole subtree
    "/{$}"                       {$}: exactly "/" and nothing below it
    "example.com/"               only requests with Host: example.com

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     SEGMENT KINDS                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   "users"      LITERAL     must equal the path segment              │
    │   "{userID}"   WILDCARD    any one non-empty segment, bound by name │
    │   "{rest...}"  REMAINDER   everything left (may be empty), last only│
    │   "/" at end   REMAINDER   anonymous: same as "{...}" with no name  │
    │   "{$}"        LITERAL ""  the empty segment after a final slash    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PRECEDENCE
=============================================================================

When several patterns match, the most specific one wins. Order of
registration never matters:

    1. a pattern with a host beats one without
    2. compare segment by segment: LITERAL > WILDCARD > REMAINDER
    3. a longer pattern beats a shorter one it extends
    4. exact method > GET-serving-HEAD > no method

    GET /users/me        beats  GET /users/{id}      for /users/me
    GET /users/{id}      beats  /users/              for /users/42
    GET /api/v1/         beats  /                    for /api/v1/x

=============================================================================
CONFLICTS
=============================================================================

Two patterns with the same method, host and segment shape (wildcard names
ignored) can never be told apart. Registering the second one raises
``RouteConflictError`` immediately, so a bad route table stops the
process at startup instead of misrouting requests at runtime.

    router.register("GET /users/{id}", a)
    router.register("GET /users/{userID}", b)   # RouteConflictError

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Dict, List, Tuple
from urllib.parse import unquote, urlencode
import logging
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed, redirect


logger = logging.getLogger(__name__)


# Handler: the signature every terminal handler and every composed chain has.
Handler = Callable[[HTTPRequest], HTTPResponse]


class RouteError(ValueError):
    """Base class for route table errors detected at registration time."""


class InvalidPatternError(RouteError):
    """The pattern text cannot be parsed."""


class RouteConflictError(RouteError):
    """The pattern is indistinguishable from one already registered."""


class SegmentKind(Enum):
    """How one pattern segment is matched against one path segment."""
    LITERAL = "literal"
    WILDCARD = "wildcard"
    REMAINDER = "remainder"


# Rank used by the precedence rules: more specific kinds rank higher.
_SEGMENT_RANK = {
    SegmentKind.LITERAL: 2,
    SegmentKind.WILDCARD: 1,
    SegmentKind.REMAINDER: 0,
}

_METHOD_TOKEN = re.compile(r"^[A-Z]+$")


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    value: str  # literal text, or wildcard name ("" for an anonymous remainder)


@dataclass
class Route:
    """
    A registered pattern.

        Route(
            pattern="GET /users/{userID}",
            method="GET",
            host=None,
            segments=(Segment(LITERAL, "users"), Segment(WILDCARD, "userID")),
            handler=get_user,
        )
    """

    pattern: str
    method: Optional[str]
    host: Optional[str]
    segments: Tuple[Segment, ...]
    handler: Handler = field(repr=False)

    @property
    def is_subtree(self) -> bool:
        """True for patterns ending in "/" (or "{name...}")."""
        return bool(self.segments) and self.segments[-1].kind is SegmentKind.REMAINDER

    @property
    def shape(self) -> tuple:
        """
        Identity of the pattern for conflict detection.

        Wildcard names do not take part: "/users/{id}" and
        "/users/{userID}" match exactly the same requests.
        """
        return (
            self.method,
            self.host,
            tuple(
                (seg.kind, seg.value if seg.kind is SegmentKind.LITERAL else "")
                for seg in self.segments
            ),
        )

    def serves_method(self, method: str) -> bool:
        """No method matches everything; GET also serves HEAD."""
        if self.method is None or self.method == method:
            return True
        return self.method == "GET" and method == "HEAD"

    def match_path(self, parts: List[str]) -> Optional[Dict[str, str]]:
        """
        Match split path segments against this pattern.

        Args:
            parts: ``path[1:].split("/")``, so "/" is ``[""]`` and
                   "/users/" is ``["users", ""]``.

        Returns:
            Bound wildcard values, or None if the path does not match.
        """
        params: Dict[str, str] = {}

        for i, seg in enumerate(self.segments):
            if seg.kind is SegmentKind.REMAINDER:
                if len(parts) <= i:
                    return None
                if seg.value:
                    params[seg.value] = "/".join(parts[i:])
                return params

            if i >= len(parts):
                return None

            part = parts[i]
            if seg.kind is SegmentKind.LITERAL:
                if part != seg.value:
                    return None
            else:
                if not part:
                    return None
                params[seg.value] = part

        return params if len(parts) == len(self.segments) else None

    def precedence(self, method: str) -> tuple:
        """Sort key for choosing among matching routes; larger wins."""
        if self.method == method:
            method_rank = 2
        elif self.method is not None:
            method_rank = 1  # GET route answering HEAD
        else:
            method_rank = 0

        return (
            self.host is not None,
            tuple(_SEGMENT_RANK[seg.kind] for seg in self.segments),
            method_rank,
        )


@dataclass
class RouteMatch:
    """
    Result of a successful dispatch.

        pattern "GET /users/{userID}", path "/users/42"
        → RouteMatch(route=<Route>, params={"userID": "42"})
    """
    route: Route
    params: Dict[str, str]


def parse_pattern(pattern: str) -> Tuple[Optional[str], Optional[str], Tuple[Segment, ...]]:
    """
    Parse ``[METHOD ][HOST]/[PATH]`` into (method, host, segments).

    Raises:
        InvalidPatternError: On any syntax problem.
    """
    text = pattern.strip()
    if not text:
        raise InvalidPatternError("empty pattern")

    method: Optional[str] = None
    if " " in text or "\t" in text:
        method, rest = text.split(None, 1)
        if not _METHOD_TOKEN.match(method):
            raise InvalidPatternError(f"{pattern!r}: invalid method {method!r}")
        text = rest.strip()

    slash = text.find("/")
    if slash == -1:
        raise InvalidPatternError(f"{pattern!r}: host/path is missing '/'")

    host = text[:slash].lower() or None
    path = text[slash:]
    if "{" in (host or "") or "}" in (host or ""):
        raise InvalidPatternError(f"{pattern!r}: wildcards are not allowed in the host")

    raw_segments = path[1:].split("/")
    segments: List[Segment] = []
    seen_names: set = set()
    last = len(raw_segments) - 1

    for i, raw in enumerate(raw_segments):
        if raw == "" and i == last:
            # Trailing slash: anonymous remainder, i.e. the whole subtree.
            segments.append(Segment(SegmentKind.REMAINDER, ""))
            break

        if not (raw.startswith("{") and raw.endswith("}")):
            if "{" in raw or "}" in raw:
                raise InvalidPatternError(
                    f"{pattern!r}: wildcard must be a whole segment: {raw!r}"
                )
            segments.append(Segment(SegmentKind.LITERAL, raw))
            continue

        name = raw[1:-1]
        if name == "$":
            if i != last:
                raise InvalidPatternError(f"{pattern!r}: {{$}} must be the last segment")
            # "{$}" pins the empty segment that follows a final slash.
            segments.append(Segment(SegmentKind.LITERAL, ""))
            continue

        kind = SegmentKind.WILDCARD
        if name.endswith("..."):
            if i != last:
                raise InvalidPatternError(f"{pattern!r}: {{{name}}} must be the last segment")
            kind = SegmentKind.REMAINDER
            name = name[:-3]

        if not name.isidentifier():
            raise InvalidPatternError(f"{pattern!r}: bad wildcard name {name!r}")
        if name in seen_names:
            raise InvalidPatternError(f"{pattern!r}: duplicate wildcard name {name!r}")
        seen_names.add(name)
        segments.append(Segment(kind, name))

    return method, host, tuple(segments)


def _split_path(path: str) -> List[str]:
    """Split a percent-encoded path, then decode each segment."""
    if not path.startswith("/"):
        path = "/" + path
    return [unquote(part) for part in path[1:].split("/")]


class Router:
    """
    The handler registry.

    ==========================================================================
    USAGE
    ==========================================================================

        router = Router()

        @router.get("/users/{userID}")
        def get_user(request):
            return ok("User ID: " + request.path_value("userID"))

        router.register("/", fallback)          # any method, any path

        # The router is itself a handler:
        response = router(request)

    ==========================================================================
    LIFECYCLE
    ==========================================================================

    Routes are registered during setup. ``freeze()`` is called once the
    server starts; after that ``register`` raises, which keeps the table
    read-only while worker threads dispatch from it without locks.

    ==========================================================================
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._shapes: Dict[tuple, Route] = {}
        self._frozen = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, pattern: str, handler: Handler) -> Route:
        """
        Bind ``handler`` to ``pattern``.

        Returns:
            The registered Route.

        Raises:
            InvalidPatternError: The pattern cannot be parsed.
            RouteConflictError: An equivalent pattern is already registered.
            RuntimeError: The router has been frozen.
        """
        if self._frozen:
            raise RuntimeError(f"cannot register {pattern!r}: router is frozen")
        if not callable(handler):
            raise TypeError(f"handler for {pattern!r} is not callable")

        method, host, segments = parse_pattern(pattern)
        route = Route(
            pattern=pattern.strip(),
            method=method,
            host=host,
            segments=segments,
            handler=handler,
        )

        existing = self._shapes.get(route.shape)
        if existing is not None:
            raise RouteConflictError(
                f"pattern {route.pattern!r} conflicts with "
                f"already registered pattern {existing.pattern!r}"
            )

        self._shapes[route.shape] = route
        self._routes.append(route)
        logger.debug(f"Registered route: {route.pattern}")
        return route

    # Go-flavoured alias: mux.Handle(pattern, handler)
    handle = register

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
    ) -> Route:
        """Register ``path`` for ``method`` (None for any method)."""
        pattern = f"{method.upper()} {path}" if method else path
        return self.register(pattern, handler)

    def route(self, pattern: str) -> Callable[[Handler], Handler]:
        """
        Decorator form of ``register``.

            @router.route("DELETE /users/{userID}")
            def delete_user(request): ...
        """
        def decorator(handler: Handler) -> Handler:
            self.register(pattern, handler)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        """Register a GET route (also answers HEAD)."""
        return self.route(f"GET {path}")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(f"POST {path}")

    def put(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(f"PUT {path}")

    def delete(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(f"DELETE {path}")

    def patch(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(f"PATCH {path}")

    def freeze(self) -> "Router":
        """Make the route table read-only."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def routes(self) -> List[Route]:
        """All registered routes, in registration order."""
        return list(self._routes)

    def print_routes(self) -> None:
        """
        Print the route table.

            Registered Routes:
            ------------------------------------------------------------
              GET      /users/{userID}
              ANY      /api/v1/
            ------------------------------------------------------------
        """
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self._routes:
            method = route.method or "ANY"
            host_path = route.pattern.split(None, 1)[-1]
            print(f"  {method:8} {host_path}")
        print("-" * 60)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, method: str, path: str, host: str = "") -> Optional[RouteMatch]:
        """
        Find the most specific route for a request.

        Args:
            method: Request method.
            path: Percent-encoded request path; segments are decoded after splitting.
            host: Host header without port ("" to ignore host patterns).

        Returns:
            RouteMatch, or None when nothing matches.
        """
        method = method.upper()
        parts = _split_path(path)
        best: Optional[RouteMatch] = None
        best_key: Optional[tuple] = None

        for route in self._routes:
            if route.host is not None and route.host != host:
                continue
            if not route.serves_method(method):
                continue
            params = route.match_path(parts)
            if params is None:
                continue

            key = route.precedence(method)
            if best_key is None or key > best_key:
                best = RouteMatch(route=route, params=params)
                best_key = key

        return best

    def allowed_methods(self, path: str, host: str = "") -> List[str]:
        """
        Methods registered for ``path`` (used for the 405 Allow header).

        A GET route also allows HEAD.
        """
        parts = _split_path(path)
        methods = set()
        for route in self._routes:
            if route.host is not None and route.host != host:
                continue
            if route.method and route.match_path(parts) is not None:
                methods.add(route.method)
                if route.method == "GET":
                    methods.add("HEAD")
        return sorted(methods)

    def handle_request(self, request: HTTPRequest) -> HTTPResponse:
        """
        Serve a request as a terminal handler.

            match              → route handler, with path_params bound
            "/x" vs "/x/" tree → 301 to the slash-terminated path
            other methods only → 405 with Allow
            nothing            → 404 "404 page not found"
        """
        host = request.host
        path = request.escaped_path
        match = self.dispatch(request.method, path, host)
        if match:
            return match.route.handler(request.with_path_params(match.params))

        if not path.endswith("/"):
            slashed = self.dispatch(request.method, path + "/", host)
            if slashed and slashed.route.is_subtree and not slashed.params:
                location = path + "/"
                if request.query_params:
                    location += "?" + urlencode(request.query_params, doseq=True)
                return redirect(location, permanent=True)

        allowed = self.allowed_methods(path, host)
        if allowed:
            return method_not_allowed(allowed)

        return not_found()

    __call__ = handle_request


def strip_prefix(prefix: str, handler: Handler) -> Handler:
    """
    Serve requests by removing ``prefix`` from the path first.

        api = Router()
        api.register("/api/v1/", strip_prefix("/api/v1", users))
        # "/api/v1/users/42" reaches `users` as "/users/42"

    Requests whose path does not start with ``prefix`` get 404. The
    original request is left untouched; ``handler`` sees a copy.
    """
    def stripped(request: HTTPRequest) -> HTTPResponse:
        escaped = request.escaped_path
        if not prefix or not request.path.startswith(prefix) or not escaped.startswith(prefix):
            return not_found()
        return handler(request.with_path(request.path[len(prefix):], escaped[len(prefix):]))

    return stripped
