"""
=============================================================================
MIDDLEWARE CHAIN BUILDER
=============================================================================

Composes an ordered list of middlewares around a terminal handler
(Chain of Responsibility).

A middleware is anything that, given the *next* handler, produces a new
handler. Two shapes are accepted and may be mixed in one chain:

    # 1. A Middleware subclass: implement __call__(request, next)
    class RequireJSON(Middleware):
        def __call__(self, request, next):
            if request.content_type != "application/json":
                return bad_request("expected JSON")     # short-circuit
            return next(request)

    # 2. A higher-order function: next -> handler
    def add_header(next):
        def handler(request):
            response = next(request)
            response.set_header("X-Served-By", "apiserver")
            return response
        return handler

=============================================================================
ORDER
=============================================================================

The first middleware in the list is the outermost one:

    compose([A, B, C], h)  ==  A(B(C(h)))

    Request ──► A.before ──► B.before ──► C.before ──► h
                                                       │
    Response ◄── A.after ◄── B.after ◄── C.after ◄─────┘

If B returns without calling next, C and h never run, and only A sees the
response on the way out. That makes order meaningful: a logger placed
before an auth gate logs rejected requests; placed after it, it never sees
them.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# A terminal handler, or everything downstream of a middleware.
Handler = Callable[[HTTPRequest], HTTPResponse]
NextHandler = Handler

# Higher-order form: given next, return the wrapped handler.
MiddlewareFunc = Callable[[Handler], Handler]


class Middleware(ABC):
    """
    Base class for class-based middleware.

    Subclasses implement ``__call__(request, next)``. Each invocation
    decides on its own whether to continue:

        response = next(request)     # pass through
        return unauthorized()        # or answer directly

    Every middleware must either call ``next`` or return a response of its
    own. Returning None is treated as a handler fault by the server.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming request.
            next: Everything downstream of this middleware.

        Returns:
            The response from ``next`` (possibly amended) or a response of
            this middleware's own.
        """

    def wrap(self, next: NextHandler) -> Handler:
        """Return a handler that runs this middleware in front of ``next``."""
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return self(request, next)

        wrapped.__qualname__ = f"{self.name}.wrapped"
        return wrapped

    @property
    def name(self) -> str:
        return self.__class__.__name__


AnyMiddleware = Union[Middleware, MiddlewareFunc]


def _wrap_one(middleware: AnyMiddleware, next: Handler) -> Handler:
    if isinstance(middleware, Middleware):
        return middleware.wrap(next)

    handler = middleware(next)
    if not callable(handler):
        raise TypeError(
            f"middleware {getattr(middleware, '__name__', middleware)!r} "
            f"returned {type(handler).__name__}, expected a handler"
        )
    return handler


def compose(middlewares: Iterable[AnyMiddleware], handler: Handler) -> Handler:
    """
    Wrap ``handler`` in ``middlewares``, first one outermost.

        compose([], h) is h
        compose([A, B], h)(request) == A(request, B.wrap(h))

    The result is built once and can be shared by any number of threads;
    composing does not call any middleware's request logic.
    """
    current = handler
    for middleware in reversed(list(middlewares)):
        current = _wrap_one(middleware, current)
    return current


def chain(*middlewares: AnyMiddleware) -> Callable[[Handler], Handler]:
    """
    Capture an ordered middleware sequence for reuse.

        protected = chain(RequestLoggerMiddleware(), RequireAuthMiddleware())
        handler = protected(router)
    """
    captured = tuple(middlewares)

    def build(handler: Handler) -> Handler:
        return compose(captured, handler)

    return build


class MiddlewarePipeline:
    """
    An ordered middleware list assembled during setup.

        pipeline = MiddlewarePipeline()
        pipeline.add(RequestLoggerMiddleware())
        pipeline.add(RequireAuthMiddleware())
        handler = pipeline.wrap(router)

    ``wrap`` composes a snapshot of the current list. Adding middleware
    afterwards affects later ``wrap`` calls only, never a chain already
    built.
    """

    def __init__(self, middlewares: Optional[Iterable[AnyMiddleware]] = None):
        self._middleware: List[AnyMiddleware] = []
        for middleware in middlewares or ():
            self.add(middleware)

    def add(self, middleware: AnyMiddleware) -> "MiddlewarePipeline":
        """Append ``middleware`` (innermost so far). Returns self."""
        if not callable(middleware):
            raise TypeError(f"middleware must be callable, got {type(middleware).__name__}")
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {_middleware_name(middleware)}")
        return self

    def use(self, *middlewares: AnyMiddleware) -> "MiddlewarePipeline":
        for middleware in middlewares:
            self.add(middleware)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """Compose the current middleware list around ``handler``."""
        return compose(tuple(self._middleware), handler)

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[AnyMiddleware]:
        return iter(tuple(self._middleware))


def _middleware_name(middleware: AnyMiddleware) -> str:
    if isinstance(middleware, Middleware):
        return middleware.name
    return getattr(middleware, "__name__", type(middleware).__name__)


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

class FunctionMiddleware(Middleware):
    """
    Adapts a ``(request, next) -> response`` function into a Middleware.

        pipeline.add(FunctionMiddleware(my_func, name="my_func"))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None,
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator form of ``FunctionMiddleware``.

        @function_middleware
        def add_header(request, next):
            response = next(request)
            response.set_header("X-Custom", "value")
            return response
    """
    return FunctionMiddleware(func)
