"""
Middleware: the chain builder and the middlewares shipped with the server.
"""

from .base import (
    Handler,
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    FunctionMiddleware,
    function_middleware,
    compose,
    chain,
)
from .logging import RequestLoggerMiddleware
from .auth import RequireAuthMiddleware

__all__ = [
    "Handler",
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",
    "compose",
    "chain",
    "RequestLoggerMiddleware",
    "RequireAuthMiddleware",
]
