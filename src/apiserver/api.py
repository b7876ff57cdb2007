"""
=============================================================================
API SERVER
=============================================================================

Assembles the application:

    ┌───────────────────────── composed handler ─────────────────────────┐
    │  RequestLoggerMiddleware                                           │
    │  ┌──────────────────────────────────────────────────────────────┐  │
    │  │  RequireAuthMiddleware            (401 "Unauthorized")       │  │
    │  │  ┌────────────────────────────────────────────────────────┐  │  │
    │  │  │  Router  "/api/v1/"                                    │  │  │
    │  │  │    └── strip_prefix("/api/v1")                         │  │  │
    │  │  │          └── Router  "GET /users/{userID}" → get_user  │  │  │
    │  │  └────────────────────────────────────────────────────────┘  │  │
    │  └──────────────────────────────────────────────────────────────┘  │
    └────────────────────────────────────────────────────────────────────┘

The logger sits in front of the auth gate, so rejected requests are
logged too. Swapping the two would leave unauthorized requests out of the
access log entirely.

Routes and chain are built in the constructor, before anything listens,
so a conflicting route table fails at startup.

=============================================================================
"""

import logging
from dataclasses import replace
from typing import Optional, Sequence

from .config import ServerConfig
from .handlers import users_router
from .http import Router, strip_prefix
from .middleware import (
    Handler,
    MiddlewarePipeline,
    RequestLoggerMiddleware,
    RequireAuthMiddleware,
)
from .middleware.base import AnyMiddleware
from .server import HTTPServer


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def build_router() -> Router:
    """Versioned API: the user routes mounted under ``/api/v1``."""
    api = Router()
    api.register(API_PREFIX + "/", strip_prefix(API_PREFIX, users_router().freeze()))
    return api.freeze()


def default_middlewares() -> list:
    return [RequestLoggerMiddleware(), RequireAuthMiddleware()]


def build_handler(
    router: Optional[Router] = None,
    middlewares: Optional[Sequence[AnyMiddleware]] = None,
) -> Handler:
    """
    Compose the request handler: middlewares (first outermost) around the
    router.
    """
    router = router if router is not None else build_router()
    if middlewares is None:
        middlewares = default_middlewares()
    return MiddlewarePipeline(middlewares).wrap(router)


class APIServer:
    """
    The application: an address plus the handler serving it.

        server = APIServer(":8080")
        server.run()                 # blocks; OSError if the port is taken

    Instances share nothing, so several can run in one process.
    """

    def __init__(
        self,
        addr: str = ":8080",
        config: Optional[ServerConfig] = None,
        middlewares: Optional[Sequence[AnyMiddleware]] = None,
    ):
        self.config = replace(config or ServerConfig(), addr=addr)
        self.router = build_router()
        self.handler = build_handler(self.router, middlewares)
        self._server = HTTPServer(self.handler, self.config)

    @property
    def addr(self) -> str:
        return self.config.addr

    @property
    def http_server(self) -> HTTPServer:
        return self._server

    def run(self) -> None:
        """
        Listen and serve until shut down.

        Raises:
            OSError: The address cannot be bound.
        """
        # basicConfig before the first record so the startup line is formatted
        self._server.setup_logging()
        logger.info("Server has started on address %s", self.addr)
        self._server.run()

    def shutdown(self) -> None:
        self._server.shutdown()
