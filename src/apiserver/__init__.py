"""
=============================================================================
APISERVER
=============================================================================

A small HTTP/1.1 API server on raw sockets, organised around a composable
middleware chain.

    from apiserver import APIServer
    APIServer(":8080").run()

    $ python -m apiserver --addr :8080

    $ curl -H "Authorization: Bearer token" localhost:8080/api/v1/users/42
    User ID: 42

Building blocks, usable on their own:

    apiserver.http         request parser, responses, Router, strip_prefix
    apiserver.middleware   compose / chain / MiddlewarePipeline, the shipped
                           logger and auth gate
    apiserver.server       HTTPServer: transport around one handler
    apiserver.config       ServerConfig

=============================================================================
"""

__version__ = "1.0.0"

from .api import APIServer, build_handler, build_router
from .config import ServerConfig
from .server import HTTPServer

__all__ = [
    "APIServer",
    "HTTPServer",
    "ServerConfig",
    "build_handler",
    "build_router",
    "__version__",
]
