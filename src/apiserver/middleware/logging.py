"""
=============================================================================
REQUEST LOGGER MIDDLEWARE
=============================================================================

Writes one access-log line per request *before* handing it on:

    2026-10-18 12:00:00,123 [INFO] apiserver.access: method GET, path: /api/v1/users/42

and a DEBUG line with the outcome once the rest of the chain returns:

    ... [DEBUG] apiserver.access: GET /api/v1/users/42 -> 200 (0.41ms)

It never short-circuits and never modifies the request or the response.
Because the INFO line is written before ``next`` runs, its position in
the chain decides which requests it sees: placed in front of the auth
gate it records rejected requests too, placed behind it only admitted
ones.

The access logger is ``apiserver.access`` so it can be routed or silenced
independently:

    logging.getLogger("apiserver.access").setLevel(logging.WARNING)

=============================================================================
"""

import time
import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("apiserver.access")


class RequestLoggerMiddleware(Middleware):
    """
    Access logging.

        pipeline.add(RequestLoggerMiddleware())                  # INFO
        pipeline.add(RequestLoggerMiddleware(logging.DEBUG))     # quieter
    """

    def __init__(self, log_level: int = logging.INFO):
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        logger.log(self.log_level, "method %s, path: %s", request.method, request.path)

        start_time = time.perf_counter()
        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        if response is not None:
            logger.debug(
                f"{request.method} {request.path} -> "
                f"{int(response.status)} ({duration_ms:.2f}ms)"
            )
        return response
