"""
Bearer-token gate.

Rejects every request whose ``Authorization`` header is not exactly the
expected credential with ``401 Unauthorized`` and never calls ``next`` for
it. Admitted requests are passed on unchanged.

The credential is a single shared string. It is a placeholder for a real
authentication scheme, not one.
"""

import logging
import secrets

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, unauthorized


logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL = "Bearer token"


class RequireAuthMiddleware(Middleware):
    """
    Short-circuits unauthenticated requests.

        pipeline.add(RequireAuthMiddleware())                    # "Bearer token"
        pipeline.add(RequireAuthMiddleware("Bearer s3cret"))

    The whole header value is compared. A request carrying several
    ``Authorization`` headers arrives folded into one comma-joined value,
    so it never equals a single credential and is rejected, even when the
    first of them is valid.
    """

    def __init__(self, expected: str = DEFAULT_CREDENTIAL):
        if not expected:
            raise ValueError("expected credential must not be empty")
        self._expected = expected.encode("utf-8")

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        supplied = request.get_header("Authorization").encode("utf-8")

        # Constant-time comparison; a missing header compares as b"".
        if not secrets.compare_digest(supplied, self._expected):
            logger.debug(f"Rejected {request.method} {request.path}: bad credential")
            return unauthorized()

        return next(request)
