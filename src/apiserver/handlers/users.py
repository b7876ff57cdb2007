"""
User resource handlers.
"""

from ..http import HTTPRequest, HTTPResponse, Router, ok


def get_user(request: HTTPRequest) -> HTTPResponse:
    """``GET /users/{userID}`` → ``User ID: <userID>``"""
    return ok("User ID: " + request.path_value("userID"))


def users_router() -> Router:
    """Router holding the user routes, relative to its mount point."""
    router = Router()
    router.register("GET /users/{userID}", get_user)
    return router
