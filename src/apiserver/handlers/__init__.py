"""
Request handlers: plain functions taking an HTTPRequest and returning an
HTTPResponse.
"""

from .users import get_user, users_router

__all__ = ["get_user", "users_router"]
