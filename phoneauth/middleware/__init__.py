"""Middleware module for phoneauth."""

from phoneauth.middleware.bearer_auth import AuthContext, BearerAuthMiddleware

__all__ = [
    "AuthContext",
    "BearerAuthMiddleware",
]
