"""Upstream credential helpers for the Gateway service."""

from .oauth import CachedToken, OAuthCredentials, OAuthTokenCache

__all__ = ["CachedToken", "OAuthCredentials", "OAuthTokenCache"]
