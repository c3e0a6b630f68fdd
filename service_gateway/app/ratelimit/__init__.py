"""
Rate limiting package for the Gateway.

Holds the fixed-window limiter and the helper that derives caller identity
from request headers and enforces the per-minute budget.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitMiddleware, get_client_id

__all__ = ["FixedWindowRateLimiter", "RateLimitMiddleware", "get_client_id"]
