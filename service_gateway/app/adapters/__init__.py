"""
Adapters package for the Gateway Service.

Contains HTTP client wrappers for the upstream delivery API. These adapters
encapsulate:

- Base URLs and request shapes
- Retry and backoff policy for transient upstream failures

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .resilient_client import ResilientHttpClient
from .delivery_client import DeliveryClient

__all__ = [
    "ResilientHttpClient",
    "DeliveryClient",
]
