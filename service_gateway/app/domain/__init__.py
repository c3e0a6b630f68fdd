"""
Domain layer for the Gateway service.

Holds the delivery flow that composes the rate limiter, idempotency cache and
upstream client, plus the request payload schema.
"""

from .deliveries import DeliveryOutcome, DeliveryService, UpstreamRejected
from .schemas import DeliveryRequest

__all__ = ["DeliveryOutcome", "DeliveryService", "UpstreamRejected", "DeliveryRequest"]
