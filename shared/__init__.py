"""
Shared utilities for the delivery gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff configuration for upstream calls
- base_service: FastAPI app scaffolding

Do not import from service packages into shared/.
"""
