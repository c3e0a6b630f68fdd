"""
Delivery Gateway service package.

The gateway turns client delivery requests into authenticated upstream calls,
enforcing:
- Rate limiting: fixed one-minute windows per caller identity
- Idempotency: completed responses replayed for repeated keys
- Credentials: OAuth tokens cached in process and in the shared store
- Retries with capped exponential backoff for transient upstream failures

Structure:
- app.main: FastAPI app, routes, and wiring.
- app.adapters: upstream HTTP clients.
- app.auth: OAuth token cache.
- app.caching: cache stores and the idempotency cache.
- app.ratelimit: fixed-window limiter and identity derivation.
- app.domain: delivery flow and request schema.
"""
