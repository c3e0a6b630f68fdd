"""
OAuth client-credentials token cache for upstream calls.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

import httpx

from shared.errors import CredentialFetchFailed
from shared.logging import get_logger
from ..caching.store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


EXPIRY_SKEW_SECONDS = 30
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class OAuthCredentials:
    """Client-credentials grant parameters for one provider."""

    provider: str
    token_url: str
    client_id: str
    client_secret: str
    scope: Optional[str] = None


@dataclass(frozen=True)
class CachedToken:
    """Access token with its absolute expiry in epoch seconds."""

    access_token: str
    expires_at: int
    generation: int = 0

    def is_usable(self, now: float, skew: int = EXPIRY_SKEW_SECONDS) -> bool:
        return self.expires_at - skew > now


class OAuthTokenCache:
    """Hands out upstream access tokens, refreshing only when they expire.

    Lookups go through three tiers: the token held by this instance, the
    shared cache store (``token:<provider>``), and finally the provider's
    token endpoint. Concurrent refreshes are not coalesced; the last writer
    wins, which is harmless since every issued token is valid upstream.
    """

    def __init__(
        self,
        store: CacheStore,
        credentials: OAuthCredentials,
        http_client: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.time,
        skew_seconds: int = EXPIRY_SKEW_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.skew_seconds = skew_seconds
        self.metrics = metrics
        self.logger = get_logger("gateway.auth.oauth")

        self._client = http_client
        self._clock = clock
        self._token: Optional[CachedToken] = None
        self._generation = 0

    @property
    def store_key(self) -> str:
        return f"token:{self.credentials.provider}"

    @property
    def current(self) -> Optional[CachedToken]:
        """The token held in process, if any."""
        return self._token

    def invalidate(self) -> None:
        """Forget the in-process token; the shared copy is left alone."""
        self._token = None

    async def get_token(self) -> str:
        """Return a usable access token."""
        now = self._clock()

        token = self._token
        if token is not None and token.is_usable(now, self.skew_seconds):
            self._record_lookup("process")
            return token.access_token

        shared = self._parse_shared(await self.store.get(self.store_key))
        if shared is not None and shared.is_usable(int(now), self.skew_seconds):
            self._remember(shared.access_token, shared.expires_at)
            self._record_lookup("store")
            return shared.access_token

        return await self._refresh(now)

    async def _refresh(self, now: float) -> str:
        """Fetch a fresh token from the provider and populate both tiers."""
        payload = await self._request_token()

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise CredentialFetchFailed(
                status=200,
                body="",
                message="OAuth token response did not include an access token",
            )

        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        expires_at = int(now) + expires_in
        self._remember(access_token, expires_at)

        store_ttl = expires_in - self.skew_seconds
        if store_ttl > 0:
            await self.store.set(self.store_key, {"token": access_token, "exp": expires_at}, store_ttl)
        else:
            self.logger.warning(
                "Token lifetime shorter than expiry skew; not sharing it",
                provider=self.credentials.provider,
                expires_in=expires_in,
            )

        self._record_lookup("provider")
        self.logger.info(
            "Fetched new access token",
            provider=self.credentials.provider,
            expires_in=expires_in,
            generation=self._generation,
        )
        return access_token

    async def _request_token(self) -> Dict[str, Any]:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
        }
        if self.credentials.scope:
            form["scope"] = self.credentials.scope

        try:
            response = await self._client.post(self.credentials.token_url, data=form)
        except httpx.HTTPError as exc:
            self.logger.error(
                "OAuth token request failed",
                provider=self.credentials.provider,
                error=str(exc),
            )
            raise CredentialFetchFailed(status=None, body=str(exc)) from exc

        if not response.is_success:
            self.logger.error(
                "OAuth token endpoint rejected request",
                provider=self.credentials.provider,
                status_code=response.status_code,
            )
            raise CredentialFetchFailed(status=response.status_code, body=response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise CredentialFetchFailed(
                status=response.status_code,
                body=response.text,
                message="OAuth token response was not JSON",
            ) from exc

        if not isinstance(payload, dict):
            raise CredentialFetchFailed(
                status=response.status_code,
                body=response.text,
                message="OAuth token response was not a JSON object",
            )
        return payload

    def _remember(self, access_token: str, expires_at: int) -> None:
        self._generation += 1
        self._token = CachedToken(access_token=access_token, expires_at=expires_at, generation=self._generation)

    def _parse_shared(self, cached: Any) -> Optional[CachedToken]:
        if not isinstance(cached, dict):
            return None
        access_token = cached.get("token")
        expires_at = cached.get("exp")
        if not isinstance(access_token, str) or not isinstance(expires_at, int):
            return None
        return CachedToken(access_token=access_token, expires_at=expires_at)

    def _record_lookup(self, tier: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("oauth_token_lookups_total", tier=tier)
