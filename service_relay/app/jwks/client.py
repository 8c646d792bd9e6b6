"""
JWKS client for the issuer's signing keys.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from shared.errors import TransportError
from shared.logging import get_logger


class JWKSClient:
    """Client for fetching and caching the issuer's JWKS."""

    def __init__(self, jwks_url: str, refresh_interval: int = 300, http_timeout: float = 5.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.jwks_url = jwks_url
        self.refresh_interval = refresh_interval
        self.logger = get_logger("relay.jwks")

        self._keys: Optional[List[Dict[str, Any]]] = None
        self._last_refresh: float = 0.0
        self._lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=http_timeout, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay the cost."""
        try:
            await self._refresh_keys(force=True)
        except TransportError as exc:
            self.logger.warning("JWKS warmup failed", error=str(exc))

    async def get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Return the JWK with the given key id, or ``None``."""
        await self._refresh_keys(force=False)
        key = self._find(kid)
        if key is not None:
            return key

        # Key might be rotated; refresh once more eagerly.
        await self._refresh_keys(force=True)
        key = self._find(kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid)
        return key

    async def check_health(self) -> str:
        """Return 'ok' if the JWKS endpoint responds correctly, otherwise 'error'."""
        try:
            await self._refresh_keys(force=False)
            return "ok"
        except TransportError as exc:
            self.logger.error("JWKS health check failed", error=str(exc))
            return "error"

    def clear_cache(self) -> None:
        """Forget the cached key set."""
        self._keys = None
        self._last_refresh = 0.0

    def _find(self, kid: str) -> Optional[Dict[str, Any]]:
        for key in self._keys or []:
            if key.get("kid") == kid:
                return key
        return None

    def _is_fresh(self) -> bool:
        return self._keys is not None and (time.time() - self._last_refresh) < self.refresh_interval

    async def _refresh_keys(self, *, force: bool) -> None:
        """Refresh the JWKS if the cache is stale."""
        if not force and self._is_fresh():
            return

        async with self._lock:
            if not force and self._is_fresh():
                return

            try:
                response = await self._client.get(self.jwks_url)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                if self._keys is not None:
                    self.logger.warning("Using stale JWKS cache due to fetch failure", error=str(exc))
                    return
                self.logger.error("Failed to fetch JWKS", error=str(exc))
                raise TransportError(
                    "identity-provider",
                    "signing keys unavailable",
                    timed_out=isinstance(exc, httpx.TimeoutException),
                ) from exc

            keys = payload.get("keys") if isinstance(payload, dict) else None
            if not isinstance(keys, list):
                if self._keys is not None:
                    self.logger.warning("JWKS response malformed, keeping cached keys")
                    return
                raise TransportError("identity-provider", "JWKS response missing 'keys' array")

            self._keys = keys
            self._last_refresh = time.time()
            self.logger.info("JWKS refreshed successfully", keys_count=len(keys))
