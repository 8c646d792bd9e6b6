"""
Client for the trust anchor's token endpoint (OAuth 2.0 On-Behalf-Of grant).
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from shared.errors import ConsentRequiredError, ExchangeFailedError
from shared.logging import get_logger

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
CONSENT_ERRORS = frozenset({"consent_required", "interaction_required"})
CONSENT_ERROR_CODE = "AADSTS65001"
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class ExchangedToken:
    """Token issued by the exchange and its absolute expiry (epoch seconds)."""

    access_token: str
    expires_at: float
    scope: Optional[str] = None

    def __repr__(self) -> str:
        return f"ExchangedToken(expires_at={self.expires_at}, scope={self.scope!r})"


class TokenEndpointClient:
    """Performs On-Behalf-Of exchanges against the token endpoint.

    Rejections are classified so the caller can decide what to retry:
    consent problems raise ``ConsentRequiredError``; everything else raises
    ``ExchangeFailedError``, whose status is 401 when the original token was
    refused and 502 otherwise.
    """

    def __init__(self, token_endpoint: str, client_id: str, client_secret: Optional[str] = None,
                 *, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.time):
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self._clock = clock
        self.logger = get_logger("relay.token_endpoint")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def exchange(self, assertion: str, scopes: Sequence[str]) -> ExchangedToken:
        """Trade ``assertion`` for a token carrying ``scopes``."""
        form = {
            "grant_type": OBO_GRANT_TYPE,
            "client_id": self.client_id,
            "assertion": assertion,
            "scope": " ".join(scopes),
            "requested_token_use": "on_behalf_of",
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret

        try:
            response = await self._client.post(self.token_endpoint, data=form)
        except httpx.TimeoutException as exc:
            self.logger.warning("Token endpoint timed out", scopes=list(scopes))
            raise ExchangeFailedError("Token endpoint timed out") from exc
        except httpx.HTTPError as exc:
            self.logger.warning("Token endpoint unreachable", scopes=list(scopes), error=type(exc).__name__)
            raise ExchangeFailedError("Token endpoint unreachable") from exc

        body = _json_or_empty(response)
        if response.status_code == 200:
            return self._parse_success(body)

        self._raise_for_error(response.status_code, body, scopes)

    def _parse_success(self, body: Dict[str, Any]) -> ExchangedToken:
        access_token = body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ExchangeFailedError("Token endpoint response missing access_token")

        try:
            expires_in = int(body.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        return ExchangedToken(
            access_token=access_token,
            expires_at=self._clock() + expires_in,
            scope=body.get("scope"),
        )

    def _raise_for_error(self, status_code: int, body: Dict[str, Any], scopes: Sequence[str]) -> None:
        error = body.get("error")
        suberror = body.get("suberror")
        description = body.get("error_description") or ""

        self.logger.warning(
            "Token exchange rejected",
            status_code=status_code,
            error=error,
            suberror=suberror,
            scopes=list(scopes),
        )

        if error in CONSENT_ERRORS or suberror == "consent_required" or CONSENT_ERROR_CODE in description:
            raise ConsentRequiredError(scopes, reason=description or error)

        if error == "invalid_grant":
            raise ExchangeFailedError(
                "The original token was rejected by the token endpoint",
                error_code=error,
                status_code=401,
            )

        raise ExchangeFailedError(
            f"Token endpoint responded with status {status_code}",
            error_code=error,
        )


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
