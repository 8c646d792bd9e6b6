"""
Pool of long-lived HTTP clients, one per configured downstream service.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import httpx

from shared.errors import TransportError, UnknownDownstreamError
from shared.logging import get_logger
from ..domain.models import DownstreamTarget


@dataclass(frozen=True)
class RawResponse:
    """Status, headers and body of a downstream response."""

    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def payload(self) -> Any:
        """Body as JSON when it parses, otherwise as text (``None`` when empty)."""
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except ValueError:
            return self.body.decode("utf-8", errors="replace")


class DownstreamClientPool:
    """One reusable ``httpx.AsyncClient`` per downstream target.

    Clients are created once and shared by all requests; connection pooling
    is left to httpx. Calls are not retried here.
    """

    def __init__(self, targets: Iterable[DownstreamTarget], timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.logger = get_logger("relay.downstream_pool")
        self._targets: Dict[str, DownstreamTarget] = {}
        self._clients: Dict[str, httpx.AsyncClient] = {}

        for target in targets:
            if target.name in self._targets:
                raise ValueError(f"Duplicate downstream target '{target.name}'")
            self._targets[target.name] = target
            self._clients[target.name] = httpx.AsyncClient(
                base_url=target.base_address,
                timeout=httpx.Timeout(timeout),
                transport=transport,
            )

    @property
    def targets(self) -> List[DownstreamTarget]:
        return list(self._targets.values())

    def get_target(self, name: str) -> DownstreamTarget:
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownDownstreamError(name) from None

    async def send(self, target_name: str, path: str, credential_token: str,
                   method: str = "GET") -> RawResponse:
        """Call ``path`` on the named target with ``credential_token`` as bearer."""
        client = self._clients.get(target_name)
        if client is None:
            raise UnknownDownstreamError(target_name)

        try:
            response = await client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {credential_token}"},
            )
        except httpx.TimeoutException as exc:
            self.logger.error("Downstream call timed out", target=target_name, path=path,
                              timeout=self.timeout)
            raise TransportError(target_name, "request timed out", timed_out=True) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Downstream call failed", target=target_name, path=path,
                              error=type(exc).__name__)
            raise TransportError(target_name, "connection failed") from exc

        self.logger.debug("Downstream responded", target=target_name, path=path,
                          status_code=response.status_code)
        return RawResponse(
            status_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
        )

    async def check_health(self) -> Dict[str, str]:
        """Report which downstream base addresses accept connections."""
        results: Dict[str, str] = {}
        for name, client in self._clients.items():
            try:
                await client.get("/health")
                results[name] = "ok"
            except httpx.HTTPError:
                results[name] = "error"
        return results

    async def close(self) -> None:
        """Close all downstream clients."""
        for client in self._clients.values():
            await client.aclose()
