"""
Relay service: validates callers and relays their identity downstream.
"""

from typing import Dict, Optional

import httpx
from fastapi import Header
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.retry import RetryConfig
from .adapters.downstream_pool import DownstreamClientPool
from .config import RelayConfig
from .domain.orchestrator import RelayOrchestrator
from .exchange.cache import ExchangeCache
from .exchange.obo_exchanger import OboExchanger
from .exchange.token_endpoint import TokenEndpointClient
from .jwks.client import JWKSClient
from .relay.forwarding import ForwardingRelay
from .validation.token_validator import TokenValidator


class RelayService(BaseService):
    """Relay service implementation.

    ``transport`` replaces the network for every outbound client (JWKS,
    token endpoint, downstreams); tests use it to plug in mock services.
    """

    def __init__(self, config: Optional[RelayConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or RelayConfig()
        super().__init__("relay", config.port, config=config)

        self.jwks_client = JWKSClient(
            config.resolved_jwks_url(),
            refresh_interval=config.jwks_refresh_interval_seconds,
            transport=transport,
        )
        self.validator = TokenValidator(
            self.jwks_client,
            audiences=config.accepted_audiences(),
            issuers=config.resolved_issuers(),
            leeway=config.clock_leeway_seconds,
        )
        self.pool = DownstreamClientPool(
            config.downstream_targets(),
            timeout=config.downstream_timeout_seconds,
            transport=transport,
        )
        self.forwarding = ForwardingRelay(self.pool)
        self.token_client = TokenEndpointClient(
            config.resolved_token_endpoint(),
            config.client_id,
            config.client_secret,
            timeout=config.exchange_timeout_seconds,
            transport=transport,
        )
        self.exchange_cache = ExchangeCache(skew_seconds=config.exchange_cache_skew_seconds)
        self.exchanger = OboExchanger(
            self.token_client,
            self.exchange_cache,
            retry_config=RetryConfig(
                max_attempts=2,
                base_delay=config.exchange_retry_delay_seconds,
                max_delay=max(config.exchange_retry_delay_seconds * 4, 0.0),
            ),
            metrics=self.metrics,
        )
        self.orchestrator = RelayOrchestrator(
            self.validator,
            self.pool,
            self.forwarding,
            self.exchanger,
            include_claims=config.debug_claims,
            metrics=self.metrics,
        )

        self._setup_relay_routes()
        self.app.state.relay_service = self

    def _setup_relay_routes(self):
        """Set up relay-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "relay",
                "message": "Delegated-authorization relay",
                "version": "1.0.0",
                "downstreams": [
                    {"name": t.name, "mode": t.mode.value, "route": t.route}
                    for t in self.pool.targets
                ],
            }

        @self.app.get("/me")
        async def me(authorization: Optional[str] = Header(default=None)):
            """Echo the caller's projected identity."""
            credential = await self.orchestrator.authenticate(authorization)
            body = credential.identity.to_dict()
            if self.config.debug_claims:
                body["claims"] = dict(credential.claims)
            return body

        @self.app.get("/relay/{target_name}")
        async def relay(target_name: str, authorization: Optional[str] = Header(default=None)):
            """Relay the caller to a configured downstream."""
            return await self._relay(target_name, authorization)

        for target in self.pool.targets:
            if target.route:
                self.app.add_api_route(
                    target.route,
                    self._target_endpoint(target.name),
                    methods=["GET"],
                    name=f"relay_{target.name}",
                )

    def _target_endpoint(self, target_name: str):
        async def endpoint(authorization: Optional[str] = Header(default=None)):
            return await self._relay(target_name, authorization)

        endpoint.__doc__ = f"Relay the caller to {target_name}."
        return endpoint

    async def _relay(self, target_name: str, authorization: Optional[str]) -> JSONResponse:
        result = await self.orchestrator.relay(authorization, target_name)
        return JSONResponse(status_code=result.status_code, content=result.body())

    async def _on_startup(self) -> None:
        await self.jwks_client.warmup()

    async def _on_shutdown(self) -> None:
        await self.pool.close()
        await self.token_client.close()
        await self.jwks_client.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        dependencies = {"identity_provider": await self.jwks_client.check_health()}
        for name, status in (await self.pool.check_health()).items():
            dependencies[f"downstream:{name}"] = status
        return dependencies


def create_app(config: Optional[RelayConfig] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create FastAPI application."""
    service = RelayService(config, transport)
    return service.app


if __name__ == "__main__":
    service = RelayService()
    service.run()
