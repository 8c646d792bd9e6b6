"""
Mock downstream services that validate the bearer token they receive.

``data`` mimics a service sharing the relay's audience and ``obodata`` one
that only accepts tokens exchanged On-Behalf-Of the caller.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Header
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from service_relay.app.identity.claims import DEFAULT_POLICY, collect_claims, project_claims
from service_relay.app.jwks.client import JWKSClient
from service_relay.app.validation.token_validator import TokenValidator, extract_bearer_token


class MockDownstreamService(BaseService):
    """Protected downstream returning canned data for the authenticated caller."""

    def __init__(self, service_name: str, audience: str, jwks_url: str, *,
                 issuer: str, kind: str = "data", port: int = 5100,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if kind not in ("data", "obodata"):
            raise ValueError(f"Unknown downstream kind '{kind}'")
        super().__init__(service_name, port, config=ServiceConfig(service_name, port))
        self.kind = kind
        self.audience = audience
        self.jwks_client = JWKSClient(jwks_url, transport=transport)
        self.validator = TokenValidator(self.jwks_client, [audience], [issuer])

        # Status to answer with instead of data, for upstream error scenarios.
        self.fail_with: Optional[int] = None
        self.received_tokens: List[str] = []

        self._setup_data_routes()

    def _setup_data_routes(self):
        """Set up the protected data route."""

        @self.app.get(f"/api/{self.kind}")
        async def get_data(authorization: Optional[str] = Header(default=None)):
            token = extract_bearer_token(authorization)
            claims = await self.validator.validate(token)
            self.received_tokens.append(token)

            if self.fail_with is not None:
                return JSONResponse(
                    status_code=self.fail_with,
                    content={"error": "unavailable", "service": self.service_name},
                )

            identity = project_claims(claims)
            self.logger.info("Protected data requested", caller=identity.display_name,
                             user_id=identity.subject_id)
            if self.kind == "obodata":
                return self._obo_payload(claims)
            return {
                "message": f"This is protected data from {self.service_name}",
                "requestedBy": identity.display_name,
                "userId": identity.subject_id,
                "timestamp": _now(),
                "data": [
                    {"id": i, "name": f"Sample Item {i}", "value": f"Backend Value {i}"}
                    for i in (1, 2, 3)
                ],
            }

    def _obo_payload(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        identity = project_claims(claims)
        return {
            "service": self.service_name,
            "message": "This data was retrieved using an OBO (On-Behalf-Of) token!",
            "audience": self.audience,
            "requestedBy": identity.display_name,
            "userId": identity.subject_id,
            "roles": collect_claims(claims, DEFAULT_POLICY.role_claims),
            "claims": _flatten_claims(claims),
            "timestamp": _now(),
            "tokenType": "OBO Token (different audience than original token)",
            "data": [
                {"id": 1, "name": "OBO Item 1", "description": "Retrieved via On-Behalf-Of flow"},
                {"id": 2, "name": "OBO Item 2", "description": "Token was exchanged by the relay"},
                {"id": 3, "name": "OBO Item 3", "description": "User identity preserved across services"},
            ],
        }

    async def _on_shutdown(self) -> None:
        await self.jwks_client.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"identity_provider": await self.jwks_client.check_health()}


def _flatten_claims(claims: Dict[str, Any]) -> List[Dict[str, str]]:
    """One ``{type, value}`` pair per claim value; list claims are expanded."""
    flattened = []
    for claim_type, value in claims.items():
        values = value if isinstance(value, list) else [value]
        flattened.extend({"type": claim_type, "value": str(v)} for v in values)
    return flattened


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
