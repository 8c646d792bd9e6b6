"""
Mock identity provider providing JWKS and an On-Behalf-Of token endpoint.
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import parse_qs

import jwt
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from shared.logging import get_logger
from shared.test_helpers import OBJECT_ID_CLAIM_URI, create_test_token, generate_signing_key

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
PRESERVED_CLAIMS = ("oid", OBJECT_ID_CLAIM_URI, "sub", "tid", "name", "preferred_username", "roles")


def audience_for_scope(scope: str) -> str:
    """``api://app/.default`` -> ``api://app``."""
    head, _, tail = scope.rpartition("/")
    return head if head and "://" in head and tail else scope


class MockIdentityProvider:
    """Mock trust anchor: signs tokens and performs OBO exchanges."""

    def __init__(self, base_url: str = "http://localhost:8080", tenant: str = "tenant",
                 clients: Optional[Dict[str, str]] = None,
                 assertion_audiences: Iterable[str] = ("api://relay-api",),
                 token_lifetime: int = 3600):
        self.base_url = base_url.rstrip("/")
        self.tenant = tenant
        self.authority = f"{self.base_url}/{tenant}"
        self.issuer = f"{self.authority}/v2.0"
        self.clients = clients if clients is not None else {"relay-api": "relay-secret"}
        self.assertion_audiences = list(assertion_audiences)
        self.token_lifetime = token_lifetime
        self.signing_key = generate_signing_key("mock-idp-key")
        self.logger = get_logger("mock.identity_provider")

        self.unconsented_scopes: Set[str] = set()
        self.fail_next: int = 0
        self.exchange_requests: List[Dict[str, str]] = []

        self.app = FastAPI(title="Mock Identity Provider", version="1.0.0")
        self._setup_routes()

    def issue_token(self, claims: Dict[str, Any], audience: str = "api://relay-api",
                    expires_in: Optional[int] = None) -> str:
        """Sign a token as if the user had signed in to ``audience``."""
        return create_test_token(
            self.signing_key,
            audience=audience,
            issuer=self.issuer,
            claims=claims,
            expires_in=expires_in if expires_in is not None else self.token_lifetime,
        )

    def _setup_routes(self):
        """Set up mock identity provider routes."""

        @self.app.get("/{tenant}/v2.0/.well-known/openid-configuration")
        async def openid_configuration(tenant: str):
            """OpenID Connect configuration."""
            self._check_tenant(tenant)
            return {
                "issuer": self.issuer,
                "authorization_endpoint": f"{self.authority}/oauth2/v2.0/authorize",
                "token_endpoint": f"{self.authority}/oauth2/v2.0/token",
                "jwks_uri": f"{self.authority}/discovery/v2.0/keys",
                "grant_types_supported": ["authorization_code", "refresh_token", OBO_GRANT_TYPE],
                "id_token_signing_alg_values_supported": ["RS256"],
            }

        @self.app.get("/{tenant}/discovery/v2.0/keys")
        async def jwks_endpoint(tenant: str):
            """JWKS endpoint."""
            self._check_tenant(tenant)
            return self.signing_key.jwks()

        @self.app.post("/{tenant}/oauth2/v2.0/token")
        async def token_endpoint(tenant: str, request: Request):
            """OBO token endpoint."""
            self._check_tenant(tenant)
            form = {k: v[0] for k, v in parse_qs((await request.body()).decode()).items()}
            self.exchange_requests.append({k: v for k, v in form.items() if k != "assertion"})
            return self._exchange(form)

        @self.app.get("/health")
        async def health():
            return {"status": "ok"}

    def _check_tenant(self, tenant: str) -> None:
        if tenant != self.tenant:
            raise HTTPException(status_code=404, detail="Tenant not found")

    def _exchange(self, form: Dict[str, str]) -> JSONResponse:
        if self.fail_next > 0:
            self.fail_next -= 1
            return _oauth_error(503, "temporarily_unavailable", "The service is temporarily unavailable")

        if form.get("grant_type") != OBO_GRANT_TYPE or form.get("requested_token_use") != "on_behalf_of":
            return _oauth_error(400, "unsupported_grant_type", "Only the on-behalf-of grant is supported")

        client_id = form.get("client_id", "")
        if client_id not in self.clients or self.clients[client_id] != form.get("client_secret"):
            return _oauth_error(401, "invalid_client", "Client authentication failed")

        try:
            assertion = jwt.decode(
                form.get("assertion", ""),
                jwt.algorithms.RSAAlgorithm.from_jwk(self.signing_key.public_jwk),
                algorithms=["RS256"],
                audience=self.assertion_audiences,
                issuer=self.issuer,
            )
        except jwt.PyJWTError as exc:
            return _oauth_error(400, "invalid_grant", f"Assertion rejected: {exc}")

        scopes = form.get("scope", "").split()
        if not scopes:
            return _oauth_error(400, "invalid_scope", "No scope requested")

        missing = [s for s in scopes if s in self.unconsented_scopes]
        if missing:
            body = {
                "error": "invalid_grant",
                "error_description": (
                    "AADSTS65001: The user or administrator has not consented to use the "
                    f"application with ID '{client_id}'. Send an interactive authorization "
                    "request for this user and resource."
                ),
                "suberror": "consent_required",
            }
            return JSONResponse(status_code=400, content=body)

        claims = {k: assertion[k] for k in PRESERVED_CLAIMS if k in assertion}
        claims["azp"] = client_id
        claims["scp"] = " ".join(s.rpartition("/")[2] for s in scopes)
        token = self.issue_token(claims, audience=audience_for_scope(scopes[0]))

        self.logger.info("Issued OBO token", client_id=client_id, scopes=scopes)
        return JSONResponse(content={
            "token_type": "Bearer",
            "scope": " ".join(scopes),
            "expires_in": self.token_lifetime,
            "ext_expires_in": self.token_lifetime,
            "access_token": token,
            "issued_at": int(time.time()),
        })


def _oauth_error(status_code: int, error: str, description: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "error_description": description})


def create_app() -> FastAPI:
    """Create the mock identity provider application."""
    return MockIdentityProvider().app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
