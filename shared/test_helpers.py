"""
Test helper functions and factory methods for the relay services.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

OBJECT_ID_CLAIM_URI = "http://schemas.microsoft.com/identity/claims/objectidentifier"


@dataclass
class TestUser:
    """Test user data."""
    __test__ = False

    oid: str
    name: Optional[str]
    preferred_username: Optional[str]
    roles: List[str] = field(default_factory=list)


@dataclass
class SigningKey:
    """RSA key pair with its public half rendered as a JWK."""
    kid: str
    private_pem: bytes
    public_jwk: Dict[str, Any]

    def jwks(self) -> Dict[str, Any]:
        return {"keys": [self.public_jwk]}


def generate_signing_key(kid: str = "test-key-1") -> SigningKey:
    """Create a fresh RS256 signing key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(key.public_key()))
    public_jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return SigningKey(kid=kid, private_pem=private_pem, public_jwk=public_jwk)


def create_test_users() -> List[TestUser]:
    """Create test users."""
    return [
        TestUser(oid="00000000-0000-0000-0000-000000000001", name="Alice Example",
                 preferred_username="alice@example.com", roles=["Data.Read"]),
        TestUser(oid="00000000-0000-0000-0000-000000000002", name=None,
                 preferred_username="bob@example.com", roles=["Data.Read", "Data.Write"]),
        TestUser(oid="00000000-0000-0000-0000-000000000003", name=None,
                 preferred_username=None, roles=[]),
    ]


def user_claims(user: TestUser) -> Dict[str, Any]:
    """Identity claims a v2 access token would carry for ``user``."""
    claims: Dict[str, Any] = {"oid": user.oid, "sub": f"sub-{user.oid}"}
    if user.name:
        claims["name"] = user.name
    if user.preferred_username:
        claims["preferred_username"] = user.preferred_username
    if user.roles:
        claims["roles"] = list(user.roles)
    return claims


def create_test_token(signing_key: SigningKey, *, audience: Any = "api://relay-api",
                      issuer: str = "https://idp.test/tenant/v2.0",
                      claims: Optional[Mapping[str, Any]] = None,
                      expires_in: int = 3600, not_before: Optional[int] = None,
                      kid: Optional[str] = None) -> str:
    """Mint an RS256 token signed with ``signing_key``."""
    now = int(time.time())
    payload: Dict[str, Any] = {
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "nbf": now if not_before is None else not_before,
        "exp": now + expires_in,
        "jti": str(uuid.uuid4()),
    }
    payload.update(claims or {})
    return jwt.encode(
        payload,
        signing_key.private_pem,
        algorithm="RS256",
        headers={"kid": kid or signing_key.kid},
    )


class HostRoutingTransport(httpx.AsyncBaseTransport):
    """Dispatches outbound requests to per-host transports.

    Lets one relay instance talk to several in-process mock services, e.g.
    ``{"idp.test": ASGITransport(app=idp), "backend.test": ...}``.
    """

    def __init__(self, routes: Mapping[str, httpx.AsyncBaseTransport]):
        self.routes = dict(routes)
        self.requests: List[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        transport = self.routes.get(request.url.host)
        if transport is None:
            raise httpx.ConnectError(f"No route to host {request.url.host}", request=request)
        return await transport.handle_async_request(request)

    def requests_to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]
