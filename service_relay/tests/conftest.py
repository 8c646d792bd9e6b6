"""
Shared fixtures for relay unit tests.
"""

import httpx
import pytest

from service_relay.app.identity.claims import project_claims
from service_relay.app.domain.models import IncomingCredential
from service_relay.app.jwks.client import JWKSClient
from shared.test_helpers import create_test_token, create_test_users, generate_signing_key, user_claims


@pytest.fixture(scope="session")
def signing_key():
    """Signing key published by the mock issuer."""
    return generate_signing_key("test-key-1")


@pytest.fixture(scope="session")
def rogue_key():
    """Key the issuer never published."""
    return generate_signing_key("test-key-1")


@pytest.fixture
def test_users():
    """Alice (name), Bob (preferred_username only), and a nameless user."""
    return create_test_users()


@pytest.fixture
def alice(test_users):
    return test_users[0]


@pytest.fixture
def jwks_requests():
    """Requests received by the mock JWKS endpoint."""
    return []


@pytest.fixture
def jwks_client(signing_key, jwks_requests):
    """JWKS client backed by an in-memory JWKS endpoint."""

    def handler(request: httpx.Request) -> httpx.Response:
        jwks_requests.append(request)
        return httpx.Response(200, json=signing_key.jwks())

    return JWKSClient(
        "https://idp.test/tenant/discovery/v2.0/keys",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def make_credential(signing_key):
    """Build an ``IncomingCredential`` for a user, optionally overriding claims."""

    def _make(user, **overrides):
        claims = dict(user_claims(user), **overrides)
        token = create_test_token(signing_key, claims=claims)
        full_claims = dict(claims, aud="api://relay-api", iss="https://idp.test/tenant/v2.0")
        return IncomingCredential(token=token, claims=full_claims, identity=project_claims(full_claims))

    return _make
