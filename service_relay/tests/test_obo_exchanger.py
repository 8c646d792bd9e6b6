"""
Unit tests for the On-Behalf-Of exchanger.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_relay.app.exchange.cache import ExchangeCache
from service_relay.app.exchange.obo_exchanger import OboExchanger
from service_relay.app.exchange.token_endpoint import ExchangedToken
from shared.errors import ConsentRequiredError, ExchangeFailedError
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig

AUDIENCE = "api://obo-backend"
SCOPES = ["api://obo-backend/.default"]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_client(clock):
    """Token endpoint client whose exchanges succeed with a one-hour token."""
    client = MagicMock()
    client.exchange = AsyncMock(side_effect=lambda assertion, scopes: ExchangedToken(
        access_token=f"obo-for-{assertion[-8:]}",
        expires_at=clock.now + 3600,
    ))
    return client


@pytest.fixture
def exchanger(token_client, clock):
    return OboExchanger(
        token_client,
        ExchangeCache(skew_seconds=60, clock=clock),
        retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=False),
    )


class TestOboExchanger:
    """Test cases for OboExchanger."""

    @pytest.mark.asyncio
    async def test_cache_hit_makes_no_exchange(self, exchanger, token_client, alice, make_credential):
        credential = make_credential(alice)

        first = await exchanger.acquire_token(credential, AUDIENCE, SCOPES)
        second = await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        assert first == second
        assert token_client.exchange.await_count == 1

    @pytest.mark.asyncio
    async def test_new_token_from_same_user_hits_cache(self, exchanger, token_client, alice, make_credential):
        await exchanger.acquire_token(make_credential(alice), AUDIENCE, SCOPES)
        await exchanger.acquire_token(make_credential(alice), AUDIENCE, list(reversed(SCOPES)))

        assert token_client.exchange.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_entry_exchanges_once_more(self, exchanger, token_client, clock, alice,
                                                     make_credential):
        credential = make_credential(alice)
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        clock.now += 3600
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        assert token_client.exchange.await_count == 2

    @pytest.mark.asyncio
    async def test_consent_required_is_not_retried(self, exchanger, token_client, alice, make_credential):
        token_client.exchange.side_effect = ConsentRequiredError(SCOPES, reason="AADSTS65001")

        with pytest.raises(ConsentRequiredError):
            await exchanger.acquire_token(make_credential(alice), AUDIENCE, SCOPES)
        assert token_client.exchange.await_count == 1
        assert len(exchanger.cache) == 0

    @pytest.mark.asyncio
    async def test_failure_retried_once_then_succeeds(self, exchanger, token_client, clock, alice,
                                                      make_credential):
        token_client.exchange.side_effect = [
            ExchangeFailedError("Token endpoint responded with status 503"),
            ExchangedToken(access_token="second-try", expires_at=clock.now + 3600),
        ]

        token = await exchanger.acquire_token(make_credential(alice), AUDIENCE, SCOPES)

        assert token == "second-try"
        assert token_client.exchange.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_failure_surfaces_last_error(self, exchanger, token_client, alice,
                                                          make_credential):
        last = ExchangeFailedError("The original token was rejected", error_code="invalid_grant",
                                   status_code=401)
        token_client.exchange.side_effect = [ExchangeFailedError("first"), last]

        with pytest.raises(ExchangeFailedError) as exc_info:
            await exchanger.acquire_token(make_credential(alice), AUDIENCE, SCOPES)

        assert exc_info.value is last
        assert token_client.exchange.await_count == 2
        assert len(exchanger.cache) == 0

    @pytest.mark.asyncio
    async def test_unattributable_caller_is_not_cached(self, exchanger, token_client, alice, make_credential):
        credential = make_credential(alice, oid=None, sub=None)

        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        assert token_client.exchange.await_count == 2
        assert len(exchanger.cache) == 0

    @pytest.mark.asyncio
    async def test_sub_used_when_object_id_missing(self, exchanger, token_client, alice, make_credential):
        credential = make_credential(alice, oid=None)

        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        assert credential.cache_subject == f"sub:sub-{alice.oid}"
        assert token_client.exchange.await_count == 1

    @pytest.mark.asyncio
    async def test_sub_cannot_impersonate_object_id(self, exchanger, token_client, test_users, make_credential):
        alice, bob, _ = test_users
        alice_credential = make_credential(alice)
        bob_credential = make_credential(bob, oid=None, sub=alice.oid)

        alice_token = await exchanger.acquire_token(alice_credential, AUDIENCE, SCOPES)
        bob_token = await exchanger.acquire_token(bob_credential, AUDIENCE, SCOPES)

        assert alice_credential.cache_subject == f"oid:{alice.oid}"
        assert bob_credential.cache_subject == f"sub:{alice.oid}"
        assert bob_token != alice_token
        assert token_client.exchange.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_never_share_tokens(self, exchanger, test_users, make_credential):
        alice, bob, _ = test_users
        alice_credential = make_credential(alice)
        bob_credential = make_credential(bob)

        results = await asyncio.gather(*[
            exchanger.acquire_token(credential, AUDIENCE, SCOPES)
            for credential in [alice_credential, bob_credential] * 5
        ])

        assert set(results[0::2]) == {f"obo-for-{alice_credential.token[-8:]}"}
        assert set(results[1::2]) == {f"obo-for-{bob_credential.token[-8:]}"}

    @pytest.mark.asyncio
    async def test_metrics(self, token_client, clock, alice, make_credential):
        metrics = MetricsCollector("relay")
        exchanger = OboExchanger(token_client, ExchangeCache(clock=clock),
                                 retry_config=RetryConfig(max_attempts=2, base_delay=0, jitter=False),
                                 metrics=metrics)
        credential = make_credential(alice)

        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)
        await exchanger.acquire_token(credential, AUDIENCE, SCOPES)

        sample = metrics.registry.get_sample_value
        assert sample("token_exchanges_total", {"outcome": "success"}) == 1.0
        assert sample("exchange_cache_lookups_total", {"result": "miss"}) == 1.0
        assert sample("exchange_cache_lookups_total", {"result": "hit"}) == 1.0
