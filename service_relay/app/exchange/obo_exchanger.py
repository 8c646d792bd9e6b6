"""
On-Behalf-Of exchanger: cached token exchange for cross-audience targets.
"""

from typing import Optional, Sequence

from shared.errors import ConsentRequiredError, ExchangeFailedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_call
from ..domain.models import IncomingCredential
from .cache import ExchangeCache, ExchangeCacheEntry, ExchangeCacheKey
from .token_endpoint import TokenEndpointClient


class OboExchanger:
    """Trades the caller's token for one scoped to another audience.

    Exchanged tokens are cached per (subject, audience, scopes). A cache miss
    costs one call to the token endpoint, plus at most one retry when that
    call fails with ``ExchangeFailedError``. ``ConsentRequiredError`` is never
    retried: it needs the user to consent interactively.
    """

    def __init__(self, token_client: TokenEndpointClient, cache: Optional[ExchangeCache] = None,
                 retry_config: Optional[RetryConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.token_client = token_client
        self.cache = cache if cache is not None else ExchangeCache()
        self.retry_config = retry_config or RetryConfig(max_attempts=2, base_delay=0.5, max_delay=2.0)
        self.metrics = metrics
        self.logger = get_logger("relay.obo_exchanger")

    async def acquire_token(self, credential: IncomingCredential, audience: str,
                            scopes: Sequence[str]) -> str:
        """Return a token for ``audience``/``scopes`` on behalf of the caller."""
        subject = credential.cache_subject
        key = ExchangeCacheKey.build(subject, audience, scopes) if subject else None

        if key is not None:
            entry = self.cache.get(key)
            if entry is not None:
                self._record_lookup("hit")
                self.logger.debug("Exchange cache hit", audience=audience, user_id=subject)
                return entry.token
            self._record_lookup("miss")
        else:
            self.logger.info("Caller has no stable subject, exchange will not be cached",
                             audience=audience)

        exchanged = await retry_call(
            self._exchange,
            credential.token,
            list(scopes),
            exceptions=(ExchangeFailedError,),
            config=self.retry_config,
        )

        if key is not None:
            self.cache.put(key, ExchangeCacheEntry(token=exchanged.access_token,
                                                   expires_at=exchanged.expires_at))

        self.logger.info(
            "Token exchanged on behalf of caller",
            audience=audience,
            scopes=list(scopes),
            user_id=subject,
            expires_at=exchanged.expires_at,
        )
        return exchanged.access_token

    async def _exchange(self, assertion: str, scopes: Sequence[str]):
        try:
            exchanged = await self.token_client.exchange(assertion, scopes)
        except ConsentRequiredError:
            self._record_exchange("consent_required")
            raise
        except ExchangeFailedError:
            self._record_exchange("failed")
            raise
        self._record_exchange("success")
        return exchanged

    def _record_lookup(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_lookup(result)

    def _record_exchange(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_exchange(outcome)
