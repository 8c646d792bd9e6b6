"""
Forwarding relay for same-audience downstream services.
"""

from shared.logging import get_logger
from ..adapters.downstream_pool import DownstreamClientPool, RawResponse
from ..domain.models import DownstreamTarget, IncomingCredential, RelayMode


class ForwardingRelay:
    """Passes the caller's original token, unmodified, to a downstream.

    The downstream validates the same token the relay did, so any rewrite
    would break its signature.
    """

    def __init__(self, pool: DownstreamClientPool):
        self.pool = pool
        self.logger = get_logger("relay.forwarding")

    async def forward(self, credential: IncomingCredential, target: DownstreamTarget) -> RawResponse:
        if target.mode is not RelayMode.FORWARD:
            raise ValueError(f"Target '{target.name}' is not a same-audience target")

        self.logger.info(
            "Forwarding caller token",
            target=target.name,
            path=target.path,
            user_id=credential.identity.subject_id,
        )
        return await self.pool.send(target.name, target.path, credential.token)
