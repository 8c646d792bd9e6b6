"""
Relay orchestrator: validate, choose a path, call downstream, map the result.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional

from shared.errors import RelayException, UnexpectedError, UpstreamError
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector
from ..adapters.downstream_pool import DownstreamClientPool, RawResponse
from ..exchange.obo_exchanger import OboExchanger
from ..identity.claims import ClaimPolicy, DEFAULT_POLICY, Identity, project_claims
from ..relay.forwarding import ForwardingRelay
from ..validation.token_validator import TokenValidator, extract_bearer_token
from .models import DownstreamTarget, IncomingCredential, RelayMode, RelayResult


class RequestState(str, Enum):
    """Per-request lifecycle."""
    RECEIVED = "received"
    VALIDATED = "validated"
    COMPLETED = "completed"
    REJECTED = "rejected"


OBO_NOTE = "This response was obtained with a token exchanged On-Behalf-Of the signed-in user."


class RelayOrchestrator:
    """Entry point for relayed requests.

    Only the OBO exchanger retries (once); downstream failures are reported
    as they come back.
    """

    def __init__(self, validator: TokenValidator, pool: DownstreamClientPool,
                 forwarding: ForwardingRelay, exchanger: OboExchanger, *,
                 claim_policy: ClaimPolicy = DEFAULT_POLICY, include_claims: bool = False,
                 metrics: Optional[MetricsCollector] = None):
        self.validator = validator
        self.pool = pool
        self.forwarding = forwarding
        self.exchanger = exchanger
        self.claim_policy = claim_policy
        self.include_claims = include_claims
        self.metrics = metrics
        self.logger = get_logger("relay.orchestrator")

    async def authenticate(self, authorization: Optional[str]) -> IncomingCredential:
        """Validate the inbound ``Authorization`` header and project the caller."""
        token = extract_bearer_token(authorization)
        claims = await self.validator.validate(token)
        identity = project_claims(claims, self.claim_policy)
        set_user_context(user_id=identity.subject_id, caller=identity.display_name)
        return IncomingCredential(token=token, claims=claims, identity=identity)

    async def relay(self, authorization: Optional[str], target_name: str) -> RelayResult:
        """Run one request through the relay and return its outcome."""
        started = time.time()
        state = RequestState.RECEIVED
        identity: Optional[Identity] = None
        target: Optional[DownstreamTarget] = None

        try:
            credential = await self.authenticate(authorization)
            identity = credential.identity
            state = RequestState.VALIDATED

            target = self.pool.get_target(target_name)
            response = await self._call_downstream(credential, target)
            if not response.is_success:
                raise UpstreamError(target.name, response.status_code, response.payload())

            result = RelayResult.completed(self._success_payload(credential, target, response), identity)
            state = RequestState.COMPLETED
            self.logger.info(
                "Relay completed",
                target=target.name,
                mode=target.mode.value,
                caller=identity.display_name,
                user_id=identity.subject_id,
            )
        except RelayException as exc:
            result = RelayResult.rejected(exc, identity)
            self.logger.warning(
                "Relay rejected",
                state=state.value,
                target=target_name,
                code=exc.code,
                status_code=exc.status_code,
                detail=exc.detail,
                caller=identity.display_name if identity else None,
                user_id=identity.subject_id if identity else None,
            )
            state = RequestState.REJECTED
        except Exception:
            result = RelayResult.rejected(UnexpectedError(), identity)
            self.logger.exception(
                "Relay failed unexpectedly",
                state=state.value,
                target=target_name,
                caller=identity.display_name if identity else None,
            )
            state = RequestState.REJECTED

        if self.metrics is not None:
            self.metrics.record_relay(
                target=target.name if target else target_name,
                mode=target.mode.value if target else "unknown",
                status=result.status.value,
                duration=time.time() - started,
            )
        return result

    async def _call_downstream(self, credential: IncomingCredential,
                               target: DownstreamTarget) -> RawResponse:
        if target.mode is RelayMode.FORWARD:
            return await self.forwarding.forward(credential, target)

        token = await self.exchanger.acquire_token(credential, target.audience, target.scopes)
        return await self.pool.send(target.name, target.path, token)

    def _success_payload(self, credential: IncomingCredential, target: DownstreamTarget,
                         response: RawResponse) -> Dict[str, Any]:
        identity = credential.identity
        payload: Dict[str, Any] = {
            "message": f"Successfully called {target.name}",
            "calledBy": identity.display_name,
            "backendResponse": response.payload(),
        }
        if target.mode is RelayMode.OBO:
            payload["note"] = OBO_NOTE
            payload["targetAudience"] = target.audience
        if self.include_claims:
            payload["claims"] = dict(credential.claims)
        return payload
