"""
Relay service configuration.
"""

from typing import List, Optional

import yaml
from pydantic import Field

from shared.config import ServiceConfig
from .domain.models import DownstreamTarget, RelayMode


class RelayConfig(ServiceConfig):
    """Settings for the relay, read from ``RELAY_*`` environment variables."""

    # This API's own registration
    audience: str = Field(default="api://relay-api")
    additional_audiences: List[str] = Field(default_factory=list)
    client_id: str = Field(default="relay-api")
    client_secret: Optional[str] = Field(default=None)

    # Same-audience downstream (token forwarded unchanged)
    backend_service_name: str = Field(default="backend")
    backend_service_url: str = Field(default="http://localhost:5100")
    backend_service_path: str = Field(default="/api/data")

    # Cross-audience downstream (token exchanged On-Behalf-Of)
    obo_service_name: str = Field(default="obo-backend")
    obo_service_url: str = Field(default="http://localhost:5200")
    obo_service_path: str = Field(default="/api/obodata")
    obo_service_audience: str = Field(default="api://obo-backend")
    obo_service_scopes: List[str] = Field(default_factory=lambda: ["api://obo-backend/.default"])

    downstreams_file: Optional[str] = Field(default=None)

    # Behaviour
    downstream_timeout_seconds: float = Field(default=10.0)
    exchange_timeout_seconds: float = Field(default=10.0)
    exchange_retry_delay_seconds: float = Field(default=0.5)
    exchange_cache_skew_seconds: float = Field(default=60.0)
    debug_claims: bool = Field(default=False)

    def __init__(self, service_name: str = "relay", port: int = 8000, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)

    def accepted_audiences(self) -> List[str]:
        return [self.audience, *self.additional_audiences]

    def downstream_targets(self) -> List[DownstreamTarget]:
        """Targets from ``downstreams_file`` or, without one, the two defaults."""
        if self.downstreams_file:
            return load_downstreams(self.downstreams_file)

        return [
            DownstreamTarget(
                name=self.backend_service_name,
                base_address=self.backend_service_url,
                audience=self.audience,
                mode=RelayMode.FORWARD,
                path=self.backend_service_path,
                route="/backend-data",
            ),
            DownstreamTarget(
                name=self.obo_service_name,
                base_address=self.obo_service_url,
                audience=self.obo_service_audience,
                scopes=self.obo_service_scopes,
                mode=RelayMode.OBO,
                path=self.obo_service_path,
                route="/obo-data",
            ),
        ]


def load_downstreams(path: str) -> List[DownstreamTarget]:
    """Load targets from a YAML file with a top-level ``downstreams`` list."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("downstreams", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ValueError(f"{path}: 'downstreams' must be a list")
    return [DownstreamTarget(**entry) for entry in entries]
