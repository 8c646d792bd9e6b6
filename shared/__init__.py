"""
Shared utilities for the delegated-authorization relay.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and caller correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and response envelopes
- retry: Retry helpers with backoff
- base_service: FastAPI service skeleton

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
