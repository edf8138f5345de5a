"""
Shared utilities for the Crypto Dashboard API.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with an injected logging context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- store: Key-value store interface
- retry: Retry decorators for upstream calls
- circuit_breaker: Resilient external call protection
- base_service: FastAPI service scaffolding

Any cross-service logic should live here to avoid import cycles across
service packages.
"""
