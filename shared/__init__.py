"""
Shared utilities for the offline cache layer.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured JSON logging
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- retry: Retry decorators and management
- circuit_breaker: Resilient external call protection

Any cross-cutting logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
