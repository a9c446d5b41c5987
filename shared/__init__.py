"""
Shared utilities for the Access Gateway.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry with exponential backoff
- http_client: Retrying outbound HTTP client

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service packages into shared/.
"""
