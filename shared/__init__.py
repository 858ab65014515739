"""
Shared utilities for the Wallet Gateway client.

This package aggregates common building blocks consumed by every client:

- config: Client configuration via pydantic-settings
- logging: Structured logging with correlation context and secret redaction
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- secrets_manager: Encryption for persisted credentials

Any cross-client logic should live here to avoid import cycles.
Do not import from wallet_gateway into shared/.
"""
