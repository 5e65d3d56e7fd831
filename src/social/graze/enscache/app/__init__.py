"""
Application Layer

This package implements the web application layer for the ENS profile cache, handling HTTP
requests and responses using the aiohttp framework.

Key Components:
- cli.py: Entry point for running the application
- server.py: Web server configuration, startup wiring and middleware setup
- config.py: Configuration management using Pydantic settings
- handlers/: Request handlers for the profile and internal endpoints
- tasks.py: Background health gauge task
- metrics.py: Metrics client abstraction

The application uses two middleware layers:
- Metrics middleware for request counts and timings
- Sentry middleware for error reporting

It provides the following endpoints:
- GET /{id}: Cached profile for an address or ENS name, refreshed when stale
- POST /{id}: Forced refresh of the profile for an address or ENS name
- GET /internal/alive and /internal/ready: Liveness and readiness probes
"""
