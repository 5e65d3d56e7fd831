"""
Configuration Module for the ENS Profile Cache

This module defines the configuration system for the service, using Pydantic for settings
validation and dependency injection through aiohttp AppKeys.

The Settings class is loaded from environment variables with defaults suitable for development
environments. Shared resources (database engine, cache service, metrics client) are created once
at startup and reached by handlers through typed AppKeys, never through module level state.

Key configuration areas include:
- Service networking
- Database and registry connections
- Cache policy (TTL, resolver deadline, failure reporting, refresh coalescing)
- Monitoring and observability
"""

import asyncio
from typing import Final, Literal, Optional
import logging
from pydantic import (
    AliasChoices,
    Field,
    PostgresDsn,
    field_validator,
)
from pydantic_settings import BaseSettings
from aiohttp import web
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)

from social.graze.enscache.app.metrics import MetricsClient
from social.graze.enscache.model.health import HealthGauge
from social.graze.enscache.resolve.registry import Web3IdentityResolver
from social.graze.enscache.service.cache import (
    DEFAULT_CACHE_TTL,
    DEFAULT_RESOLVER_TIMEOUT,
    ProfileCacheService,
)


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for the ENS profile cache.

    Environment variables are mapped to settings fields, with aliases where the deployment
    platform uses a different name. For example, the database connection string can be set
    with PG_DSN, DATABASE_PRIVATE_URL or DATABASE_URL.
    """

    debug: bool = False
    """
    Enable debug mode for verbose logging and detailed error bodies.
    Set with DEBUG=true environment variable.
    """

    http_port: int = Field(alias="port", default=5100)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    pg_dsn: PostgresDsn = Field(
        "postgresql+asyncpg://postgres:password@db/enscache",
        validation_alias=AliasChoices("pg_dsn", "database_private_url", "database_url"),
    )  # type: ignore
    """
    PostgreSQL connection string for the profile table.
    Set with PG_DSN, DATABASE_PRIVATE_URL or DATABASE_URL environment variables.
    """

    pg_write_dsn: Optional[PostgresDsn] = None
    """
    PostgreSQL connection string used for writes when reads go to a replica at pg_dsn.
    Set with PG_WRITE_DSN environment variable. Writes use pg_dsn when not set.
    """

    eth_rpc_url: str = Field(
        "https://cloudflare-eth.com",
        validation_alias=AliasChoices("eth_rpc_url", "ponder_rpc_url_1"),
    )
    """
    Ethereum mainnet JSON-RPC endpoint used for ENS lookups.
    Set with ETH_RPC_URL or PONDER_RPC_URL_1 environment variables.
    """

    ipfs_gateway: str = "https://ipfs.io"
    """
    Gateway used to turn ipfs:// avatar records into HTTP URLs.
    Set with IPFS_GATEWAY environment variable.
    """

    cache_ttl: int = DEFAULT_CACHE_TTL
    """
    Milliseconds a cached profile is served before it is refreshed.
    Set with CACHE_TTL environment variable.
    Default: 2592000000 (30 days)
    """

    resolver_timeout: Optional[float] = DEFAULT_RESOLVER_TIMEOUT
    """
    Seconds each registry call may take before it fails with a timeout.
    Set with RESOLVER_TIMEOUT environment variable.
    Default: 10
    """

    surface_resolver_failures: bool = False
    """
    Answer 502 when the registry fails while resolving a name instead of treating the name
    as unregistered (400).
    Set with SURFACE_RESOLVER_FAILURES environment variable.
    """

    coalesce_refreshes: bool = True
    """
    Let concurrent requests for the same stale profile share one refresh.
    Set with COALESCE_REFRESHES environment variable.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    metrics_backend: Literal["telegraf", "none"] = "telegraf"
    """
    Metrics backend, 'telegraf' or 'none'.
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    @field_validator("pg_dsn", "pg_write_dsn", mode="before")
    @classmethod
    def use_asyncpg_driver(cls, v):
        """
        Hosting platforms hand out postgres:// and postgresql:// URLs. The engine is async, so
        those are pointed at the asyncpg driver.
        """
        if isinstance(v, str):
            for prefix in ("postgres://", "postgresql://"):
                if v.startswith(prefix):
                    return "postgresql+asyncpg://" + v.removeprefix(prefix)
        return v

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_ttl must be a positive number of milliseconds")
        return v

    @field_validator("resolver_timeout")
    @classmethod
    def validate_resolver_timeout(cls, v: Optional[float]) -> Optional[float]:
        """
        A timeout of zero or less disables the deadline.
        """
        if v is not None and v <= 0:
            return None
        return v


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseWriteAppKey: Final = web.AppKey("database_write", AsyncEngine)
"""AppKey for the write engine, the DatabaseAppKey engine unless pg_write_dsn is set"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

IdentityResolverAppKey: Final = web.AppKey("identity_resolver", Web3IdentityResolver)
"""AppKey for accessing the ENS registry resolver"""

ProfileCacheServiceAppKey: Final = web.AppKey(
    "profile_cache_service", ProfileCacheService
)
"""AppKey for accessing the profile cache service"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that decays the health gauge"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client"""
