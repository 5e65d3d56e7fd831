import asyncio
import contextlib
import logging
from time import time
from typing import Optional
from aiohttp import web
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from social.graze.enscache.app.config import (
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    DatabaseWriteAppKey,
    HealthGaugeAppKey,
    IdentityResolverAppKey,
    MetricsClientAppKey,
    ProfileCacheServiceAppKey,
    Settings,
    SettingsAppKey,
    TickHealthTaskAppKey,
)
from social.graze.enscache.app.handlers.internal import (
    handle_internal_alive,
    handle_internal_ready,
)
from social.graze.enscache.app.handlers.profile import (
    handle_get_profile,
    handle_post_profile,
)
from social.graze.enscache.app.metrics import create_metrics_client
from social.graze.enscache.app.tasks import tick_health_task
from social.graze.enscache.model.health import HealthGauge
from social.graze.enscache.resolve.registry import Web3IdentityResolver
from social.graze.enscache.service.cache import ProfileCacheService
from social.graze.enscache.service.store import SQLAlchemyProfileStore

logger = logging.getLogger(__name__)


async def background_tasks(app: web.Application):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(str(settings.pg_dsn))
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session

    write_engine = (
        create_async_engine(str(settings.pg_write_dsn))
        if settings.pg_write_dsn is not None
        else engine
    )
    app[DatabaseWriteAppKey] = write_engine
    write_database_session = async_sessionmaker(
        write_engine, class_=AsyncSession, expire_on_commit=False
    )

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    resolver = Web3IdentityResolver.from_rpc_url(
        settings.eth_rpc_url,
        timeout=settings.resolver_timeout or 300.0,
        ipfs_gateway=settings.ipfs_gateway,
    )
    app[IdentityResolverAppKey] = resolver

    app[ProfileCacheServiceAppKey] = ProfileCacheService(
        resolver=resolver,
        store=SQLAlchemyProfileStore(database_session, write_database_session),
        cache_ttl=settings.cache_ttl,
        resolver_timeout=settings.resolver_timeout,
        surface_resolver_failures=settings.surface_resolver_failures,
        coalesce_refreshes=settings.coalesce_refreshes,
        metrics_client=metrics_client,
        health_gauge=app[HealthGaugeAppKey],
    )

    logger.info("Startup complete")

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    await app[IdentityResolverAppKey].close()
    if app[DatabaseWriteAppKey] is not app[DatabaseAppKey]:
        await app[DatabaseWriteAppKey].dispose()
    await app[DatabaseAppKey].dispose()
    await app[MetricsClientAppKey].close()


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        health_gauge = request.app.get(HealthGaugeAppKey)
        if health_gauge is not None:
            await health_gauge.record_failure()
        raise e


@web.middleware
async def metrics_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method
    # Route pattern rather than the raw path so identifiers do not become tag values.
    resource = request.match_info.route.resource
    request_path = resource.canonical if resource is not None else "unmatched"

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise
    except Exception as e:
        response_status_code = 500
        metrics_client.increment(
            "enscache.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "enscache.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "enscache.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


def add_routes(app: web.Application) -> None:
    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
        ]
    )

    app.add_routes(
        [
            web.get("/{id}", handle_get_profile),
            web.post("/{id}", handle_post_profile),
        ]
    )


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=True,
            integrations=[AioHttpIntegration()],
        )
    app = web.Application(middlewares=[metrics_middleware, sentry_middleware])

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()

    add_routes(app)

    app.cleanup_ctx.append(background_tasks)

    return app
