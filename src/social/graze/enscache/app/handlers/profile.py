import logging
from aiohttp import web

from social.graze.enscache.app.config import ProfileCacheServiceAppKey
from social.graze.enscache.resolve.registry import ResolverFailure
from social.graze.enscache.service.cache import ProfileCacheService
from social.graze.enscache.service.types import ProfileResult

logger = logging.getLogger(__name__)


async def resolve_helper(
    service: ProfileCacheService, identifier: str
) -> ProfileResult:
    """
    Resolve the identifier from the path, raising an HTTP error when no address can be found.

    When the service is configured to surface registry failures they are answered with 502.
    Otherwise an unregistered name and a registry outage both end up as 400, and a failed
    reverse lookup for an uncached address propagates as a server error.
    """
    try:
        result = await service.resolve_identifier(identifier)
    except ResolverFailure as e:
        if not service.surface_resolver_failures:
            raise
        logger.warning("Registry failure resolving %s: %s", identifier, e)
        raise web.HTTPBadGateway(
            text='{"error": "Name resolution failed"}',
            content_type="application/json",
        )

    if result.address is None:
        raise web.HTTPBadRequest(
            text='{"error": "Invalid address or name"}',
            content_type="application/json",
        )
    return result


async def refresh_response(
    service: ProfileCacheService, result: ProfileResult
) -> web.Response:
    assert result.address is not None
    await service.update_profile(result.address, result.name)
    profile = await service.fetch_profile(result.address)
    return web.json_response(profile.to_json() if profile is not None else None)


async def handle_get_profile(request: web.Request):
    service = request.app[ProfileCacheServiceAppKey]
    result = await resolve_helper(service, request.match_info["id"])

    if result.cached_profile is not None and result.is_fresh:
        return web.json_response(result.cached_profile.to_json())

    return await refresh_response(service, result)


async def handle_post_profile(request: web.Request):
    service = request.app[ProfileCacheServiceAppKey]
    result = await resolve_helper(service, request.match_info["id"])
    return await refresh_response(service, result)
