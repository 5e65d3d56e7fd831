"""ENS profile cache service.

Classifies identifiers, decides whether a cached profile is still fresh, refreshes profiles from
the registry and reconciles name transfers in the store.

Consistency notes:

* Refreshes are coalesced per process only. Separate processes refreshing the same stale profile
  each query the registry, and the row written last wins.
* Revoking a transferred name and writing its new holder run inside `store.atomic()`. With a
  store that cannot provide transactions the two writes are independent, so a crash in between
  can leave the name unclaimed until the next refresh, and two competing transfers can briefly
  leave the name on two rows. Lookups by name prefer the most recently refreshed row.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple, TypeVar

import sentry_sdk

from social.graze.enscache.app.metrics import MetricsClient, NoOpMetricsClient
from social.graze.enscache.model.health import HealthGauge
from social.graze.enscache.resolve.name import (
    IdentifierType,
    InvalidIdentifierError,
    canonicalize_name,
    normalize_address,
    parse_identifier,
)
from social.graze.enscache.resolve.registry import (
    IdentityResolver,
    ResolverTimeout,
)
from social.graze.enscache.service.singleflight import SingleFlight
from social.graze.enscache.service.store import ProfileStore
from social.graze.enscache.service.types import (
    Failed,
    Found,
    LookupOutcome,
    NotFound,
    ProfileData,
    ProfileLinks,
    ProfileRecord,
    ProfileResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_TTL = 30 * 24 * 60 * 60 * 1000  # 30 days in milliseconds

DEFAULT_RESOLVER_TIMEOUT = 10.0

TEXT_RECORD_KEYS = (
    "header",
    "description",
    "url",
    "email",
    "com.twitter",
    "com.github",
)


class ProfileCacheService:
    """Resolution and caching of ENS profiles.

    Args:
        resolver: Registry lookups
        store: Profile persistence
        cache_ttl: Milliseconds a cached profile stays fresh
        resolver_timeout: Seconds each registry call may take, None to wait indefinitely
        surface_resolver_failures: Raise registry failures on the name path instead of
            reporting the identifier as unresolved
        coalesce_refreshes: Share one in-flight refresh between concurrent callers
        metrics_client: Metrics sink
        health_gauge: Readiness gauge bumped on swallowed failures
        clock: Returns the current time in seconds since the epoch
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        store: ProfileStore,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        resolver_timeout: Optional[float] = DEFAULT_RESOLVER_TIMEOUT,
        surface_resolver_failures: bool = False,
        coalesce_refreshes: bool = True,
        metrics_client: Optional[MetricsClient] = None,
        health_gauge: Optional[HealthGauge] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        self.resolver = resolver
        self.store = store
        self.cache_ttl = cache_ttl
        self.resolver_timeout = resolver_timeout
        self.surface_resolver_failures = surface_resolver_failures
        self.coalesce_refreshes = coalesce_refreshes
        self.metrics_client = metrics_client or NoOpMetricsClient()
        self.health_gauge = health_gauge
        self.clock = clock
        self._refreshes: SingleFlight[None] = SingleFlight()

    def now_seconds(self) -> int:
        return int(self.clock())

    def is_fresh(self, updated_at: Optional[int]) -> bool:
        if updated_at is None:
            return False
        now_ms = int(self.clock() * 1000)
        return now_ms - updated_at * 1000 < self.cache_ttl

    async def _resolver_call(
        self, operation: str, subject: str, call: Awaitable[T]
    ) -> T:
        try:
            async with asyncio.timeout(self.resolver_timeout):
                return await call
        except TimeoutError as e:
            self.metrics_client.increment(
                "enscache.resolver.timeout", 1, tag_dict={"operation": operation}
            )
            raise ResolverTimeout(
                operation, subject, f"no answer within {self.resolver_timeout}s"
            ) from e

    async def resolve_identifier(self, raw: Optional[str]) -> ProfileResult:
        """Classify an identifier and return what is known about it without refreshing."""
        parsed = parse_identifier(raw)
        if parsed is None:
            return ProfileResult.unresolved()

        if parsed.identifier_type == IdentifierType.address:
            address = parsed.identifier
            cached_profile = await self.store.get_by_address(address)
            if cached_profile is not None:
                self.metrics_client.increment(
                    "enscache.profile.cache_hit", 1, tag_dict={"key": "address"}
                )
                return ProfileResult(
                    address=address,
                    name=cached_profile.name,
                    cached_profile=cached_profile,
                    is_fresh=self.is_fresh(cached_profile.updated_at),
                )

            name = await self._resolver_call(
                "reverse_lookup", address, self.resolver.reverse_lookup(address)
            )
            return ProfileResult(address=address, name=name or None)

        outcome = await self._lookup_name(parsed.identifier)
        if isinstance(outcome, Found):
            return outcome.value
        if isinstance(outcome, Failed):
            await self._report_name_failure(parsed.identifier, outcome.cause)
            if self.surface_resolver_failures:
                raise outcome.cause
        return ProfileResult.unresolved()

    async def _lookup_name(self, raw_name: str) -> LookupOutcome[ProfileResult]:
        try:
            name = canonicalize_name(raw_name)
        except InvalidIdentifierError:
            logger.debug("Rejecting unnormalizable name %r", raw_name)
            return NotFound()

        try:
            cached_profile = await self.store.get_by_name(name)
            if cached_profile is not None:
                self.metrics_client.increment(
                    "enscache.profile.cache_hit", 1, tag_dict={"key": "name"}
                )
                return Found(
                    ProfileResult(
                        address=cached_profile.address,
                        name=name,
                        cached_profile=cached_profile,
                        is_fresh=self.is_fresh(cached_profile.updated_at),
                    )
                )

            address = await self._resolver_call(
                "forward_lookup", name, self.resolver.forward_lookup(name)
            )
        except Exception as e:
            return Failed(e)

        if not address:
            return NotFound()
        return Found(ProfileResult(address=address.lower(), name=name))

    async def _report_name_failure(self, name: str, cause: Exception) -> None:
        logger.warning(
            "Name resolution failed for %s, reporting as unresolved", name, exc_info=cause
        )
        sentry_sdk.capture_exception(cause)
        self.metrics_client.increment(
            "enscache.resolve.name.failure",
            1,
            tag_dict={"exception": type(cause).__name__},
        )
        if self.health_gauge is not None:
            await self.health_gauge.record_failure()

    async def fetch_profile(self, identifier: Optional[str]) -> Optional[ProfileRecord]:
        """Read a cached profile by address or name. Never contacts the registry."""
        parsed = parse_identifier(identifier)
        if parsed is None:
            return None

        if parsed.identifier_type == IdentifierType.address:
            return await self.store.get_by_address(parsed.identifier)

        try:
            name = canonicalize_name(parsed.identifier)
        except InvalidIdentifierError:
            # Only canonical names are ever stored.
            return None
        return await self.store.get_by_name(name)

    async def update_profile(self, address: str, name_hint: Optional[str] = None) -> None:
        """Refresh the cached profile for address from the registry.

        Args:
            address: Address to refresh, any case
            name_hint: Name already known to point at address, skips the reverse lookup

        Raises:
            InvalidIdentifierError: If address or the effective name is invalid
            ResolverFailure: If the registry cannot be queried
        """
        address = normalize_address(address)
        name_hint = canonicalize_name(name_hint) if name_hint else None
        if not self.coalesce_refreshes:
            await self._refresh(address, name_hint)
            return

        key: Tuple[str, Optional[str]] = (address, name_hint)
        if self._refreshes.in_flight(key):
            self.metrics_client.increment("enscache.profile.refresh.coalesced", 1)
        await self._refreshes.do(key, lambda: self._refresh(address, name_hint))

    async def _refresh(self, address: str, name_hint: Optional[str]) -> None:
        name = name_hint or await self._resolver_call(
            "reverse_lookup", address, self.resolver.reverse_lookup(address)
        )
        name = canonicalize_name(name) if name else None

        data = await self._fetch_profile_data(name) if name else ProfileData()

        profile = ProfileRecord(
            address=address,
            name=name,
            data=data,
            updated_at=self.now_seconds(),
        )

        async with self.store.atomic():
            if name is not None:
                await self.store.clear_name_except(name, address)
            await self.store.upsert(profile)

        logger.debug("Refreshed profile %s (%s)", address, name)
        self.metrics_client.increment(
            "enscache.profile.refresh", 1, tag_dict={"has_name": name is not None}
        )

    async def _fetch_profile_data(self, name: str) -> ProfileData:
        try:
            async with asyncio.TaskGroup() as tg:
                avatar_task = tg.create_task(
                    self._resolver_call("avatar", name, self.resolver.avatar(name))
                )
                text_tasks = {
                    key: tg.create_task(
                        self._resolver_call(
                            "text_record",
                            f"{name}#{key}",
                            self.resolver.text_record(name, key),
                        )
                    )
                    for key in TEXT_RECORD_KEYS
                }
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from eg

        texts: Dict[str, str] = {
            key: task.result() or "" for key, task in text_tasks.items()
        }
        return ProfileData(
            avatar=avatar_task.result() or "",
            header=texts["header"],
            description=texts["description"],
            links=ProfileLinks(
                url=texts["url"],
                email=texts["email"],
                twitter=texts["com.twitter"],
                github=texts["com.github"],
            ),
        )
