"""Profile persistence.

The cache service talks to storage through the ProfileStore contract. The SQLAlchemy
implementation maps it onto the offchain.ens_profile table.
"""

import contextlib
import logging
from contextvars import ContextVar
from typing import AsyncIterator, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from social.graze.enscache.model.profile import (
    Profile,
    clear_name_stmt,
    upsert_profile_stmt,
)
from social.graze.enscache.service.types import ProfileData, ProfileRecord

logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    """Storage capability contract.

    Writes issued inside `atomic()` are applied together. A store without transactions may
    implement `atomic()` as a plain pass-through, in which case revoking a transferred name and
    writing its new holder are two independent writes.
    """

    async def get_by_address(self, address: str) -> Optional[ProfileRecord]:
        ...

    async def get_by_name(self, name: str) -> Optional[ProfileRecord]:
        ...

    async def upsert(self, profile: ProfileRecord) -> None:
        ...

    async def clear_name_except(self, name: str, keep_address: str) -> int:
        ...

    def atomic(self) -> contextlib.AbstractAsyncContextManager[None]:
        ...


def profile_record(row: Profile) -> ProfileRecord:
    return ProfileRecord(
        address=row.address,
        name=row.name,
        data=ProfileData.model_validate(row.data or {}),
        updated_at=row.updated_at,
    )


class SQLAlchemyProfileStore:
    """ProfileStore on an async SQLAlchemy session factory (PostgreSQL).

    Reads go through session_maker. Writes and `atomic()` blocks go through write_session_maker
    when one is given, for deployments that read from a replica and write to the primary.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        write_session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.session_maker = session_maker
        self.write_session_maker = write_session_maker or session_maker
        self._transaction: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"enscache_store_transaction_{id(self)}", default=None
        )

    @contextlib.asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Run every store call made inside the block in a single transaction."""
        if self._transaction.get() is not None:
            yield
            return

        async with self.write_session_maker() as database_session, database_session.begin():
            token = self._transaction.set(database_session)
            try:
                yield
            finally:
                self._transaction.reset(token)

    @contextlib.asynccontextmanager
    async def _session(self, write: bool = False) -> AsyncIterator[AsyncSession]:
        database_session = self._transaction.get()
        if database_session is not None:
            yield database_session
            return

        session_maker = self.write_session_maker if write else self.session_maker
        async with session_maker() as database_session, database_session.begin():
            yield database_session

    async def get_by_address(self, address: str) -> Optional[ProfileRecord]:
        async with self._session() as database_session:
            row = (
                await database_session.scalars(
                    select(Profile).where(Profile.address == address)
                )
            ).first()
            return profile_record(row) if row is not None else None

    async def get_by_name(self, name: str) -> Optional[ProfileRecord]:
        # Two rows can briefly share a name while competing transfers settle, prefer the newest.
        async with self._session() as database_session:
            row = (
                await database_session.scalars(
                    select(Profile)
                    .where(Profile.name == name)
                    .order_by(Profile.updated_at.desc())
                    .limit(1)
                )
            ).first()
            return profile_record(row) if row is not None else None

    async def upsert(self, profile: ProfileRecord) -> None:
        async with self._session(write=True) as database_session:
            await database_session.execute(
                upsert_profile_stmt(
                    profile.address,
                    profile.name,
                    profile.data.model_dump(mode="json"),
                    profile.updated_at,
                )
            )

    async def clear_name_except(self, name: str, keep_address: str) -> int:
        async with self._session(write=True) as database_session:
            result = await database_session.execute(clear_name_stmt(name, keep_address))
            if result.rowcount:
                logger.info(
                    "Revoked %s from %d previous holder(s), new holder %s",
                    name,
                    result.rowcount,
                    keep_address,
                )
            return result.rowcount
