"""ENS profile cache data models.

Provides the SQLAlchemy model for cached ENS profiles and the statements used to
refresh a row and to revoke a name from a previous holder.
"""

from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, Index, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Mapped, mapped_column

from social.graze.enscache.model.base import Base, addresspk, ensname


class Profile(Base):
    """Cached ENS profile for a single address.

    The address is the lowercase hex form. The name is the canonical ENS name whose
    reverse record points at this address, or None when the address has no primary
    name. At most one row holds a given name once a refresh has completed.
    """

    __tablename__ = "ens_profile"

    address: Mapped[addresspk]
    name: Mapped[Optional[ensname]]
    data: Mapped[Dict[str, Any]] = mapped_column(JSON)
    updated_at: Mapped[int] = mapped_column(BigInteger)

    __table_args__ = (
        Index("idx_ens_profile_name", "name"),
        {"schema": "offchain"},
    )


def upsert_profile_stmt(
    address: str, name: Optional[str], data: Dict[str, Any], updated_at: int
):
    """Create PostgreSQL upsert statement for a profile row.

    Replaces every column of an existing row. The update only applies when the
    incoming timestamp is not older than the stored one so updated_at never goes
    backwards.
    """
    stmt = insert(Profile).values(
        [
            {
                "address": address,
                "name": name,
                "data": data,
                "updated_at": updated_at,
            }
        ]
    )
    return stmt.on_conflict_do_update(
        index_elements=["address"],
        set_={
            "name": stmt.excluded.name,
            "data": stmt.excluded.data,
            "updated_at": stmt.excluded.updated_at,
        },
        where=Profile.updated_at <= stmt.excluded.updated_at,
    )


def clear_name_stmt(name: str, keep_address: str):
    """Create statement that removes a name from every row except keep_address."""
    return (
        update(Profile)
        .where(Profile.name == name, Profile.address != keep_address)
        .values(name=None)
    )
