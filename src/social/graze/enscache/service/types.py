"""Cache service data types.

Pydantic models for the cached profile as it is returned to callers, the result of classifying
an identifier, and the tagged outcome used internally for registry lookups.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ProfileLinks(BaseModel):
    url: str = ""
    email: str = ""
    twitter: str = ""
    github: str = ""


class ProfileData(BaseModel):
    """Profile metadata gathered from ENS text records.

    Every field is an empty string when the registry has no value for it.
    """

    avatar: str = ""
    header: str = ""
    description: str = ""
    links: ProfileLinks = Field(default_factory=ProfileLinks)


class ProfileRecord(BaseModel):
    """A cached profile row.

    Serialized with by_alias=True so the timestamp is exposed as updatedAt.
    """

    model_config = ConfigDict(populate_by_name=True)

    address: str
    name: Optional[str] = None
    data: ProfileData = Field(default_factory=ProfileData)
    updated_at: int = Field(alias="updatedAt")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ProfileResult(BaseModel):
    """Outcome of classifying an identifier.

    Three shapes are possible: resolved and cached (cached_profile is set), resolved but not
    cached (address is set, cached_profile is None) and unresolved (everything empty).
    """

    address: Optional[str] = None
    name: Optional[str] = None
    cached_profile: Optional[ProfileRecord] = None
    is_fresh: bool = False

    @classmethod
    def unresolved(cls) -> "ProfileResult":
        return cls(address=None, name=None, cached_profile=None, is_fresh=False)


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Failed:
    cause: Exception


LookupOutcome = Union[Found[T], NotFound, Failed]
