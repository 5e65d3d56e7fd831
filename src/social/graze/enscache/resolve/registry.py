"""ENS registry lookups.

Defines the narrow capability contract the cache service depends on and its implementation on
top of web3.py's asynchronous ENS module. A missing record is reported as None; anything that
prevents the registry from answering is raised as ResolverFailure so callers can tell an outage
from an unregistered name.
"""

import logging
from typing import Optional, Protocol

from aiohttp import ClientTimeout
from ens.exceptions import ResolverNotFound, UnsupportedFunction
from eth_utils import to_checksum_address
from web3 import AsyncWeb3

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ResolverFailure(Exception):
    """The registry could not be queried."""

    def __init__(self, operation: str, subject: str, message: str = "") -> None:
        self.operation = operation
        self.subject = subject
        super().__init__(
            f"{operation} failed for {subject}" + (f": {message}" if message else "")
        )


class ResolverTimeout(ResolverFailure):
    """The registry did not answer before the deadline."""


class IdentityResolver(Protocol):
    """Registry capability contract.

    Name arguments must already be canonicalized.
    """

    async def reverse_lookup(self, address: str) -> Optional[str]:
        ...

    async def forward_lookup(self, name: str) -> Optional[str]:
        ...

    async def avatar(self, name: str) -> Optional[str]:
        ...

    async def text_record(self, name: str, key: str) -> Optional[str]:
        ...


class Web3IdentityResolver:
    """IdentityResolver backed by web3.py AsyncENS over a JSON-RPC endpoint."""

    def __init__(
        self,
        w3: AsyncWeb3,
        ipfs_gateway: str = "https://ipfs.io",
    ) -> None:
        self.w3 = w3
        self.ipfs_gateway = ipfs_gateway.rstrip("/")

    @classmethod
    def from_rpc_url(
        cls, rpc_url: str, timeout: float = 10.0, ipfs_gateway: str = "https://ipfs.io"
    ) -> "Web3IdentityResolver":
        provider = AsyncWeb3.AsyncHTTPProvider(
            rpc_url, request_kwargs={"timeout": ClientTimeout(total=timeout)}
        )
        return cls(AsyncWeb3(provider), ipfs_gateway=ipfs_gateway)

    async def reverse_lookup(self, address: str) -> Optional[str]:
        try:
            name = await self.w3.ens.name(to_checksum_address(address))
        except Exception as e:
            raise ResolverFailure("reverse_lookup", address, str(e)) from e
        return name or None

    async def forward_lookup(self, name: str) -> Optional[str]:
        try:
            address = await self.w3.ens.address(name)
        except ResolverNotFound:
            return None
        except Exception as e:
            raise ResolverFailure("forward_lookup", name, str(e)) from e
        if address is None or address == ZERO_ADDRESS:
            return None
        return str(address)

    async def text_record(self, name: str, key: str) -> Optional[str]:
        try:
            value = await self.w3.ens.get_text(name, key)
        except (ResolverNotFound, UnsupportedFunction):
            return None
        except Exception as e:
            raise ResolverFailure("text_record", f"{name}#{key}", str(e)) from e
        return value or None

    async def avatar(self, name: str) -> Optional[str]:
        """Resolve the avatar record to a URL a browser can load.

        http(s) and data URIs are returned as is and ipfs:// URIs are rewritten through the
        configured gateway. NFT references (eip155:) and other schemes are not followed.
        """
        value = await self.text_record(name, "avatar")
        if value is None:
            return None
        if value.startswith(("https://", "http://", "data:")):
            return value
        if value.startswith("ipfs://"):
            path = value.removeprefix("ipfs://").removeprefix("ipfs/")
            return f"{self.ipfs_gateway}/ipfs/{path}"
        logger.debug("Unsupported avatar record for %s: %s", name, value)
        return None

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
