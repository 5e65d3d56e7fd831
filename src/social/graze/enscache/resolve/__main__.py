from typing import List, Optional
import argparse
import asyncio
import logging

from social.graze.enscache.resolve.name import (
    IdentifierType,
    InvalidIdentifierError,
    canonicalize_name,
    parse_identifier,
)
from social.graze.enscache.resolve.registry import (
    IdentityResolver,
    Web3IdentityResolver,
)

logger = logging.getLogger(__name__)


async def resolve_one(resolver: IdentityResolver, identifier: str) -> Optional[str]:
    parsed = parse_identifier(identifier)
    if parsed is None:
        return None

    if parsed.identifier_type == IdentifierType.address:
        name = await resolver.reverse_lookup(parsed.identifier)
        return f"{parsed.identifier} -> {name}"

    try:
        name = canonicalize_name(parsed.identifier)
    except InvalidIdentifierError as e:
        return f"{parsed.identifier} -> invalid ({e})"
    address = await resolver.forward_lookup(name)
    return f"{name} -> {address.lower() if address else None}"


async def realMain() -> None:
    parser = argparse.ArgumentParser(
        prog="resolve", description="Resolve ENS names and addresses"
    )
    parser.add_argument("identifier", nargs="+", help="The address(es) or name(s) to resolve.")
    parser.add_argument(
        "--rpc-url",
        default="https://cloudflare-eth.com",
        help="The Ethereum mainnet JSON-RPC endpoint.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for each lookup.",
    )

    args = vars(parser.parse_args())

    identifiers: List[str] = args.get("identifier", [])

    resolver = Web3IdentityResolver.from_rpc_url(
        args["rpc_url"], timeout=args["timeout"]
    )
    try:
        for identifier in identifiers:
            try:
                resolved = await resolve_one(resolver, identifier)
                print(f"resolved {resolved}")
            except Exception:
                logging.exception("Exception resolving identifier %s", identifier)
    finally:
        await resolver.close()


def main() -> None:
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
