"""Identifier classification and canonicalization.

An identifier is either an Ethereum address (0x followed by 40 hex digits, any case) or an ENS
name. Addresses are normalized to lowercase and names are canonicalized with ENSIP-15.
"""

from enum import IntEnum
from typing import Optional

from ens_normalize import DisallowedSequence, ens_normalize
from eth_utils import is_hex_address
from pydantic import BaseModel


class InvalidIdentifierError(ValueError):
    """Raised when an identifier is neither a valid address nor a normalizable name."""


class IdentifierType(IntEnum):
    """Identifier type enumeration."""

    address = 1
    name = 2


class ParsedIdentifier(BaseModel):
    """Parsed identifier input.

    Addresses are already lowercased. Names are trimmed but not yet canonicalized because
    canonicalization can fail and callers decide how to treat that.
    """

    identifier_type: IdentifierType
    identifier: str


def is_address(value: Optional[str]) -> bool:
    """Check if value is a hex encoded address with a 0x prefix."""
    return value is not None and value.startswith("0x") and is_hex_address(value)


def normalize_address(value: str) -> str:
    """Lowercase an address, rejecting anything that is not address shaped."""
    if not is_address(value):
        raise InvalidIdentifierError(f"Not an address: {value!r}")
    return value.lower()


def canonicalize_name(name: str) -> str:
    """Canonicalize an ENS name using ENSIP-15 normalization.

    Args:
        name: Raw ENS name

    Returns:
        The normalized name

    Raises:
        InvalidIdentifierError: If the name contains disallowed sequences
    """
    try:
        return ens_normalize(name)
    except DisallowedSequence as e:
        raise InvalidIdentifierError(f"Invalid ENS name {name!r}: {e}") from e


def parse_identifier(raw: Optional[str]) -> Optional[ParsedIdentifier]:
    """Parse and classify an identifier.

    Args:
        raw: Raw identifier string

    Returns:
        ParsedIdentifier, or None for empty or blank input
    """
    if raw is None:
        return None
    raw = raw.strip()
    if len(raw) == 0:
        return None

    if is_address(raw):
        return ParsedIdentifier(
            identifier_type=IdentifierType.address, identifier=raw.lower()
        )

    return ParsedIdentifier(identifier_type=IdentifierType.name, identifier=raw)
