"""
Identity Resolution

This package classifies user supplied identifiers and resolves them against the Ethereum Name
Service registry.

Key Components:
- name.py: Identifier classification, address normalization and ENS name canonicalization
- registry.py: The registry capability contract and its web3.py implementation
- __main__.py: CLI interface for resolution

Resolution Types:
1. Reverse Resolution
   - Address to primary ENS name, verified against the forward record

2. Forward Resolution
   - Canonical ENS name to address

3. Record Resolution
   - Avatar and arbitrary text records (header, description, url, email, com.twitter, com.github)

Names must be canonicalized with the ENSIP-15 normalization algorithm before any lookup. Plain
lowercasing is not enough: two visually identical names that normalize differently would
otherwise be cached as different identities.
"""
