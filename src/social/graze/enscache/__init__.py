"""
ENS Profile Cache

This module implements a caching service for Ethereum Name Service (ENS) profiles. It resolves
human-readable ENS names for Ethereum addresses (and addresses for names), gathers the profile
text records attached to a name, and persists the result so repeated requests do not hit the
registry.

Key Components:
- app: Web application layer with request handlers and server configuration
- model: Database models for the cached profile rows
- resolve: Identifier classification, ENS canonicalization and registry lookups
- service: The cache service that decides when to refresh and reconciles name transfers

Architecture Overview:
1. Identifier Resolution:
   - Classifies an identifier as an address or an ENS name
   - Looks up the cached profile by address or canonical name
   - Falls back to the registry when nothing is cached

2. Profile Refresh:
   - Fetches avatar, header, description and link text records concurrently
   - Revokes the name from its previous holder when a name has been transferred
   - Replaces the cached row wholesale

3. Freshness:
   - Cached rows are served until they are older than the configured TTL
"""
