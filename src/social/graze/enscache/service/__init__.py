"""
Profile Cache Service

Key Components:
- cache.py: ProfileCacheService, the resolution, freshness and refresh logic
- store.py: The ProfileStore contract and its SQLAlchemy implementation
- types.py: Profile models, resolution results and tagged lookup outcomes
- singleflight.py: Sharing of in-flight refreshes between concurrent callers
"""
