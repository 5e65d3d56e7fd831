"""
Database Models

This package defines the database models for the ENS profile cache using SQLAlchemy ORM.

Key Models:
- base.py: Base SQLAlchemy model with common type definitions
- profile.py: The cached ENS profile row and its upsert statements
- health.py: Health monitoring model

Each profile row is keyed by a lowercase address, optionally holds the canonical ENS name
currently pointing at that address, and carries the profile metadata as a JSON document.
"""
