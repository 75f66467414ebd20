"""
entstore test suite.

This package contains:
- unit/: Unit tests (pure functions, mocked adapters, in-memory backend)
- integration/: Integration tests (Datastore over SQLite and in-memory adapters)
"""
