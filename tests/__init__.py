"""
Pyrope Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies, store clients mocked)
- integration/: Integration tests (full stack against InMemoryStore)
"""
