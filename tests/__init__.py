"""
Novelist Snapshot Engine Test Suite.

This package contains:
- unit/: Unit tests (pure components, in-memory document store)
- integration/: Integration tests (vault directory on disk, restore,
  auto-snapshots, engine lifecycle, CLI)
"""
