"""
Novelist Snapshot Engine - Versioned history for the documents of a writing vault.

This package keeps point-in-time copies ("snapshots") of markdown documents
inside the vault itself, built on:
- Plain-text snapshot entries (metadata envelope + captured body)
- A pluggable document store (local vault directory or in-memory)
- Tiered retention (daily / weekly / monthly windows, pinning)
- Restore with an automatic pre-restore backup

Architecture:
    ┌──────────────┐     ┌────────────────┐     ┌──────────────────┐
    │  CLI / Auto  │────▶│ SnapshotStore  │────▶│  DocumentStore   │
    │  snapshots   │     │ (capture/list) │     │ (local / memory) │
    └──────────────┘     └───────┬────────┘     └──────────────────┘
                                 │
                  ┌──────────────┼──────────────┐
                  ▼              ▼              ▼
            ┌──────────┐   ┌──────────┐   ┌──────────┐
            │ Envelope │   │Retention │   │ Restore  │
            │  codec   │   │ policy   │   │  tool    │
            └──────────┘   └──────────┘   └──────────┘

Invariants:
    - The live document is never modified except by a restore
    - Every restore is preceded by a backup snapshot
    - Pinned snapshots are never pruned

How to change safely:
    - Envelope keys and the history folder layout are on-disk formats
    - New metadata fields need defaults so older entries still decode
"""

from ._version import __version__

__all__ = ["__version__"]
