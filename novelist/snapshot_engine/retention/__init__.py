"""
Retention module for the snapshot engine.

Keeps snapshot storage bounded by thinning older history:
- every snapshot inside the daily window
- one per calendar day inside the weekly window
- one per calendar week inside the monthly window
- nothing older than the monthly window

Invariants:
    - Pinned snapshots are never deleted
    - The newest snapshot of each bucket is the one kept
"""

from .pruner import PruneDecision, RetentionPolicy, RetentionRules, plan

__all__ = ["RetentionPolicy", "RetentionRules", "PruneDecision", "plan"]
