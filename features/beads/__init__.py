"""
Beads feature — durable per-element change history.

Public API:
    from features.beads import MemoryStore, Bead, ChangeRecord, derive_key
"""

from features.beads.identity import derive_key
from features.beads.models import Bead, ChangeRecord
from features.beads.store import MemoryStore

__all__ = ["Bead", "ChangeRecord", "MemoryStore", "derive_key"]
