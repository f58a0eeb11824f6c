"""
Features package — each sub-package encapsulates a self-contained feature.

Convention:
  features/<feature_name>/
    __init__.py      — public API re-exports
    models.py        — data models specific to this feature (if applicable)
    store.py         — JSON persistence / state management
    ...              — any other feature-specific modules

Features:
  beads/  — per-element change history ("memory")
  tasks/  — bounded registry of agent tasks
"""
