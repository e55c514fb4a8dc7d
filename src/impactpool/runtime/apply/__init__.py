# src/impactpool/runtime/apply/__init__.py
"""Domain-specific apply modules.

These modules implement deterministic ledger state transitions for subsets
of operation types. domain_dispatch routes each envelope to the first
applier that claims it.

NOTE: Keep this package import-safe (no imports of domain_dispatch).
"""

from __future__ import annotations

__all__ = [
    "cycles",
    "donations",
    "voting",
    "impact",
    "distribution",
]
