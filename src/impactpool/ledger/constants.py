# src/impactpool/ledger/constants.py
from __future__ import annotations

"""Allocation constants.

Anchors:
- Distribution weighting: 70% vote share, 30% impact share
- All amounts are unsigned integers capped at 2**128 - 1
- Weights are expressed in basis points so payout math stays integral
"""

# Basis-point denominator used for all share weighting.
BPS_DENOM: int = 10_000

# Final share = 0.70 * vote_share + 0.30 * impact_share
VOTE_WEIGHT_BPS: int = 7_000
IMPACT_WEIGHT_BPS: int = 3_000

# Unsigned 128-bit ceiling for amounts, power and scores.
MAX_AMOUNT: int = 2**128 - 1

# Default cycle window: 30 days.
DEFAULT_CYCLE_DURATION_MS: int = 30 * 24 * 60 * 60 * 1000

# Cycle phases
PHASE_OPEN: str = "open"
PHASE_CLOSED: str = "closed"
PHASE_DISTRIBUTED: str = "distributed"
PHASE_NONE: str = "none"

CYCLE_PHASES = (PHASE_OPEN, PHASE_CLOSED, PHASE_DISTRIBUTED)

# Identity used for actions performed by the engine itself (auto-open).
SYSTEM_ACTOR: str = "SYSTEM"
