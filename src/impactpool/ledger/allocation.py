# src/impactpool/ledger/allocation.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Tuple

from impactpool.ledger.constants import BPS_DENOM, IMPACT_WEIGHT_BPS, VOTE_WEIGHT_BPS

Issuance = Callable[[int], int]


def identity_issuance(amount: int) -> int:
    """Default power issuance: one unit of power per unit contributed."""
    return max(0, int(amount))


def power_grant(issuance: Issuance, before: int, after: int) -> int:
    """Power granted when a donor's cycle contribution moves from before to after.

    Grants are differences of the issuance curve so that the donor's issued
    power always equals issuance(total contributed this cycle), whatever the
    shape of the curve.
    """
    grant = int(issuance(int(after))) - int(issuance(int(before)))
    if grant < 0:
        raise ValueError("issuance must be non-decreasing")
    return grant


def quadratic_influence(cumulative_spend: int) -> int:
    """Influence of a cumulative spend: floor(sqrt(spend))."""
    s = int(cumulative_spend)
    if s <= 0:
        return 0
    return math.isqrt(s)


def tally_delta(old_cumulative: int, new_cumulative: int) -> int:
    """Change to a beneficiary's tally when one donor's spend grows.

    Summing these deltas keeps the running tally equal to the sum of
    isqrt(cumulative spend) per donor, i.e. the square root is always taken
    over the cumulative spend and never over individual votes.
    """
    return quadratic_influence(new_cumulative) - quadratic_influence(old_cumulative)


@dataclass(frozen=True)
class Allocation:
    payouts: Dict[str, int]
    distributed: int
    remainder: int


def compute_payouts(
    *,
    total_pool: int,
    tallies: Mapping[str, int],
    scores: Mapping[str, int],
    vote_weight_bps: int = VOTE_WEIGHT_BPS,
    impact_weight_bps: int = IMPACT_WEIGHT_BPS,
) -> Allocation:
    """Split total_pool by weighted vote share and impact share.

    payout(b) = floor(total_pool * final_share(b)) with

        final_share(b) = w_v * tally(b)/T + w_i * score(b)/S

    evaluated exactly as a single integer fraction. A term whose total is zero
    contributes nothing; the undistributed part stays in the remainder.
    """
    pool = int(total_pool)
    if pool < 0:
        raise ValueError("total_pool must be non-negative")
    if int(vote_weight_bps) + int(impact_weight_bps) > BPS_DENOM:
        raise ValueError("weights exceed 100%")

    t = {str(k): int(v) for k, v in tallies.items() if int(v) > 0}
    s = {str(k): int(v) for k, v in scores.items() if int(v) > 0}
    total_tally = sum(t.values())
    total_score = sum(s.values())

    # Common denominator: BPS * T * S, with zero totals dropped from both the
    # denominator and their term.
    t_div = total_tally if total_tally > 0 else 1
    s_div = total_score if total_score > 0 else 1
    denom = BPS_DENOM * t_div * s_div

    payouts: Dict[str, int] = {}
    for b in sorted(set(t) | set(s)):
        num = 0
        if total_tally > 0:
            num += int(vote_weight_bps) * t.get(b, 0) * s_div
        if total_score > 0:
            num += int(impact_weight_bps) * s.get(b, 0) * t_div
        payouts[b] = (pool * num) // denom

    distributed = sum(payouts.values())
    if distributed > pool:
        # Cannot happen with weights <= 100%; guard the invariant anyway.
        raise ArithmeticError("over-distribution")
    return Allocation(payouts=payouts, distributed=distributed, remainder=pool - distributed)


def transfer_instructions(payouts: Mapping[str, int]) -> List[Tuple[str, int]]:
    """Stable (beneficiary, amount) list, zero payouts omitted."""
    return [(b, int(payouts[b])) for b in sorted(payouts) if int(payouts[b]) > 0]
