from __future__ import annotations

import pytest

from _pool_helpers import ADMIN, make_engine
from impactpool.runtime.errors import InsufficientPower, InvalidAmount, UnknownBeneficiary


def test_split_votes_match_single_vote() -> None:
    one = make_engine()
    one.open_cycle(ADMIN)
    one.contribute("A", 100)
    one.vote("A", "X", 100)

    split = make_engine()
    split.open_cycle(ADMIN)
    split.contribute("A", 100)
    for p in (25, 25, 50):
        split.vote("A", "X", p)

    assert one.get_tally("X") == split.get_tally("X") == 10
    assert one.get_donor_power("A") == split.get_donor_power("A") == 0


def test_tally_sums_per_donor_square_roots() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 100)
    eng.contribute("B", 400)
    eng.vote("A", "X", 100)
    out = eng.vote("B", "X", 400)

    assert out["tally"] == 30
    assert eng.get_cycle()["total_tally"] == 30


def test_vote_debits_full_power() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 50)
    out = eng.vote("A", "X", 10)

    assert out["power_spent"] == 10
    assert out["power_spendable"] == 40
    assert eng.get_tally("X") == 3
    assert eng.get_donor_power("A") == 40


def test_insufficient_power_is_rejected_not_clamped() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 10)
    before = eng.read_state()

    with pytest.raises(InsufficientPower) as ei:
        eng.vote("A", "X", 11)
    assert ei.value.details["spendable"] == 10

    assert eng.read_state() == before
    assert eng.get_donor_power("A") == 10
    assert eng.get_tally("X") == 0


def test_vote_without_contribution_has_no_power() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    with pytest.raises(InsufficientPower):
        eng.vote("stranger", "X", 1)


def test_unverified_beneficiary_rejected() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 10)

    with pytest.raises(UnknownBeneficiary):
        eng.vote("A", "ghost", 1)
    # Registered but not yet verified.
    with pytest.raises(UnknownBeneficiary):
        eng.vote("A", "pending", 1)

    assert eng.get_donor_power("A") == 10


@pytest.mark.parametrize("power", [0, -1, True, "ten", None, "\u00b2"])
def test_bad_power_values_rejected(power) -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 10)
    with pytest.raises(InvalidAmount):
        eng.vote("A", "X", power)


def test_power_is_conserved() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.contribute("A", 70)
    eng.contribute("A", 30)
    eng.vote("A", "X", 9)
    eng.vote("A", "Y", 16)
    eng.vote("A", "X", 7)

    view = eng.view()
    spendable = view.get_donor_power("A")
    committed = view.get_committed_power("A")
    assert committed == 32
    assert spendable + committed == 100
    assert view.get_cycle()["donors"]["A"]["power_issued"] == 100
    assert eng.check_invariants() == []
