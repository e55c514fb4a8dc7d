from __future__ import annotations

import pytest

from _pool_helpers import ADMIN, ORACLE, FakeClock, make_engine
from impactpool.runtime.collaborators import StaticRegistry, StaticTrustedSource
from impactpool.runtime.engine import PoolEngine
from impactpool.runtime.memory_store import MemoryLedgerStore
from impactpool.runtime.errors import (
    DuplicateSubmission,
    InvalidAmount,
    PhaseClosed,
    UnknownBeneficiary,
    UnknownCycle,
    UntrustedSource,
)


def test_trusted_source_submits_score() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    out = eng.submit_impact(ORACLE, "X", 40, 1)

    assert out["score"] == 40
    assert eng.view().get_impact_score("X") == 40
    assert eng.get_cycle()["total_score"] == 40


def test_untrusted_source_rejected() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    with pytest.raises(UntrustedSource):
        eng.submit_impact("random-oracle", "X", 40, 1)
    assert eng.view().get_impact_score("X") is None


def test_duplicate_submission_keeps_first_score() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.submit_impact(ORACLE, "X", 40, 1)
    with pytest.raises(DuplicateSubmission):
        eng.submit_impact(ORACLE, "X", 90, 1)

    assert eng.view().get_impact_score("X") == 40
    assert eng.get_cycle()["total_score"] == 40


def test_zero_score_counts_as_submission() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.submit_impact(ORACLE, "X", 0, 1)
    with pytest.raises(DuplicateSubmission):
        eng.submit_impact(ORACLE, "X", 1, 1)


def test_accepted_while_closed_rejected_once_distributed() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    eng.close_cycle(ADMIN)
    eng.submit_impact(ORACLE, "Y", 5, 1)

    eng.distribute(1)
    with pytest.raises(PhaseClosed):
        eng.submit_impact(ORACLE, "X", 5, 1)


def test_unknown_cycle_and_beneficiary() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    with pytest.raises(UnknownCycle):
        eng.submit_impact(ORACLE, "X", 5, 7)
    with pytest.raises(UnknownBeneficiary):
        eng.submit_impact(ORACLE, "ghost", 5, 1)
    with pytest.raises(InvalidAmount):
        eng.submit_impact(ORACLE, "X", -1, 1)


def test_per_cycle_trusted_source_override() -> None:
    eng = PoolEngine(
        store=MemoryLedgerStore(),
        pool_id="pool-test",
        admin_id=ADMIN,
        registry=StaticRegistry(["X"]),
        trusted=StaticTrustedSource(ORACLE, per_cycle={1: "auditor-2024"}),
        clock=FakeClock(),
    )
    eng.open_cycle(ADMIN)
    with pytest.raises(UntrustedSource):
        eng.submit_impact(ORACLE, "X", 1, 1)
    assert eng.submit_impact("auditor-2024", "X", 1, 1)["score"] == 1


def test_unicode_digit_score_rejected() -> None:
    eng = make_engine()
    eng.open_cycle(ADMIN)
    with pytest.raises(InvalidAmount):
        eng.submit_impact(ORACLE, "X", "\u00b2", 1)
    assert eng.view().get_impact_score("X") is None
