#!/usr/bin/env python3
"""
Tests for the length-collage post-pass: requests longer than any single
roll are completed by joining segments from several rolls.
"""

import pytest

from cutplanner.models import CutRequest, Priority, Roll, UnitStatus
from cutplanner.services.allocation import DemandLedger, RollLayout, expand_requests
from cutplanner.services.collage import LengthCollageResolver
from cutplanner.services.strategies.registry import StrategyKey, get_strategy


def long_request(length=25, width=1000, request_id="A"):
    return CutRequest(
        id=request_id,
        order_number=f"ORD-{request_id}",
        material="M",
        width=width,
        length=length,
        priority=Priority.HIGH,
    )


def cuts_of(plan, request_id="A"):
    return [cut for pattern in plan.patterns for cut in pattern.cuts if cut.request_id == request_id]


@pytest.mark.parametrize("strategy", [key.value for key in StrategyKey])
def test_long_request_spans_two_rolls(strategy):
    """A 25m request is assembled from a 10m roll and a 20m roll."""
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=20)]
    plan = get_strategy(strategy).optimize(rolls, [long_request()])

    cuts = cuts_of(plan)
    assert len(cuts) == 2
    assert sum(cut.length for cut in cuts) == pytest.approx(25)
    assert all(cut.is_collage for cut in cuts)
    assert sorted(cut.collage_index for cut in cuts) == [0, 1]
    assert {pattern.roll.id for pattern in plan.patterns} == {"R1", "R2"}
    assert all(pattern.is_length_collage for pattern in plan.patterns)
    assert plan.statistics.fulfilled_requests == 1
    assert plan.unfulfilled == []
    assert plan.request_fulfillment[0].is_complete


def test_partial_cut_records_remaining_length():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=20)]
    plan = get_strategy("priority").optimize(rolls, [long_request()])

    first, second = sorted(cuts_of(plan), key=lambda cut: cut.collage_index)
    # Largest roll first, the remaining 5m come from the smaller one
    assert (first.length, first.remaining_length, first.is_partial) == (20, 5, True)
    assert (second.length, second.remaining_length, second.is_partial) == (5, 0, False)


def test_shortfall_without_candidates_is_unfulfillable():
    rolls = [Roll(id="R1", material="M", width=1000, length=10)]
    plan = get_strategy("priority").optimize(rolls, [long_request()])

    assert len(cuts_of(plan)) == 1
    unit = plan.unfulfilled[0]
    assert unit.status == UnitStatus.UNFULFILLABLE
    assert unit.requested_length == 25
    assert unit.residual_length == pytest.approx(15)
    assert "15m" in unit.reason
    assert plan.statistics.fulfilled_requests == 0


def test_width_is_never_collaged():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=500, length=30)]
    plan = get_strategy("bidimensional").optimize(rolls, [long_request()])

    assert all(pattern.roll.id != "R2" for pattern in plan.patterns)
    assert plan.unfulfilled[0].status == UnitStatus.UNFULFILLABLE
    for pattern in plan.patterns:
        assert sum(cut.width for cut in pattern.cuts) <= pattern.roll.width


def test_insufficient_length_commits_nothing():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=5)]
    plan = get_strategy("bidimensional").optimize(rolls, [long_request(length=30)])

    assert plan.patterns == []
    assert plan.statistics.rolls_used == 0
    unit = plan.unfulfilled[0]
    assert unit.status == UnitStatus.UNFULFILLABLE
    assert unit.residual_length == 30
    assert unit.reason == "candidate rolls cover 15m of 30m, 15m short"


def test_segment_uses_free_width_beside_existing_cuts():
    rolls = [Roll(id="R1", material="M", width=1000, length=20), Roll(id="R2", material="M", width=1000, length=10)]
    requests = [long_request(length=20, width=400, request_id="A"), long_request(length=30, width=500, request_id="B")]
    plan = get_strategy("bidimensional").optimize(rolls, requests)

    b_cuts = {cut_roll: cut for cut_roll, cut in (
        (pattern.roll.id, cut) for pattern in plan.patterns for cut in pattern.cuts if cut.request_id == "B"
    )}
    assert set(b_cuts) == {"R1", "R2"}
    assert (b_cuts["R1"].x, b_cuts["R1"].y, b_cuts["R1"].length) == (400, 0, 20)
    assert b_cuts["R2"].length == 10
    assert plan.statistics.fulfilled_requests == 2


def test_collage_can_be_disabled():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=20)]
    plan = get_strategy("priority").optimize(rolls, [long_request()], {"length_collage": False})

    assert len(cuts_of(plan)) == 1
    unit = plan.unfulfilled[0]
    assert unit.status == UnitStatus.PARTIALLY_CUT
    assert unit.residual_length == pytest.approx(5)


def test_resolver_handles_partial_units_before_pending_ones():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=8)]
    units = expand_requests([long_request(length=15, request_id="P"), long_request(length=8, request_id="Q")])
    ledger = DemandLedger(units)
    layout = RollLayout(rolls[0])
    layout.place(units[0], ledger)

    resolver = LengthCollageResolver(rolls, [layout], ledger)
    layouts = resolver.resolve()

    # P takes the 8m roll to finish its last 5m, Q has nothing left
    assert ledger.is_fulfilled("P-0")
    assert ledger.status("Q-0") == UnitStatus.UNFULFILLABLE
    assert [lay.roll.id for lay in layouts] == ["R1", "R2"]


def test_plan_segments_longest_first():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=1000, length=20)]
    segments, shortfall = LengthCollageResolver.plan_segments(25, sorted(rolls, key=lambda r: -r.length))

    assert [(r.id, length) for r, length in segments] == [("R2", 20), ("R1", 5)]
    assert shortfall == 0


def test_resolver_skips_rolls_the_strategy_would_reject():
    rolls = [Roll(id="R1", material="M", width=1000, length=10), Roll(id="R2", material="M", width=500, length=10)]
    units = expand_requests([long_request(length=10, width=400)])
    ledger = DemandLedger(units)

    def within_trim_limit(roll, used_width):
        return (roll.width - used_width) / roll.width <= 0.30

    layouts = LengthCollageResolver(rolls, [], ledger, accepts=within_trim_limit).resolve()

    assert [lay.roll.id for lay in layouts] == ["R2"]
    assert ledger.is_fulfilled("A-0")


def test_resolver_stops_opening_rolls_when_budget_is_spent():
    rolls = [Roll(id=f"R{n}", material="M", width=1000, length=10) for n in range(1, 4)]
    units = expand_requests([long_request(length=10, request_id="P"), long_request(length=10, request_id="Q")])
    ledger = DemandLedger(units)

    layouts = LengthCollageResolver(rolls, [], ledger, new_roll_budget=1).resolve()

    assert [lay.roll.id for lay in layouts] == ["R1"]
    assert ledger.is_fulfilled("P-0")
    assert ledger.status("Q-0") == UnitStatus.UNFULFILLABLE
    assert "10m short" in ledger.reason("Q-0")
