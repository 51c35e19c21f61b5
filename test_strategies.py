#!/usr/bin/env python3
"""
Tests for the individual cutting strategies: ordering rules, options and
the registry.
"""

import logging
from datetime import date, timedelta

import pytest

from cutplanner.exceptions import InvalidOptionsError, UnknownStrategyError
from cutplanner.models import CutRequest, Priority, Roll, UnitStatus
from cutplanner.services.strategies.base import BaseStrategy
from cutplanner.services.strategies.priority import deadline_bonus
from cutplanner.services.strategies.registry import StrategyKey, get_strategy, list_strategies
from cutplanner.services.strategies.roll_minimization import bucket_units
from cutplanner.services.allocation import expand_requests


def roll(roll_id, width, length, material="M"):
    return Roll(id=roll_id, material=material, width=width, length=length)


def request(request_id, width, length, quantity=1, priority=Priority.NORMAL, deadline=None, material="M"):
    return CutRequest(
        id=request_id,
        order_number=f"ORD-{request_id}",
        material=material,
        width=width,
        length=length,
        quantity=quantity,
        priority=priority,
        deadline=deadline,
    )


def placed_request_ids(plan):
    return [cut.request_id for pattern in plan.patterns for cut in pattern.cuts]


def unfulfilled_request_ids(plan):
    return [unit.request_id for unit in plan.unfulfilled]


# ============================================================================
# REGISTRY
# ============================================================================

def test_registry_lists_every_strategy():
    listed = list_strategies()
    assert [item["key"] for item in listed] == [key.value for key in StrategyKey]
    for item in listed:
        assert item["name"]
        assert "properties" in item["settings_schema"]
        assert "length_collage" in item["settings_schema"]["properties"]


def test_unknown_strategy_raises_at_lookup():
    with pytest.raises(UnknownStrategyError) as exc_info:
        get_strategy("simulated-annealing")
    assert exc_info.value.strategy == "simulated-annealing"
    assert "priority" in exc_info.value.available
    # Also a KeyError for callers treating the registry as a mapping
    with pytest.raises(KeyError):
        get_strategy("nope")


@pytest.mark.parametrize("options", [
    {"bucket": 5},
    {"waste_limit": "a lot"},
    {"waste_limit": 1.5},
    ["bucket_size", 10],
])
def test_invalid_options_raise_before_optimizing(options):
    strategy = get_strategy("roll-min")
    with pytest.raises(InvalidOptionsError):
        strategy.optimize([roll("R1", 1000, 10)], [request("A", 500, 10)], options)


def test_invalid_options_is_a_value_error():
    with pytest.raises(ValueError):
        get_strategy("waste-min").parse_options({"mode": "worst-fit"})


def test_options_accept_mapping_and_defaults():
    strategy = get_strategy("column-gen")
    settings = strategy.parse_options({"max_iterations": 3})
    assert settings.max_iterations == 3
    assert settings.max_patterns == 100
    assert settings.length_collage is True
    assert strategy.parse_options(settings) is settings


def test_priority_aliases():
    assert Priority.parse("medium") == Priority.NORMAL
    assert Priority.parse("4") == Priority.URGENT
    assert Priority.parse(" High ") == Priority.HIGH
    assert Priority.URGENT > Priority.HIGH > Priority.NORMAL > Priority.LOW
    with pytest.raises(ValueError):
        Priority.parse("critical")


# ============================================================================
# PRIORITY VS WASTE DIVERGENCE
# ============================================================================

DIVERGENCE_CASES = [
    # (roll width, roll length, urgent-side request, low-priority request)
    pytest.param(1000, 50, (600, 10, Priority.URGENT), (700, 10), id="urgent-600-vs-low-700"),
    pytest.param(1000, 100, (400, 50, Priority.HIGH), (700, 50), id="high-400-vs-low-700"),
]


def divergence_input(roll_width, roll_length, first, second):
    width, length, priority = first
    rolls = [roll("R1", roll_width, roll_length, material="M1")]
    requests = [
        request("A", width, length, priority=priority, material="M1"),
        request("B", second[0], second[1], priority=Priority.LOW, material="M1"),
    ]
    return rolls, requests


@pytest.mark.parametrize("roll_width, roll_length, first, second", DIVERGENCE_CASES)
def test_priority_places_higher_priority_request_first(roll_width, roll_length, first, second):
    rolls, requests = divergence_input(roll_width, roll_length, first, second)
    plan = get_strategy("priority").optimize(rolls, requests)

    assert placed_request_ids(plan) == ["A"]
    assert unfulfilled_request_ids(plan) == ["B"]
    assert plan.unfulfilled[0].status == UnitStatus.UNFULFILLABLE
    stats = plan.cutting_plans[0].statistics.priority_stats
    assert stats[first[2].value] == {"total": 1, "fulfilled": 1}
    assert stats["low"] == {"total": 1, "fulfilled": 0}


@pytest.mark.parametrize("roll_width, roll_length, first, second", DIVERGENCE_CASES)
def test_first_fit_decreasing_places_widest_request_first(roll_width, roll_length, first, second):
    rolls, requests = divergence_input(roll_width, roll_length, first, second)
    plan = get_strategy("waste-min").optimize(rolls, requests, {"mode": "ffd"})

    assert placed_request_ids(plan) == ["B"]
    assert unfulfilled_request_ids(plan) == ["A"]


def test_priority_deadline_breaks_ties():
    reference = date(2024, 3, 1)
    rolls = [roll("R1", 500, 10)]
    requests = [
        request("A", 400, 10),
        request("B", 400, 10, deadline=reference + timedelta(days=1)),
    ]
    plan = get_strategy("priority").optimize(rolls, requests, {"reference_date": reference, "length_collage": False})

    assert placed_request_ids(plan) == ["B"]


def test_priority_scores_units():
    strategy = get_strategy("priority")
    settings = strategy.parse_options({"reference_date": "2024-03-01"})
    units = expand_requests([
        request("S", 10, 5, priority=Priority.HIGH),
        request("L", 500, 20, priority=Priority.LOW, deadline=date(2024, 2, 20)),
    ])
    scored = {unit.request_id: unit.score for unit in strategy.prepare_units(units, settings)}

    # high 80 + 50/1000 - small order penalty 10
    assert scored["S"] == pytest.approx(70.05)
    # low 20 + 10000/1000 + overdue 50
    assert scored["L"] == pytest.approx(80.0)


def test_priority_weights_accept_aliases():
    settings = get_strategy("priority").parse_options({"priority_weights": {"medium": 60}})
    assert settings.priority_weights["normal"] == 60
    assert settings.priority_weights["urgent"] == 100


@pytest.mark.parametrize("days, bonus", [
    (-3, 50),
    (0, 30),
    (1, 20),
    (3, 20),
    (4, 10),
    (7, 10),
    (8, 0),
])
def test_deadline_bonus_steps(days, bonus):
    reference = date(2024, 3, 1)
    assert deadline_bonus(reference + timedelta(days=days), reference) == bonus


def test_deadline_bonus_without_deadline():
    assert deadline_bonus(None, date(2024, 3, 1)) == 0


# ============================================================================
# WASTE MINIMIZATION
# ============================================================================

def test_hybrid_records_comparison_and_prefers_ffd_on_tie():
    rolls = [roll("R1", 1000, 10), roll("R2", 700, 10)]
    requests = [request("A", 500, 10), request("B", 400, 10), request("C", 300, 10, quantity=2)]
    plan = get_strategy("waste-min").optimize(rolls, requests)

    details = plan.cutting_plans[0].details
    assert details["mode"] == "hybrid"
    assert details["ffd_waste"] == details["bfd_waste"] == 0
    assert details["chosen"] == "ffd"


def test_hybrid_keeps_lower_waste():
    rolls = [roll("R1", 1000, 10), roll("R2", 900, 12), roll("R3", 600, 8)]
    requests = [
        request("A", 550, 6),
        request("B", 450, 10),
        request("C", 300, 12),
        request("D", 250, 4, quantity=2),
    ]
    plan = get_strategy("waste-min").optimize(rolls, requests, {"length_collage": False})

    details = plan.cutting_plans[0].details
    chosen = details["chosen"]
    assert details[f"{chosen}_waste"] == min(details["ffd_waste"], details["bfd_waste"])
    assert plan.statistics.total_waste == pytest.approx(details[f"{chosen}_waste"], abs=0.01)


def test_best_fit_decreasing_fills_tightest_gap():
    rolls = [roll("R1", 1000, 10)]
    requests = [request("A", 700, 10), request("B", 350, 10), request("C", 300, 10)]
    plan = get_strategy("waste-min").optimize(rolls, requests, {"mode": "bfd", "length_collage": False})

    assert placed_request_ids(plan) == ["A", "C"]
    assert plan.patterns[0].trim_width == 0


# ============================================================================
# BIDIMENSIONAL
# ============================================================================

def test_bidimensional_checks_width_and_length():
    rolls = [roll("R1", 1000, 10)]
    requests = [request("A", 400, 10), request("B", 400, 12), request("C", 500, 8)]
    plan = get_strategy("bidimensional").optimize(rolls, requests)

    assert sorted(placed_request_ids(plan)) == ["A", "C"]
    assert unfulfilled_request_ids(plan) == ["B"]
    pattern = plan.patterns[0]
    assert [cut.x for cut in pattern.cuts] == [0, 400]
    assert all(cut.y == 0 for cut in pattern.cuts)
    # 500mm x 2m tail under the shorter cut
    assert pattern.waste == pytest.approx(1000)
    assert pattern.remainder_area == pytest.approx(1000)


# ============================================================================
# ROLL MINIMIZATION
# ============================================================================

def test_bucket_units_by_width():
    units = expand_requests([request("A", 105, 1), request("B", 98, 1), request("C", 101, 1)])
    buckets = bucket_units(units, 10)

    assert list(buckets) == [90, 100]
    assert [unit.request_id for unit in buckets[100]] == ["A", "C"]


def test_roll_min_rejects_pattern_above_waste_limit():
    rolls = [roll("R1", 1000, 10)]
    requests = [request("A", 600, 10)]
    plan = get_strategy("roll-min").optimize(rolls, requests, {"length_collage": False})

    assert plan.statistics.rolls_used == 0
    assert unfulfilled_request_ids(plan) == ["A"]
    assert plan.unfulfilled[0].status == UnitStatus.PENDING


@pytest.mark.parametrize("width", [400, 600])
def test_roll_min_waste_limit_holds_with_collage(width):
    rolls = [roll("R1", 1000, 10)]
    requests = [request("A", width, 10)]
    plan = get_strategy("roll-min").optimize(rolls, requests)

    assert plan.statistics.rolls_used == 0
    assert unfulfilled_request_ids(plan) == ["A"]
    assert plan.unfulfilled[0].status == UnitStatus.UNFULFILLABLE
    assert "strategy limits" in plan.unfulfilled[0].reason


def test_roll_min_collage_opens_rolls_within_waste_limit():
    rolls = [roll("R1", 1000, 10), roll("R2", 1000, 20)]
    requests = [request("A", 800, 25)]
    plan = get_strategy("roll-min").optimize(rolls, requests)

    assert plan.statistics.fulfilled_requests == 1
    assert {pattern.roll.id for pattern in plan.patterns} == {"R1", "R2"}
    for pattern in plan.patterns:
        assert pattern.trim_width / pattern.roll.width <= 0.30


@pytest.mark.parametrize("width, waste_limit, used", [
    (800, 0.30, 1),
    (600, 0.50, 1),
    (600, 0.30, 0),
])
def test_roll_min_waste_limit(width, waste_limit, used):
    plan = get_strategy("roll-min").optimize(
        [roll("R1", 1000, 10)],
        [request("A", width, 10)],
        {"waste_limit": waste_limit, "length_collage": False},
    )
    assert plan.statistics.rolls_used == used
    for pattern in plan.patterns:
        assert pattern.trim_width / pattern.roll.width <= waste_limit


# ============================================================================
# MULTI-OBJECTIVE
# ============================================================================

def test_multi_orders_by_priority_weighted_width():
    rolls = [roll("R1", 800, 10)]
    requests = [request("L", 700, 10, priority=Priority.LOW), request("U", 200, 10, priority=Priority.URGENT)]
    plan = get_strategy("multi").optimize(rolls, requests)

    assert placed_request_ids(plan) == ["U"]
    assert unfulfilled_request_ids(plan) == ["L"]


def test_multi_warns_when_weights_do_not_sum_to_one(caplog):
    rolls = [roll("R1", 800, 10)]
    requests = [request("A", 200, 10)]
    with caplog.at_level(logging.WARNING):
        plan = get_strategy("multi").optimize(rolls, requests, {"weights": {"waste": 0.5, "priority": 0.5, "rolls": 0.5}})

    assert plan.statistics.fulfilled_requests == 1
    assert any("sum to 1.500" in record.getMessage() for record in caplog.records)


def test_multi_rejects_unknown_weight():
    with pytest.raises(InvalidOptionsError):
        get_strategy("multi").parse_options({"weights": {"speed": 1.0}})


# ============================================================================
# COLUMN GENERATION
# ============================================================================

def test_column_gen_commits_best_candidate():
    rolls = [roll("R1", 1000, 10), roll("R2", 700, 10)]
    requests = [request("A", 700, 10)]
    plan = get_strategy("column-gen").optimize(rolls, requests)

    assert [pattern.roll.id for pattern in plan.patterns] == ["R2"]


@pytest.mark.parametrize("options, patterns", [
    ({"max_patterns": 1}, 1),
    ({"max_iterations": 2}, 2),
    ({}, 3),
])
def test_column_gen_bounds(options, patterns):
    rolls = [roll("R1", 1000, 10), roll("R2", 1000, 10), roll("R3", 1000, 10)]
    requests = [request("A", 600, 10, quantity=3)]
    plan = get_strategy("column-gen").optimize(rolls, requests, dict(options, length_collage=False))

    assert plan.statistics.rolls_used == patterns
    assert plan.statistics.fulfilled_requests == patterns
    roll_ids = [pattern.roll.id for pattern in plan.patterns]
    assert len(roll_ids) == len(set(roll_ids))
    assert plan.cutting_plans[0].details["iterations"] <= options.get("max_iterations", 20)


@pytest.mark.parametrize("options, patterns", [
    ({"max_patterns": 1}, 1),
    ({"max_iterations": 2}, 2),
])
def test_column_gen_bounds_hold_with_collage(options, patterns):
    rolls = [roll("R1", 1000, 10), roll("R2", 1000, 10), roll("R3", 1000, 10)]
    requests = [request("A", 600, 10, quantity=3)]
    plan = get_strategy("column-gen").optimize(rolls, requests, options)

    assert plan.statistics.rolls_used == patterns
    assert plan.statistics.fulfilled_requests == patterns
    roll_ids = [pattern.roll.id for pattern in plan.patterns]
    assert len(roll_ids) == len(set(roll_ids))
    assert len(plan.unfulfilled) == 3 - patterns
    assert all(unit.status == UnitStatus.UNFULFILLABLE for unit in plan.unfulfilled)


def test_pattern_efficiency_basis_differs_from_area_basis():
    rolls = [roll("R1", 1000, 10), roll("R2", 1000, 20)]
    requests = [request("A", 1000, 10, quantity=2)]

    multi = get_strategy("multi").optimize(rolls, requests)
    ffd = get_strategy("waste-min").optimize(rolls, requests, {"mode": "ffd"})

    # (100% + 50%) / 2 pattern mean vs 20000 / 30000 pooled
    assert multi.statistics.efficiency == pytest.approx(75.0)
    assert ffd.statistics.efficiency == pytest.approx(200 / 3)


def test_strategy_without_allocate_cannot_be_built():
    class NoAllocate(BaseStrategy):
        key = "no-allocate"

    with pytest.raises(TypeError):
        BaseStrategy()
    with pytest.raises(TypeError):
        NoAllocate()
