"""
Plan aggregation and reporting helpers.

Folds per-material results into a Plan with global statistics, and formats
plans for the persistence and presentation collaborators (plain dicts only).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging

from .. import config
from ..models import (
    CutRequest,
    LENGTH_EPSILON,
    MaterialPlan,
    MaterialStatistics,
    Pattern,
    Plan,
    PlanStatistics,
    Priority,
    RequestFulfillment,
    Roll,
    UnfulfilledUnit,
    UnitStatus,
)
from .allocation import expand_requests
from .geometry import calculate_efficiency, closure_gap

logger = logging.getLogger(__name__)

# Relative tolerance for area closure checks (mm·m)
AREA_TOLERANCE = 1e-6

NO_STOCK_REASON = "no stock rolls for material"

PRIORITY_ORDER = [Priority.URGENT, Priority.HIGH, Priority.NORMAL, Priority.LOW]


@dataclass
class MaterialResult:
    """Output of one material job, before aggregation."""
    material: str
    material_plan: Optional[MaterialPlan]
    unfulfilled: List[UnfulfilledUnit] = field(default_factory=list)
    fulfilled_units: Dict[str, int] = field(default_factory=dict)  # request id -> fulfilled unit count


def total_units(requests: Sequence[CutRequest]) -> int:
    return sum(request.quantity for request in requests)


def material_statistics(patterns: Sequence[Pattern], ledger, efficiency_basis: str = "area") -> MaterialStatistics:
    """
    Statistics for one material.

    With the "area" basis efficiency is pooled used area over pooled roll area;
    with the "pattern" basis it is the mean of the pattern efficiencies.
    """
    total_area = sum(pattern.roll.area for pattern in patterns)
    used_area = sum(pattern.used_area for pattern in patterns)

    if efficiency_basis == "pattern":
        efficiency = sum(p.efficiency for p in patterns) / len(patterns) if patterns else 0.0
    else:
        efficiency = calculate_efficiency(used_area, total_area)

    priority_stats = {priority.value: {"total": 0, "fulfilled": 0} for priority in PRIORITY_ORDER}
    for unit in ledger.units:
        bucket = priority_stats[unit.priority.value]
        bucket["total"] += 1
        if ledger.is_fulfilled(unit.unit_id):
            bucket["fulfilled"] += 1

    return MaterialStatistics(
        efficiency=efficiency,
        total_waste=sum(pattern.waste for pattern in patterns),
        total_remainder_area=sum(pattern.remainder_area for pattern in patterns),
        used_area=used_area,
        rolls_used=len(patterns),
        fulfilled_requests=ledger.fulfilled_count(),
        total_requests=len(ledger.units),
        priority_stats=priority_stats,
    )


def request_fulfillment(requests: Sequence[CutRequest], fulfilled_units: Dict[str, int]) -> List[RequestFulfillment]:
    """Re-aggregate fulfilled units per original request."""
    return [
        RequestFulfillment(
            request_id=request.id,
            order_number=request.order_number,
            material=request.material,
            requested=request.quantity,
            fulfilled=fulfilled_units.get(request.id, 0),
        )
        for request in requests
    ]


def empty_plan(strategy: str, rolls: Sequence[Roll], requests: Sequence[CutRequest]) -> Plan:
    """Zero-valued plan for empty input; total requests still reflect the input quantities."""
    unfulfilled = [
        UnfulfilledUnit(
            unit_id=unit.unit_id,
            request_id=unit.request_id,
            order_number=unit.order_number,
            material=unit.material,
            width=unit.width,
            requested_length=unit.length,
            residual_length=unit.length,
            status=UnitStatus.PENDING,
            reason=NO_STOCK_REASON,
        )
        for unit in expand_requests(requests)
    ]
    return Plan(
        strategy=strategy,
        cutting_plans=[],
        statistics=PlanStatistics(
            total_rolls=len(rolls),
            total_requests=total_units(requests),
        ),
        unfulfilled=unfulfilled,
        request_fulfillment=request_fulfillment(requests, {}),
    )


def aggregate(strategy: str, results: Sequence[MaterialResult], rolls: Sequence[Roll], requests: Sequence[CutRequest]) -> Plan:
    """
    Fold per-material results into a Plan.

    Efficiency is averaged over materials weighted by pattern count; waste,
    remainder area, rolls used and fulfilled units are summed.
    """
    cutting_plans = []
    weighted_efficiency = 0.0
    total_waste = 0.0
    total_remainder = 0.0
    rolls_used = 0
    fulfilled = 0
    unfulfilled: List[UnfulfilledUnit] = []
    fulfilled_units: Dict[str, int] = {}

    for result in results:
        unfulfilled.extend(result.unfulfilled)
        for request_id, count in result.fulfilled_units.items():
            fulfilled_units[request_id] = fulfilled_units.get(request_id, 0) + count

        plan = result.material_plan
        if plan is None or not plan.patterns:
            continue
        cutting_plans.append(plan)
        stats = plan.statistics
        weighted_efficiency += stats.efficiency * len(plan.patterns)
        total_waste += stats.total_waste
        total_remainder += stats.total_remainder_area
        rolls_used += len(plan.patterns)
        fulfilled += stats.fulfilled_requests

    efficiency = weighted_efficiency / rolls_used if rolls_used > 0 else 0.0

    return Plan(
        strategy=strategy,
        cutting_plans=cutting_plans,
        statistics=PlanStatistics(
            efficiency=efficiency,
            total_waste=total_waste,
            total_remainder_area=total_remainder,
            rolls_used=rolls_used,
            total_rolls=len(rolls),
            fulfilled_requests=fulfilled,
            total_requests=total_units(requests),
        ),
        unfulfilled=unfulfilled,
        request_fulfillment=request_fulfillment(requests, fulfilled_units),
    )


# ============================================================================
# REPORTING
# ============================================================================

def _round(value: float, digits: int = 2) -> float:
    return round(float(value), digits)


def format_pattern(pattern: Pattern) -> Dict[str, Any]:
    roll = pattern.roll
    return {
        "roll": {
            "id": roll.id,
            "code": roll.code,
            "material": roll.material,
            "width": roll.width,
            "length": roll.length,
            "weight": roll.weight,
            "batch": roll.batch,
        },
        "cuts": [
            {
                "unit_id": cut.unit_id,
                "request_id": cut.request_id,
                "order_number": cut.order_number,
                "width": cut.width,
                "length": _round(cut.length, 3),
                "x": cut.x,
                "y": _round(cut.y, 3),
                "requested_length": _round(cut.requested_length, 3),
                "remaining_length": _round(cut.remaining_length, 3),
                "is_partial": cut.is_partial,
                "is_collage": cut.is_collage,
                "collage_index": cut.collage_index,
            }
            for cut in pattern.cuts
        ],
        "used_width": pattern.used_width,
        "trim_width": pattern.trim_width,
        "used_area": _round(pattern.used_area),
        "waste": _round(pattern.waste),
        "remainder_area": _round(pattern.remainder_area),
        "efficiency": _round(pattern.efficiency),
        "is_length_collage": pattern.is_length_collage,
        "remaining_pieces": [
            {
                "width": piece.width,
                "length": _round(piece.length, 3),
                "x": piece.x,
                "y": _round(piece.y, 3),
                "kind": piece.kind.value,
                "description": piece.description,
            }
            for piece in pattern.remaining_pieces
        ],
    }


def format_plan(plan: Plan) -> Dict[str, Any]:
    """JSON-ready representation of a plan, floats rounded to 2 decimals."""
    stats = plan.statistics
    return {
        "strategy": plan.strategy,
        "cutting_plans": [
            {
                "material": material_plan.material,
                "patterns": [format_pattern(pattern) for pattern in material_plan.patterns],
                "statistics": {
                    "efficiency": _round(material_plan.statistics.efficiency),
                    "total_waste": _round(material_plan.statistics.total_waste),
                    "total_remainder_area": _round(material_plan.statistics.total_remainder_area),
                    "used_area": _round(material_plan.statistics.used_area),
                    "rolls_used": material_plan.statistics.rolls_used,
                    "fulfilled_requests": material_plan.statistics.fulfilled_requests,
                    "total_requests": material_plan.statistics.total_requests,
                    "priority_stats": material_plan.statistics.priority_stats,
                },
                "details": material_plan.details,
            }
            for material_plan in plan.cutting_plans
        ],
        "statistics": {
            "efficiency": _round(stats.efficiency),
            "total_waste": _round(stats.total_waste),
            "total_remainder_area": _round(stats.total_remainder_area),
            "rolls_used": stats.rolls_used,
            "total_rolls": stats.total_rolls,
            "fulfilled_requests": stats.fulfilled_requests,
            "total_requests": stats.total_requests,
            "unfulfilled_requests": stats.unfulfilled_requests,
        },
        "unfulfilled": [
            {
                "unit_id": unit.unit_id,
                "request_id": unit.request_id,
                "order_number": unit.order_number,
                "material": unit.material,
                "width": unit.width,
                "requested_length": _round(unit.requested_length, 3),
                "residual_length": _round(unit.residual_length, 3),
                "status": unit.status.value,
                "reason": unit.reason,
            }
            for unit in plan.unfulfilled
        ],
        "request_fulfillment": [
            {
                "request_id": item.request_id,
                "order_number": item.order_number,
                "material": item.material,
                "requested": item.requested,
                "fulfilled": item.fulfilled,
                "is_complete": item.is_complete,
            }
            for item in plan.request_fulfillment
        ],
    }


def cutting_table(plan: Plan) -> List[Dict[str, Any]]:
    """
    Flat cutting table: one "product" row per cut and one "remainder" row per
    leftover piece going back to storage.
    """
    rows = []
    for material_plan in plan.cutting_plans:
        for pattern_index, pattern in enumerate(material_plan.patterns):
            roll_label = pattern.roll.label
            for cut_index, cut in enumerate(pattern.cuts):
                rows.append({
                    "id": f"{material_plan.material}-{pattern_index}-{cut_index}",
                    "roll": roll_label,
                    "material": material_plan.material,
                    "kind": "product",
                    "piece": f"{cut.order_number} - {cut.width}mm × {cut.length:g}m",
                })
            for piece_index, piece in enumerate(pattern.remaining_pieces):
                rows.append({
                    "id": f"{material_plan.material}-{pattern_index}-remaining-{piece_index}",
                    "roll": roll_label,
                    "material": material_plan.material,
                    "kind": "remainder",
                    "piece": f"{piece.width}mm × {piece.length:g}m",
                })
    return rows


def audit_plan(plan: Plan, high_trim_ratio: float = config.HIGH_TRIM_WARNING_RATIO) -> Dict[str, Any]:
    """
    Re-check the plan invariants.

    Violations: width overflow, area closure, over-cut units, fulfilled counts
    inconsistent with cut lengths, efficiency out of range.
    Warnings: patterns whose width trim exceeds `high_trim_ratio` of the roll.
    """
    results = {
        "is_valid": True,
        "violations": [],
        "warnings": [],
        "summary": {},
    }

    cut_length_by_unit: Dict[str, float] = {}
    requested_by_unit: Dict[str, float] = {}

    for pattern in plan.patterns:
        roll = pattern.roll
        used_width = sum(cut.width for cut in pattern.cuts)
        if used_width > roll.width:
            results["violations"].append({
                "roll": roll.label,
                "issue": f"Cuts use {used_width}mm on a {roll.width}mm roll",
            })
        for cut in pattern.cuts:
            if cut.width > roll.width or cut.length > roll.length + LENGTH_EPSILON:
                results["violations"].append({
                    "roll": roll.label,
                    "issue": f"Cut {cut.unit_id} ({cut.width}mm × {cut.length:g}m) exceeds roll {roll.width}mm × {roll.length:g}m",
                })
            cut_length_by_unit[cut.unit_id] = cut_length_by_unit.get(cut.unit_id, 0.0) + cut.length
            requested_by_unit[cut.unit_id] = cut.requested_length

        gap = closure_gap(pattern)
        if abs(gap) > AREA_TOLERANCE * max(1.0, roll.area):
            results["violations"].append({
                "roll": roll.label,
                "issue": f"Area not closed: {gap:.6f} mm·m unaccounted",
            })
        if not 0.0 <= pattern.efficiency <= 100.0:
            results["violations"].append({
                "roll": roll.label,
                "issue": f"Efficiency {pattern.efficiency:.2f}% out of range",
            })
        if roll.width > 0 and pattern.trim_width / roll.width > high_trim_ratio:
            results["warnings"].append({
                "roll": roll.label,
                "issue": f"High trim: {pattern.trim_width}mm of {roll.width}mm",
            })

    fulfilled_by_cuts = 0
    for unit_id, length in cut_length_by_unit.items():
        requested = requested_by_unit[unit_id]
        if length > requested + 1e-6:
            results["violations"].append({
                "unit": unit_id,
                "issue": f"Cut {length:g}m for a {requested:g}m request",
            })
        if abs(length - requested) <= 1e-6:
            fulfilled_by_cuts += 1

    stats = plan.statistics
    if fulfilled_by_cuts != stats.fulfilled_requests:
        results["violations"].append({
            "issue": f"{stats.fulfilled_requests} units reported fulfilled, cut lengths support {fulfilled_by_cuts}",
        })
    if stats.fulfilled_requests > stats.total_requests:
        results["violations"].append({
            "issue": f"Fulfilled {stats.fulfilled_requests} exceeds total {stats.total_requests}",
        })
    if stats.fulfilled_requests + len(plan.unfulfilled) != stats.total_requests:
        results["violations"].append({
            "issue": f"{stats.fulfilled_requests} fulfilled + {len(plan.unfulfilled)} unfulfilled != {stats.total_requests} total",
        })
    if not 0.0 <= stats.efficiency <= 100.0:
        results["violations"].append({
            "issue": f"Plan efficiency {stats.efficiency:.2f}% out of range",
        })

    results["is_valid"] = not results["violations"]
    results["summary"] = {
        "patterns": len(plan.patterns),
        "units_cut": len(cut_length_by_unit),
        "fulfilled_by_cuts": fulfilled_by_cuts,
        "unfulfilled": len(plan.unfulfilled),
    }
    if not results["is_valid"]:
        logger.warning(f"⚠️ Plan audit found {len(results['violations'])} violations")
    return results
