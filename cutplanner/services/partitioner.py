from collections import Counter, OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence
import logging

from ..models import CutRequest, MaterialPlan, Plan, Roll, UnfulfilledUnit, UnitStatus
from .aggregator import NO_STOCK_REASON, MaterialResult, aggregate, empty_plan, material_statistics
from .allocation import CancellationToken, DemandLedger, check_cancelled, expand_requests
from .collage import LengthCollageResolver

logger = logging.getLogger(__name__)

NO_WIDTH_REASON = "no roll with enough free width"
SHORTFALL_REASON = "length shortfall not completed"


def group_requests_by_material(requests: Sequence[CutRequest]) -> "OrderedDict[str, List[CutRequest]]":
    """Group requests by material code in order of first appearance."""
    grouped: "OrderedDict[str, List[CutRequest]]" = OrderedDict()
    for request in requests:
        grouped.setdefault(request.material, []).append(request)
    return grouped


class MaterialPartitioner:
    """
    Splits a run into independent per-material jobs, dispatches each to the
    strategy, runs the collage post-pass and hands the results to the aggregator.
    """

    def __init__(self, strategy, settings, cancel_token: Optional[CancellationToken] = None, logger: Optional[logging.Logger] = None):
        self.strategy = strategy
        self.settings = settings
        self.cancel_token = cancel_token
        self.logger = logger or logging.getLogger(__name__)

    def run(self, rolls: Sequence[Roll], requests: Sequence[CutRequest]) -> Plan:
        rolls = list(rolls)
        requests = list(requests)

        if not rolls or not requests:
            self.logger.info(f"⚠️ {self.strategy.key}: empty input ({len(rolls)} rolls, {len(requests)} requests)")
            return empty_plan(self.strategy.key, rolls, requests)

        groups = group_requests_by_material(requests)
        jobs = [
            (material, [roll for roll in rolls if roll.material == material], material_requests)
            for material, material_requests in groups.items()
        ]
        self.logger.info(f"🔍 {self.strategy.key}: {len(rolls)} rolls, {len(requests)} requests across {len(jobs)} materials")

        if self.settings.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                futures = [
                    executor.submit(self.optimize_material, material, list(material_rolls), list(material_requests))
                    for material, material_rolls, material_requests in jobs
                ]
                results = [future.result() for future in futures]
        else:
            results = [
                self.optimize_material(material, list(material_rolls), list(material_requests))
                for material, material_rolls, material_requests in jobs
            ]

        plan = aggregate(self.strategy.key, results, rolls, requests)
        stats = plan.statistics
        self.logger.info(
            f"✅ {self.strategy.key}: {stats.rolls_used}/{stats.total_rolls} rolls, "
            f"{stats.fulfilled_requests}/{stats.total_requests} units fulfilled, efficiency {stats.efficiency:.2f}%"
        )
        return plan

    def optimize_material(self, material: str, rolls: List[Roll], requests: List[CutRequest]) -> MaterialResult:
        """Optimize one material group on its own copies of rolls and requests."""
        check_cancelled(self.cancel_token)
        units = expand_requests(requests)

        if not rolls:
            self.logger.warning(f"⚠️ Material {material}: no stock rolls, {len(units)} units left unfulfilled")
            unfulfilled = [
                UnfulfilledUnit(
                    unit_id=unit.unit_id,
                    request_id=unit.request_id,
                    order_number=unit.order_number,
                    material=material,
                    width=unit.width,
                    requested_length=unit.length,
                    residual_length=unit.length,
                    status=UnitStatus.PENDING,
                    reason=NO_STOCK_REASON,
                )
                for unit in units
            ]
            return MaterialResult(material=material, material_plan=None, unfulfilled=unfulfilled, fulfilled_units={})

        units = self.strategy.prepare_units(units, self.settings)
        allocation = self.strategy.allocate(rolls, units, self.settings, self.cancel_token)
        ledger = allocation.ledger
        layouts = allocation.used_layouts()

        if self.settings.length_collage:
            resolver = LengthCollageResolver(
                rolls,
                layouts,
                ledger,
                logger=self.logger,
                cancel_token=self.cancel_token,
                accepts=lambda roll, used_width: self.strategy.accepts_layout(roll, used_width, self.settings),
                new_roll_budget=self.strategy.collage_roll_budget(allocation, self.settings),
            )
            layouts = resolver.resolve()

        self._mark_collage_cuts(layouts)
        patterns = [
            layout.to_pattern(self.settings.min_remainder_width, self.settings.min_remainder_length)
            for layout in layouts
            if layout.cuts
        ]

        statistics = material_statistics(patterns, ledger, self.strategy.efficiency_basis)
        unfulfilled = self._unfulfilled_units(material, ledger)
        fulfilled_units = Counter(
            unit.request_id for unit in ledger.units if ledger.is_fulfilled(unit.unit_id)
        )

        self.logger.info(
            f"📋 Material {material}: {len(patterns)} patterns, "
            f"{statistics.fulfilled_requests}/{statistics.total_requests} units, efficiency {statistics.efficiency:.2f}%"
        )

        material_plan = None
        if patterns:
            material_plan = MaterialPlan(
                material=material,
                patterns=patterns,
                statistics=statistics,
                details=dict(allocation.details),
            )
        return MaterialResult(
            material=material,
            material_plan=material_plan,
            unfulfilled=unfulfilled,
            fulfilled_units=dict(fulfilled_units),
        )

    @staticmethod
    def _mark_collage_cuts(layouts):
        """Flag every segment of a unit that spans more than one cut."""
        segments: Dict[str, int] = Counter(cut.unit_id for layout in layouts for cut in layout.cuts)
        for layout in layouts:
            for cut in layout.cuts:
                cut.is_collage = segments[cut.unit_id] > 1

    @staticmethod
    def _unfulfilled_units(material: str, ledger: DemandLedger) -> List[UnfulfilledUnit]:
        unfulfilled = []
        for unit in ledger.outstanding():
            status = ledger.status(unit.unit_id)
            reason = ledger.reason(unit.unit_id)
            if reason is None:
                reason = SHORTFALL_REASON if status == UnitStatus.PARTIALLY_CUT else NO_WIDTH_REASON
            unfulfilled.append(UnfulfilledUnit(
                unit_id=unit.unit_id,
                request_id=unit.request_id,
                order_number=unit.order_number,
                material=material,
                width=unit.width,
                requested_length=unit.length,
                residual_length=ledger.remaining(unit.unit_id),
                status=status,
                reason=reason,
            ))
        return unfulfilled
