from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from .base import BaseStrategy, StrategyOptions, normalize_priority_weights

DEFAULT_PRIORITY_WEIGHTS = {"urgent": 100.0, "high": 80.0, "normal": 50.0, "low": 20.0}


class PriorityOptions(StrategyOptions):
    priority_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_PRIORITY_WEIGHTS), description="Base score per priority tier")
    size_bonus_divisor: float = Field(default=1000.0, gt=0, description="Unit area (mm·m) is divided by this and added to the score")
    small_order_area: float = Field(default=100.0, ge=0, description="Units below this area (mm·m) are penalised")
    small_order_penalty: float = Field(default=10.0, ge=0)
    reference_date: Optional[date] = Field(default=None, description="Date deadlines are measured from, defaults to today")

    @field_validator("priority_weights")
    @classmethod
    def validate_priority_weights(cls, v):
        merged = dict(DEFAULT_PRIORITY_WEIGHTS)
        merged.update(normalize_priority_weights(v))
        return merged


def deadline_bonus(deadline: Optional[date], reference_date: date) -> float:
    """Step bonus by whole days until the deadline."""
    if deadline is None:
        return 0.0
    days = (deadline - reference_date).days
    if days < 0:
        return 50.0
    if days == 0:
        return 30.0
    if days <= 3:
        return 20.0
    if days <= 7:
        return 10.0
    return 0.0


class PriorityStrategy(BaseStrategy):
    """
    Priority-weighted packing.

    Units are scored by priority tier, size and deadline proximity, then
    placed in score order into the largest rolls first.
    """

    key = "priority"
    name = "Priority-based"
    description = "Fills the largest rolls first with the most urgent and largest requests"
    options_model = PriorityOptions

    def score_unit(self, unit: RequestUnit, settings: PriorityOptions, reference_date: date) -> float:
        score = settings.priority_weights.get(unit.priority.value, 0.0)
        score += unit.area / settings.size_bonus_divisor
        score += deadline_bonus(unit.deadline, reference_date)
        if unit.area < settings.small_order_area:
            score -= settings.small_order_penalty
        return score

    def prepare_units(self, units: List[RequestUnit], settings: PriorityOptions) -> List[RequestUnit]:
        reference_date = settings.reference_date or date.today()
        scored = [replace(unit, score=self.score_unit(unit, settings, reference_date)) for unit in units]
        return sorted(scored, key=lambda unit: (-unit.score, -unit.area))

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: PriorityOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = list(units)
        layouts = []

        for roll in self.sort_rolls_by_area(rolls):
            check_cancelled(cancel_token)
            if not pending:
                break
            layout = RollLayout(roll)
            placed_ids = set()
            for unit in pending:
                if layout.remaining_width <= 0:
                    break
                if layout.fits(unit.width):
                    layout.place(unit, ledger)
                    placed_ids.add(unit.unit_id)
            if layout.cuts:
                self.logger.debug(f"🔍 PRIORITY: roll {roll.label} took {len(layout.cuts)} cuts, {layout.remaining_width}mm free")
                pending = [unit for unit in pending if unit.unit_id not in placed_ids]
            layouts.append(layout)

        return Allocation(layouts, ledger)
