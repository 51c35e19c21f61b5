from dataclasses import replace
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from .base import BaseStrategy, StrategyOptions, normalize_priority_weights

DEFAULT_TIER_WEIGHTS = {"urgent": 4.0, "high": 3.0, "normal": 2.0, "low": 1.0}


class ObjectiveWeights(BaseModel):
    model_config = ConfigDict(extra="forbid")

    waste: float = Field(default=0.4, ge=0)
    priority: float = Field(default=0.4, ge=0)
    rolls: float = Field(default=0.2, ge=0)

    @property
    def total(self) -> float:
        return self.waste + self.priority + self.rolls


class MultiObjectiveOptions(StrategyOptions):
    weights: ObjectiveWeights = Field(default_factory=ObjectiveWeights, description="Objective weights, expected to sum to 1.0")
    priority_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_TIER_WEIGHTS), description="Score multiplier per priority tier")

    @field_validator("priority_weights")
    @classmethod
    def validate_priority_weights(cls, v):
        merged = dict(DEFAULT_TIER_WEIGHTS)
        merged.update(normalize_priority_weights(v))
        return merged


class MultiObjectiveStrategy(BaseStrategy):
    """Greedy fill by priority-weighted width, widest rolls first."""

    key = "multi"
    name = "Multi-objective"
    description = "Balances waste, priority and roll count with configurable weights"
    options_model = MultiObjectiveOptions
    efficiency_basis = "pattern"

    def prepare_units(self, units: List[RequestUnit], settings: MultiObjectiveOptions) -> List[RequestUnit]:
        if abs(settings.weights.total - 1.0) > 1e-6:
            self.logger.warning(f"⚠️ MULTI: objective weights sum to {settings.weights.total:.3f}, expected 1.0")
        scored = [
            replace(unit, score=settings.priority_weights.get(unit.priority.value, 0.0) * (unit.width / 1000))
            for unit in units
        ]
        return sorted(scored, key=lambda unit: -unit.score)

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: MultiObjectiveOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = list(units)
        layouts = []

        for roll in self.sort_rolls_by_width(rolls):
            check_cancelled(cancel_token)
            if not pending:
                break
            layout = RollLayout(roll)
            remaining = []
            for unit in pending:
                if layout.fits(unit.width):
                    layout.place(unit, ledger)
                else:
                    remaining.append(unit)
            pending = remaining
            layouts.append(layout)

        weights = settings.weights
        return Allocation(
            layouts,
            ledger,
            details={"weights": {"waste": weights.waste, "priority": weights.priority, "rolls": weights.rolls}},
        )
