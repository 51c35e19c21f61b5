from typing import List, Optional, Tuple

from pydantic import Field

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from ..geometry import calculate_efficiency
from .base import BaseStrategy, StrategyOptions

# Score bonus per cut in a candidate pattern
CUT_COUNT_BONUS = 10.0


class ColumnGenerationOptions(StrategyOptions):
    max_iterations: int = Field(default=20, ge=1, description="Maximum pattern generation rounds")
    max_patterns: int = Field(default=100, ge=1, description="Maximum patterns committed")
    tolerance: float = Field(default=0.001, ge=0, description="Convergence tolerance (reserved)")


class ColumnGenerationStrategy(BaseStrategy):
    """
    Heuristic pattern generation.

    Every iteration builds a best-fit candidate pattern for each unused roll
    and commits the one with the highest efficiency + 10 * cut count. Each
    roll is used at most once.
    """

    key = "column-gen"
    name = "Column generation"
    description = "Iteratively commits the best candidate pattern across all unused rolls"
    options_model = ColumnGenerationOptions
    efficiency_basis = "pattern"

    def collage_roll_budget(self, allocation: Allocation, settings: ColumnGenerationOptions) -> int:
        # One pattern per iteration, so both bounds cap the number of rolls
        limit = min(settings.max_patterns, settings.max_iterations)
        return max(0, limit - len(allocation.used_layouts()))

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: ColumnGenerationOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = self.sort_units_by_priority(units)
        unused = list(rolls)
        layouts = []
        iterations = 0

        while pending and unused and iterations < settings.max_iterations and len(layouts) < settings.max_patterns:
            iterations += 1
            best_index = None
            best_selection: List[RequestUnit] = []
            best_score = None

            for index, roll in enumerate(unused):
                check_cancelled(cancel_token)
                selection = self.best_fit_selection(roll, pending)
                if not selection:
                    continue
                score = self.score_candidate(roll, selection)
                if best_score is None or score > best_score:
                    best_index, best_selection, best_score = index, selection, score

            if best_index is None:
                self.logger.debug(f"🔍 COLUMN-GEN: iteration {iterations} produced no pattern, stopping")
                break

            roll = unused.pop(best_index)
            layout = RollLayout(roll)
            for unit in best_selection:
                layout.place(unit, ledger)
            layouts.append(layout)

            placed_ids = {unit.unit_id for unit in best_selection}
            pending = [unit for unit in pending if unit.unit_id not in placed_ids]
            self.logger.debug(f"🔍 COLUMN-GEN: iteration {iterations} committed roll {roll.label} ({len(best_selection)} cuts, score {best_score:.2f})")

        return Allocation(layouts, ledger, details={"iterations": iterations})

    @staticmethod
    def best_fit_selection(roll: Roll, units: List[RequestUnit]) -> List[RequestUnit]:
        """Repeatedly take the unit leaving the least free width, earliest on ties."""
        selection = []
        taken = set()
        free_width = roll.width
        while True:
            best: Optional[Tuple[int, RequestUnit]] = None
            for index, unit in enumerate(units):
                if index in taken or unit.width > free_width:
                    continue
                if best is None or free_width - unit.width < free_width - best[1].width:
                    best = (index, unit)
            if best is None:
                return selection
            taken.add(best[0])
            selection.append(best[1])
            free_width -= best[1].width

    @staticmethod
    def score_candidate(roll: Roll, selection: List[RequestUnit]) -> float:
        used_area = sum(unit.width * min(unit.length, roll.length) for unit in selection)
        return calculate_efficiency(used_area, roll.area) + CUT_COUNT_BONUS * len(selection)
