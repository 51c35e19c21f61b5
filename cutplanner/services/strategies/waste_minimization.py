from enum import Enum
from typing import List, Optional, Tuple

from pydantic import Field

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from ..geometry import build_pattern
from .base import BaseStrategy, StrategyOptions


class WasteMode(str, Enum):
    FFD = "ffd"
    BFD = "bfd"
    HYBRID = "hybrid"


class WasteMinimizationOptions(StrategyOptions):
    mode: WasteMode = Field(default=WasteMode.HYBRID, description="First-fit decreasing, best-fit decreasing, or both keeping the lower waste")


class WasteMinimizationStrategy(BaseStrategy):
    """
    Width-only bin packing that minimises pattern waste.

    FFD gives each roll every unit that still fits, widest first. BFD lets
    each roll repeatedly take the unit leaving the least free width. Hybrid
    runs both on separate ledgers and keeps the one with the lower total
    pattern waste, FFD winning ties.
    """

    key = "waste-min"
    name = "Waste minimization"
    description = "First-fit / best-fit decreasing packing that keeps the lower-waste result"
    options_model = WasteMinimizationOptions

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: WasteMinimizationOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        if settings.mode == WasteMode.FFD:
            allocation = self.first_fit_decreasing(rolls, units, cancel_token)
            allocation.details = {"mode": WasteMode.FFD.value}
            return allocation
        if settings.mode == WasteMode.BFD:
            allocation = self.best_fit_decreasing(rolls, units, cancel_token)
            allocation.details = {"mode": WasteMode.BFD.value}
            return allocation

        ffd = self.first_fit_decreasing(rolls, units, cancel_token)
        bfd = self.best_fit_decreasing(rolls, units, cancel_token)
        ffd_waste = self.total_waste(ffd, settings)
        bfd_waste = self.total_waste(bfd, settings)

        chosen, chosen_mode = (ffd, WasteMode.FFD) if ffd_waste <= bfd_waste else (bfd, WasteMode.BFD)
        self.logger.info(
            f"🔍 WASTE-MIN: hybrid ffd waste={ffd_waste:.2f}, bfd waste={bfd_waste:.2f} -> {chosen_mode.value}"
        )
        chosen.details = {
            "mode": WasteMode.HYBRID.value,
            "chosen": chosen_mode.value,
            "ffd_waste": round(ffd_waste, 2),
            "bfd_waste": round(bfd_waste, 2),
        }
        return chosen

    @staticmethod
    def total_waste(allocation: Allocation, settings: StrategyOptions) -> float:
        return sum(
            build_pattern(layout.roll, layout.cuts, settings.min_remainder_width, settings.min_remainder_length).waste
            for layout in allocation.used_layouts()
        )

    def first_fit_decreasing(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = self.sort_units_by_width(units)
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

        return Allocation(layouts, ledger)

    def best_fit_decreasing(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = self.sort_units_by_width(units)
        layouts = []

        for roll in self.sort_rolls_by_width(rolls):
            check_cancelled(cancel_token)
            if not pending:
                break
            layout = RollLayout(roll)
            while pending:
                best = self.best_fit(layout, pending)
                if best is None:
                    break
                index, unit = best
                layout.place(unit, ledger)
                del pending[index]
            layouts.append(layout)

        return Allocation(layouts, ledger)

    @staticmethod
    def best_fit(layout: RollLayout, units: List[RequestUnit]) -> Optional[Tuple[int, RequestUnit]]:
        """Unit leaving the least free width on the layout, earliest on ties."""
        best = None
        best_leftover = None
        for index, unit in enumerate(units):
            if not layout.fits(unit.width):
                continue
            leftover = layout.remaining_width - unit.width
            if best_leftover is None or leftover < best_leftover:
                best = (index, unit)
                best_leftover = leftover
        return best
