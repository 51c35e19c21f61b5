from typing import List, Optional

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from .base import BaseStrategy


class BidimensionalStrategy(BaseStrategy):
    """
    First-fit packing by area, checking both dimensions.

    A unit fits a roll when the placed widths plus its own stay within the
    roll width and the longest placed length, its own included, stays within
    the roll length. Cuts are laid side by side from the roll head.
    """

    key = "bidimensional"
    name = "Bidimensional"
    description = "Largest pieces first into the largest rolls, checking width and length"

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        pending = sorted(units, key=lambda unit: -unit.area)
        layouts = []

        for roll in self.sort_rolls_by_area(rolls):
            check_cancelled(cancel_token)
            if not pending:
                break
            layout = RollLayout(roll)
            max_length = 0.0
            remaining = []
            for unit in pending:
                if layout.fits(unit.width) and max(max_length, unit.length) <= roll.length:
                    layout.place(unit, ledger)
                    max_length = max(max_length, unit.length)
                else:
                    remaining.append(unit)
            pending = remaining
            if layout.cuts:
                self.logger.debug(f"🔍 BIDIMENSIONAL: roll {roll.label} holds {len(layout.cuts)} cuts up to {max_length:g}m")
            layouts.append(layout)

        return Allocation(layouts, ledger)
