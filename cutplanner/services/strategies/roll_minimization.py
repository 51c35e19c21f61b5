from collections import deque
from typing import Deque, Dict, List, Optional

from pydantic import Field

from ...models import RequestUnit, Roll
from ..allocation import Allocation, CancellationToken, DemandLedger, RollLayout, check_cancelled
from .base import BaseStrategy, StrategyOptions


class RollMinimizationOptions(StrategyOptions):
    bucket_size: int = Field(default=10, ge=1, description="Width bucket size (mm) used to group similar units")
    waste_limit: float = Field(default=0.30, ge=0, le=1, description="Maximum trim as a fraction of roll width for a pattern to be kept")


def bucket_units(units: List[RequestUnit], bucket_size: int) -> Dict[int, Deque[RequestUnit]]:
    """Group units by floor(width / bucket_size) * bucket_size, keys ascending."""
    buckets: Dict[int, Deque[RequestUnit]] = {}
    for unit in units:
        key = (unit.width // bucket_size) * bucket_size
        buckets.setdefault(key, deque()).append(unit)
    return dict(sorted(buckets.items()))


class RollMinimizationStrategy(BaseStrategy):
    """
    Fill as few rolls as possible with units of similar widths.

    Each roll (widest first) drains the width buckets while their head unit
    fits. The pattern is rejected when its trim exceeds `waste_limit` of the
    roll width; the roll then stays unused and the units go back to the front
    of their buckets.
    """

    key = "roll-min"
    name = "Roll minimization"
    description = "Groups similar widths so that fewer rolls are opened"
    options_model = RollMinimizationOptions
    efficiency_basis = "pattern"

    def accepts_layout(self, roll: Roll, used_width: int, settings: RollMinimizationOptions) -> bool:
        return (roll.width - used_width) / roll.width <= settings.waste_limit

    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: RollMinimizationOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        ledger = DemandLedger(units)
        buckets = bucket_units(units, settings.bucket_size)
        layouts = []
        rejected = 0

        for roll in self.sort_rolls_by_width(rolls):
            check_cancelled(cancel_token)
            if not any(buckets.values()):
                break

            selected: Dict[int, List[RequestUnit]] = {}
            used_width = 0
            for key, bucket in buckets.items():
                while bucket and used_width + bucket[0].width <= roll.width:
                    unit = bucket.popleft()
                    selected.setdefault(key, []).append(unit)
                    used_width += unit.width

            if not selected:
                continue

            if not self.accepts_layout(roll, used_width, settings):
                # Put units back at the front of their buckets, original order kept
                for key, taken in selected.items():
                    buckets[key].extendleft(reversed(taken))
                rejected += 1
                self.logger.debug(
                    f"⚠️ ROLL-MIN: rejected roll {roll.label}, trim {(roll.width - used_width) / roll.width:.2%} above {settings.waste_limit:.0%}"
                )
                continue

            layout = RollLayout(roll)
            for taken in selected.values():
                for unit in taken:
                    layout.place(unit, ledger)
            layouts.append(layout)

        return Allocation(layouts, ledger, details={"rejected_patterns": rejected})
