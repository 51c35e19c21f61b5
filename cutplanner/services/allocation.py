"""
Per-run allocation state shared by the strategies and the collage resolver.

The demand ledger is the single owner of "how much length is still owed" for
every expanded request unit. Strategies and the resolver pass it explicitly
into each placement instead of mutating request objects.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence
import threading

from ..exceptions import OptimizationCancelled
from ..models import (
    Cut,
    CutRequest,
    LENGTH_EPSILON,
    Pattern,
    RequestUnit,
    Roll,
    UnitStatus,
)
from .geometry import build_pattern


class CancellationToken:
    """Cooperative cancellation flag checked between per-roll iterations."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise OptimizationCancelled("Optimization was cancelled")


def check_cancelled(cancel_token: Optional[CancellationToken]):
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()


def expand_requests(requests: Iterable[CutRequest]) -> List[RequestUnit]:
    """Expand each request into `quantity` units with ids '{id}-{n}'."""
    units = []
    for request in requests:
        for n in range(request.quantity):
            units.append(RequestUnit(
                unit_id=f"{request.id}-{n}",
                request_id=request.id,
                order_number=request.order_number,
                material=request.material,
                width=request.width,
                length=request.length,
                priority=request.priority,
                deadline=request.deadline,
            ))
    return units


class DemandLedger:
    """Remaining length owed per expanded unit, in expansion order."""

    def __init__(self, units: Sequence[RequestUnit]):
        self._units: "OrderedDict[str, RequestUnit]" = OrderedDict((u.unit_id, u) for u in units)
        self._remaining: Dict[str, float] = {u.unit_id: u.length for u in units}
        self._segments: Dict[str, int] = {u.unit_id: 0 for u in units}
        self._unfulfillable: Dict[str, str] = {}

    @property
    def units(self) -> List[RequestUnit]:
        return list(self._units.values())

    def unit(self, unit_id: str) -> RequestUnit:
        return self._units[unit_id]

    def remaining(self, unit_id: str) -> float:
        return self._remaining[unit_id]

    def segments(self, unit_id: str) -> int:
        return self._segments[unit_id]

    def consume(self, unit_id: str, length: float) -> float:
        """Record `length` cut for a unit and return what is still owed."""
        owed = self._remaining[unit_id] - length
        owed = 0.0 if owed <= LENGTH_EPSILON else round(owed, 9)
        self._remaining[unit_id] = owed
        self._segments[unit_id] += 1
        self._unfulfillable.pop(unit_id, None)
        return owed

    def mark_unfulfillable(self, unit_id: str, reason: str):
        self._unfulfillable[unit_id] = reason

    def reason(self, unit_id: str) -> Optional[str]:
        return self._unfulfillable.get(unit_id)

    def status(self, unit_id: str) -> UnitStatus:
        if self._remaining[unit_id] <= LENGTH_EPSILON:
            return UnitStatus.FULFILLED
        if unit_id in self._unfulfillable:
            return UnitStatus.UNFULFILLABLE
        if self._segments[unit_id] > 0:
            return UnitStatus.PARTIALLY_CUT
        return UnitStatus.PENDING

    def is_fulfilled(self, unit_id: str) -> bool:
        return self._remaining[unit_id] <= LENGTH_EPSILON

    def outstanding(self) -> List[RequestUnit]:
        return [u for u in self._units.values() if not self.is_fulfilled(u.unit_id)]

    def fulfilled_count(self) -> int:
        return sum(1 for unit_id in self._units if self.is_fulfilled(unit_id))


class RollLayout:
    """
    Mutable working state of one roll while a strategy fills it.

    Each cut occupies its own width slice beside the previous ones, starting at
    the roll head, so a new slice always has the full roll length available.
    """

    def __init__(self, roll: Roll):
        self.roll = roll
        self.cuts: List[Cut] = []
        self.used_width = 0

    @property
    def remaining_width(self) -> int:
        return self.roll.width - self.used_width

    def fits(self, width: int) -> bool:
        return width <= self.remaining_width

    def place(self, unit: RequestUnit, ledger: DemandLedger, length: Optional[float] = None) -> Cut:
        """
        Cut a slice for `unit` and record it in the ledger.

        Without an explicit length the slice is min(owed length, roll length);
        any shortfall stays on the cut as remaining_length.
        """
        owed = ledger.remaining(unit.unit_id)
        cut_length = min(owed, self.roll.length) if length is None else min(length, owed, self.roll.length)
        collage_index = ledger.segments(unit.unit_id)
        still_owed = ledger.consume(unit.unit_id, cut_length)

        cut = Cut(
            unit_id=unit.unit_id,
            request_id=unit.request_id,
            order_number=unit.order_number,
            width=unit.width,
            length=cut_length,
            x=self.used_width,
            y=0.0,
            requested_length=unit.length,
            remaining_length=still_owed,
            collage_index=collage_index,
        )
        self.cuts.append(cut)
        self.used_width += unit.width
        return cut

    def to_pattern(self, min_remainder_width: int, min_remainder_length: float) -> Pattern:
        return build_pattern(self.roll, self.cuts, min_remainder_width, min_remainder_length)


class Allocation:
    """Result of one strategy run on one material before the collage post-pass."""

    def __init__(self, layouts: List[RollLayout], ledger: DemandLedger, details: Optional[dict] = None):
        self.layouts = layouts
        self.ledger = ledger
        self.details = details or {}

    def used_layouts(self) -> List[RollLayout]:
        return [layout for layout in self.layouts if layout.cuts]
