"""
Length-collage post-pass.

Completes request units whose length could not be cut from a single roll,
and retries units no strategy placed, by joining length segments from several
rolls. Width is never collaged: every segment must fit the free width of one
roll on its own.

Unit states: pending -> partially_cut -> fulfilled, or unfulfillable when no
combination of candidate rolls covers the shortfall.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..models import LENGTH_EPSILON, RequestUnit, Roll
from .allocation import CancellationToken, DemandLedger, RollLayout, check_cancelled

logger = logging.getLogger(__name__)

# (roll, used width after the segment) -> whether the strategy keeps that pattern
AdmissionCheck = Callable[[Roll, int], bool]


class LengthCollageResolver:
    """
    Resolve shortfalls against the rolls of one material.

    Candidate rolls are unused rolls, or rolls whose cuts leave at least the
    unit's width free. A new segment takes a fresh width slice from the roll
    head, so it can use the whole roll length. Candidates are tried longest
    first to span as few rolls as possible. Segments are only committed when
    together they cover the full shortfall.

    The owning strategy keeps its own limits through `accepts`, which vetoes
    a segment whose roll would end up as a pattern the strategy rejects, and
    `new_roll_budget`, the number of unused rolls the pass may open.
    """

    def __init__(
        self,
        rolls: Sequence[Roll],
        layouts: Sequence[RollLayout],
        ledger: DemandLedger,
        logger: Optional[logging.Logger] = None,
        cancel_token: Optional[CancellationToken] = None,
        accepts: Optional[AdmissionCheck] = None,
        new_roll_budget: Optional[int] = None,
    ):
        self.rolls = list(rolls)
        self.layouts = list(layouts)
        self.ledger = ledger
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_token = cancel_token
        self.accepts = accepts
        self.new_roll_budget = new_roll_budget
        self._layout_by_roll: Dict[int, RollLayout] = {id(layout.roll): layout for layout in self.layouts}

    def resolve(self) -> List[RollLayout]:
        """Run the post-pass and return all layouts, new ones appended in creation order."""
        outstanding = self.ledger.outstanding()
        partial = [unit for unit in outstanding if self.ledger.segments(unit.unit_id) > 0]
        pending = sorted(
            (unit for unit in outstanding if self.ledger.segments(unit.unit_id) == 0),
            key=lambda unit: -unit.priority.rank,
        )

        if partial or pending:
            self.logger.info(f"🔍 COLLAGE: {len(partial)} partially cut, {len(pending)} unplaced units")

        resolved = 0
        for unit in partial + pending:
            check_cancelled(self.cancel_token)
            if self.resolve_unit(unit):
                resolved += 1

        if partial or pending:
            self.logger.info(f"✅ COLLAGE: resolved {resolved}/{len(partial) + len(pending)} units")
        return self.layouts

    def resolve_unit(self, unit: RequestUnit) -> bool:
        owed = self.ledger.remaining(unit.unit_id)
        if owed <= LENGTH_EPSILON:
            return True

        fitting = self.candidate_rolls(unit)
        candidates = [roll for roll in fitting if self._admits(roll, unit)]
        if not candidates:
            if fitting:
                reason = f"no roll takes {unit.width}mm within the strategy limits for the remaining {owed:g}m"
            else:
                reason = f"no roll with {unit.width}mm free width for the remaining {owed:g}m"
            self.ledger.mark_unfulfillable(unit.unit_id, reason)
            self.logger.debug(f"⚠️ COLLAGE: {unit.unit_id} has no candidate roll (width {unit.width}mm)")
            return False

        open_rolls = set(self._layout_by_roll)
        segments, shortfall = self.plan_segments(owed, candidates, open_rolls, self.new_roll_budget)
        if shortfall > LENGTH_EPSILON:
            covered = owed - shortfall
            self.ledger.mark_unfulfillable(
                unit.unit_id, f"candidate rolls cover {covered:g}m of {owed:g}m, {shortfall:g}m short"
            )
            self.logger.debug(f"⚠️ COLLAGE: {unit.unit_id} short by {shortfall:g}m across {len(candidates)} rolls")
            return False

        for roll, length in segments:
            self._layout_for(roll).place(unit, self.ledger, length=length)

        if len(segments) > 1 or self.ledger.segments(unit.unit_id) > 1:
            self.logger.debug(f"🔗 COLLAGE: {unit.unit_id} assembled from {self.ledger.segments(unit.unit_id)} segments")
        return True

    def candidate_rolls(self, unit: RequestUnit) -> List[Roll]:
        candidates = []
        for roll in self.rolls:
            if roll.width < unit.width:
                continue
            layout = self._layout_by_roll.get(id(roll))
            if layout is not None:
                if layout.remaining_width < unit.width:
                    continue
                if any(cut.unit_id == unit.unit_id for cut in layout.cuts):
                    continue
            candidates.append(roll)
        return sorted(candidates, key=lambda roll: -roll.length)

    @staticmethod
    def plan_segments(
        owed: float,
        candidates: Sequence[Roll],
        open_rolls: Optional[set] = None,
        new_roll_budget: Optional[int] = None,
    ) -> Tuple[List[Tuple[Roll, float]], float]:
        """
        Greedily take min(remaining, roll length) from each candidate in order.

        Rolls not in `open_rolls` (ids) count against `new_roll_budget` and are
        skipped once it is spent.
        """
        open_rolls = open_rolls or set()
        segments = []
        remaining = owed
        opened = 0
        for roll in candidates:
            if remaining <= LENGTH_EPSILON:
                break
            if id(roll) not in open_rolls:
                if new_roll_budget is not None and opened >= new_roll_budget:
                    continue
                opened += 1
            take = min(remaining, roll.length)
            segments.append((roll, take))
            remaining -= take
        return segments, max(0.0, remaining)

    def _admits(self, roll: Roll, unit: RequestUnit) -> bool:
        if self.accepts is None:
            return True
        layout = self._layout_by_roll.get(id(roll))
        used_width = layout.used_width if layout is not None else 0
        return self.accepts(roll, used_width + unit.width)

    def _layout_for(self, roll: Roll) -> RollLayout:
        layout = self._layout_by_roll.get(id(roll))
        if layout is None:
            layout = RollLayout(roll)
            self._layout_by_roll[id(roll)] = layout
            self.layouts.append(layout)
            if self.new_roll_budget is not None:
                self.new_roll_budget -= 1
        return layout
