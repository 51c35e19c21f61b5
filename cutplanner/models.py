"""
Core value types for roll cutting optimization.

Units are fixed across the package: widths in millimetres (int), lengths in
metres (float) and areas in mm·m (width_mm * length_m).
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

# Tolerance for length comparisons (metres)
LENGTH_EPSILON = 1e-9


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Accept enum members, names, 'medium' and the legacy numeric ranks 1-4."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in _PRIORITY_ALIASES:
            return _PRIORITY_ALIASES[key]
        raise ValueError(f"Unknown priority: {value!r}")

    def __lt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank >= other.rank


_PRIORITY_RANKS = {
    Priority.LOW: 1,
    Priority.NORMAL: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}

_PRIORITY_ALIASES = {
    "low": Priority.LOW,
    "normal": Priority.NORMAL,
    "medium": Priority.NORMAL,
    "high": Priority.HIGH,
    "urgent": Priority.URGENT,
    "1": Priority.LOW,
    "2": Priority.NORMAL,
    "3": Priority.HIGH,
    "4": Priority.URGENT,
}


class UnitStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_CUT = "partially_cut"
    FULFILLED = "fulfilled"
    UNFULFILLABLE = "unfulfillable"


class RemnantKind(str, Enum):
    SIDE = "side"  # leftover width strip beside the cuts
    END = "end"    # leftover length strip after the longest cut


@dataclass(frozen=True)
class Roll:
    """A stocked roll. Never mutated by the optimizer."""
    id: str
    material: str
    width: int
    length: float
    code: Optional[str] = None
    weight: Optional[float] = None
    batch: Optional[str] = None

    @property
    def area(self) -> float:
        return self.width * self.length

    @property
    def label(self) -> str:
        return self.code or self.id


@dataclass(frozen=True)
class CutRequest:
    """A demand for `quantity` pieces of width x length in one material."""
    id: str
    order_number: str
    material: str
    width: int
    length: float
    quantity: int = 1
    priority: Priority = Priority.NORMAL
    deadline: Optional[date] = None

    @property
    def area(self) -> float:
        return self.width * self.length


@dataclass(frozen=True)
class RequestUnit:
    """One expanded piece of a request (quantity 1)."""
    unit_id: str
    request_id: str
    order_number: str
    material: str
    width: int
    length: float
    priority: Priority
    deadline: Optional[date] = None
    score: float = 0.0

    @property
    def area(self) -> float:
        return self.width * self.length


@dataclass
class Cut:
    """Placement of (part of) one request unit on one roll."""
    unit_id: str
    request_id: str
    order_number: str
    width: int
    length: float
    x: int = 0
    y: float = 0.0
    requested_length: float = 0.0
    remaining_length: float = 0.0
    collage_index: int = 0
    is_collage: bool = False

    @property
    def area(self) -> float:
        return self.width * self.length

    @property
    def is_partial(self) -> bool:
        return self.remaining_length > LENGTH_EPSILON


@dataclass(frozen=True)
class RemainingPiece:
    """Leftover block large enough to return to inventory."""
    width: int
    length: float
    x: int
    y: float
    kind: RemnantKind

    @property
    def area(self) -> float:
        return self.width * self.length

    @property
    def description(self) -> str:
        where = "beside cuts" if self.kind == RemnantKind.SIDE else "after cuts"
        return f"Remainder {self.width}mm × {self.length:g}m ({where})"


@dataclass
class Pattern:
    roll: Roll
    cuts: List[Cut]
    used_width: int = 0
    trim_width: int = 0
    used_area: float = 0.0
    waste: float = 0.0
    remaining_pieces: List[RemainingPiece] = field(default_factory=list)
    efficiency: float = 0.0

    @property
    def remainder_area(self) -> float:
        return sum(piece.area for piece in self.remaining_pieces)

    @property
    def is_length_collage(self) -> bool:
        return any(cut.is_collage for cut in self.cuts)


@dataclass
class MaterialStatistics:
    efficiency: float = 0.0
    total_waste: float = 0.0
    total_remainder_area: float = 0.0
    used_area: float = 0.0
    rolls_used: int = 0
    fulfilled_requests: int = 0
    total_requests: int = 0
    priority_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)


@dataclass
class MaterialPlan:
    material: str
    patterns: List[Pattern]
    statistics: MaterialStatistics
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnfulfilledUnit:
    unit_id: str
    request_id: str
    order_number: str
    material: str
    width: int
    requested_length: float
    residual_length: float
    status: UnitStatus
    reason: str


@dataclass(frozen=True)
class RequestFulfillment:
    request_id: str
    order_number: str
    material: str
    requested: int
    fulfilled: int

    @property
    def is_complete(self) -> bool:
        return self.fulfilled >= self.requested


@dataclass
class PlanStatistics:
    efficiency: float = 0.0
    total_waste: float = 0.0
    total_remainder_area: float = 0.0
    rolls_used: int = 0
    total_rolls: int = 0
    fulfilled_requests: int = 0
    total_requests: int = 0

    @property
    def unfulfilled_requests(self) -> int:
        return self.total_requests - self.fulfilled_requests


@dataclass
class Plan:
    strategy: str
    cutting_plans: List[MaterialPlan]
    statistics: PlanStatistics
    unfulfilled: List[UnfulfilledUnit] = field(default_factory=list)
    request_fulfillment: List[RequestFulfillment] = field(default_factory=list)

    @property
    def patterns(self) -> List[Pattern]:
        return [pattern for plan in self.cutting_plans for pattern in plan.patterns]
