from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ... import config
from ...exceptions import InvalidOptionsError
from ...models import CutRequest, Plan, Priority, RequestUnit, Roll
from ..allocation import Allocation, CancellationToken
from ..partitioner import MaterialPartitioner

logger = logging.getLogger(__name__)


def normalize_priority_weights(weights: Mapping[Any, float]) -> Dict[str, float]:
    """Key priority weights by canonical priority value ('medium' -> 'normal', '3' -> 'high')."""
    normalized = {}
    for key, weight in weights.items():
        normalized[Priority.parse(key).value] = float(weight)
    return normalized


class StrategyOptions(BaseModel):
    """Settings shared by every strategy"""
    model_config = ConfigDict(extra="forbid")

    length_collage: bool = Field(default=True, description="Complete short or unplaced requests by joining lengths from several rolls")
    min_remainder_width: int = Field(default_factory=lambda: config.MIN_REMAINDER_WIDTH_MM, ge=0, description="Minimum width (mm) of a re-stockable end strip")
    min_remainder_length: float = Field(default_factory=lambda: config.MIN_REMAINDER_LENGTH_M, ge=0, description="Minimum length (m) of a re-stockable end strip")
    max_workers: int = Field(default_factory=lambda: config.MAX_WORKERS, ge=1, description="Materials optimized in parallel")


class BaseStrategy(ABC):
    """
    Base class for cutting strategies.

    Subclasses implement `allocate`, which fills rolls of a single material.
    Grouping by material, the collage post-pass and statistics are shared.
    """

    key = ""
    name = ""
    description = ""
    options_model = StrategyOptions
    # "area": pooled used area / pooled roll area, "pattern": mean of pattern efficiencies
    efficiency_basis = "area"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    def parse_options(self, options: Any = None) -> StrategyOptions:
        if options is None:
            return self.options_model()
        if isinstance(options, self.options_model):
            return options
        if isinstance(options, BaseModel):
            options = options.model_dump()
        if not isinstance(options, Mapping):
            raise InvalidOptionsError(self.key, f"expected a mapping, got {type(options).__name__}")
        try:
            return self.options_model(**options)
        except ValidationError as e:
            raise InvalidOptionsError(self.key, e.errors()) from e

    def optimize(
        self,
        rolls: Sequence[Roll],
        requests: Sequence[CutRequest],
        options: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Plan:
        """
        Build a cutting plan for the given rolls and requests.

        Args:
            rolls: Available stock rolls (read-only)
            requests: Pending cut requests (read-only)
            options: None, a mapping or this strategy's options model
            cancel_token: Optional token checked between per-roll iterations

        Returns:
            Plan with per-material patterns and global statistics
        """
        settings = self.parse_options(options)
        partitioner = MaterialPartitioner(self, settings, cancel_token=cancel_token, logger=self.logger)
        return partitioner.run(rolls, requests)

    def prepare_units(self, units: List[RequestUnit], settings: StrategyOptions) -> List[RequestUnit]:
        """Hook for strategies that score units before allocation."""
        return units

    @abstractmethod
    def allocate(
        self,
        rolls: List[Roll],
        units: List[RequestUnit],
        settings: StrategyOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Allocation:
        """Fill the rolls of one material and return the layouts with their ledger."""

    # === COLLAGE ADMISSION ===

    def accepts_layout(self, roll: Roll, used_width: int, settings: StrategyOptions) -> bool:
        """Whether a roll cut to `used_width` is a pattern this strategy would keep."""
        return True

    def collage_roll_budget(self, allocation: Allocation, settings: StrategyOptions) -> Optional[int]:
        """How many unused rolls the collage pass may open, None for no limit."""
        return None

    @classmethod
    def settings_schema(cls) -> Dict[str, Any]:
        return cls.options_model.model_json_schema()

    # === ORDERING HELPERS ===

    @staticmethod
    def sort_rolls_by_width(rolls: Sequence[Roll]) -> List[Roll]:
        return sorted(rolls, key=lambda roll: -roll.width)

    @staticmethod
    def sort_rolls_by_area(rolls: Sequence[Roll]) -> List[Roll]:
        return sorted(rolls, key=lambda roll: -roll.area)

    @staticmethod
    def sort_units_by_width(units: Sequence[RequestUnit]) -> List[RequestUnit]:
        return sorted(units, key=lambda unit: -unit.width)

    @staticmethod
    def sort_units_by_priority(units: Sequence[RequestUnit]) -> List[RequestUnit]:
        """Higher priority first, then wider first."""
        return sorted(units, key=lambda unit: (-unit.priority.rank, -unit.width))
