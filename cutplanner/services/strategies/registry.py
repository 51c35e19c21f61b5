from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union
import logging

from ...exceptions import UnknownStrategyError
from .base import BaseStrategy
from .bidimensional import BidimensionalStrategy
from .column_generation import ColumnGenerationStrategy
from .multi_objective import MultiObjectiveStrategy
from .priority import PriorityStrategy
from .roll_minimization import RollMinimizationStrategy
from .waste_minimization import WasteMinimizationStrategy


class StrategyKey(str, Enum):
    PRIORITY = "priority"
    WASTE_MIN = "waste-min"
    BIDIMENSIONAL = "bidimensional"
    ROLL_MIN = "roll-min"
    MULTI = "multi"
    COLUMN_GEN = "column-gen"


STRATEGIES: Dict[StrategyKey, Type[BaseStrategy]] = {
    StrategyKey.PRIORITY: PriorityStrategy,
    StrategyKey.WASTE_MIN: WasteMinimizationStrategy,
    StrategyKey.BIDIMENSIONAL: BidimensionalStrategy,
    StrategyKey.ROLL_MIN: RollMinimizationStrategy,
    StrategyKey.MULTI: MultiObjectiveStrategy,
    StrategyKey.COLUMN_GEN: ColumnGenerationStrategy,
}


def strategy_keys() -> List[str]:
    return [key.value for key in StrategyKey]


def get_strategy(key: Union[str, StrategyKey], logger: Optional[logging.Logger] = None) -> BaseStrategy:
    """Instantiate a registered strategy, raising UnknownStrategyError for unregistered keys."""
    try:
        strategy_key = StrategyKey(key)
    except ValueError:
        raise UnknownStrategyError(str(key), strategy_keys())
    return STRATEGIES[strategy_key](logger=logger)


def list_strategies() -> List[Dict[str, Any]]:
    """Registry listing: key, display name, description and settings schema."""
    return [
        {
            "key": key.value,
            "name": strategy_class.name,
            "description": strategy_class.description,
            "efficiency_basis": strategy_class.efficiency_basis,
            "settings_schema": strategy_class.settings_schema(),
        }
        for key, strategy_class in STRATEGIES.items()
    ]
