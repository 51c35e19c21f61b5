from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from .. import config
from ..models import CutRequest, Plan, Roll
from .allocation import CancellationToken
from .strategies.registry import get_strategy, strategy_keys

logger = logging.getLogger(__name__)

# Metric name -> (statistics attribute, True when higher is better)
COMPARISON_METRICS = {
    "efficiency": ("efficiency", True),
    "waste": ("total_waste", False),
    "rolls": ("rolls_used", False),
    "fulfillment": ("fulfilled_requests", True),
}


class CuttingOptimizer:
    def __init__(self, strategy: str = config.DEFAULT_STRATEGY, options: Any = None, logger: Optional[logging.Logger] = None):
        """
        Initialize the cutting optimizer with a strategy.

        Args:
            strategy: Registered strategy key (default from CUTPLANNER_DEFAULT_STRATEGY)
            options: Strategy options as a mapping or options model

        Raises:
            UnknownStrategyError: strategy is not registered
            InvalidOptionsError: options do not match the strategy's settings
        """
        self.logger = logger or logging.getLogger(__name__)
        self.strategy = get_strategy(strategy, logger=self.logger)
        # Validate early so a bad request fails before any computation
        self.options = self.strategy.parse_options(options)

    def optimize(
        self,
        rolls: Sequence[Roll],
        requests: Sequence[CutRequest],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Plan:
        """
        Build a cutting plan for the given stock and requests.

        Args:
            rolls: Physically available rolls
            requests: Open cut requests
            cancel_token: Optional token to stop a long run between rolls

        Returns:
            Plan with per-material patterns, statistics and unfulfilled units
        """
        self.logger.info(f"🚀 OPTIMIZE: strategy={self.strategy.key}, {len(rolls)} rolls, {len(requests)} requests")
        return self.strategy.optimize(rolls, requests, self.options, cancel_token=cancel_token)

    @classmethod
    def compare(
        cls,
        rolls: Sequence[Roll],
        requests: Sequence[CutRequest],
        strategies: Optional[Sequence[str]] = None,
        options_by_strategy: Optional[Mapping[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> Dict[str, Any]:
        """
        Run several strategies on the same input and pick the best per metric.

        Ties go to the strategy listed first.

        Returns:
            {"results": {key: statistics}, "plans": {key: Plan}, "best": {metric: key}}
        """
        keys = list(strategies) if strategies else strategy_keys()
        options_by_strategy = options_by_strategy or {}

        # Resolve every strategy before running any of them
        optimizers = [
            (key, cls(key, options_by_strategy.get(key), logger=logger))
            for key in keys
        ]

        plans: Dict[str, Plan] = {}
        results: Dict[str, Dict[str, Any]] = {}
        for key, optimizer in optimizers:
            plan = optimizer.optimize(rolls, requests)
            plans[key] = plan
            stats = plan.statistics
            results[key] = {
                "efficiency": round(stats.efficiency, 2),
                "total_waste": round(stats.total_waste, 2),
                "total_remainder_area": round(stats.total_remainder_area, 2),
                "rolls_used": stats.rolls_used,
                "total_rolls": stats.total_rolls,
                "fulfilled_requests": stats.fulfilled_requests,
                "total_requests": stats.total_requests,
                "unfulfilled_requests": stats.unfulfilled_requests,
            }

        best: Dict[str, Optional[str]] = {}
        for metric, (attribute, higher_is_better) in COMPARISON_METRICS.items():
            best_key = None
            best_value = None
            for key in plans:
                value = getattr(plans[key].statistics, attribute)
                if best_value is None or (value > best_value if higher_is_better else value < best_value):
                    best_key, best_value = key, value
            best[metric] = best_key

        (logger or logging.getLogger(__name__)).info(f"✅ COMPARE: {len(plans)} strategies, best={best}")
        return {"results": results, "plans": plans, "best": best}

    @staticmethod
    def available_strategies() -> List[str]:
        return strategy_keys()
