from fastapi import APIRouter, HTTPException
from typing import Dict, Any
import logging

from .base import to_http_exception
from .. import schemas
from ..services.aggregator import audit_plan, cutting_table, format_plan
from ..services.cutting_optimizer import CuttingOptimizer
from ..services.strategies.registry import list_strategies

router = APIRouter()
logger = logging.getLogger(__name__)

# ============================================================================
# CUTTING ALGORITHM ENDPOINTS
# ============================================================================

@router.get("/cutting/algorithms", response_model=Dict[str, Any], tags=["Cutting Algorithm"])
def get_cutting_algorithms():
    """Get information about available optimization algorithms and their settings"""
    try:
        return {
            "available_algorithms": list_strategies(),
            "units": {
                "width": "mm",
                "length": "m",
                "area": "mm·m",
            },
        }
    except Exception as e:
        raise to_http_exception(e, "getting algorithm information")


@router.post("/cutting/optimize", response_model=Dict[str, Any], tags=["Cutting Algorithm"])
def optimize_cutting_plan(request: schemas.OptimizationRequest):
    """Generate a cutting plan with the selected strategy"""
    try:
        optimizer = CuttingOptimizer(request.strategy, request.options)
        plan = optimizer.optimize(request.to_rolls(), request.to_requests())

        return {
            "plan": format_plan(plan),
            "cutting_table": cutting_table(plan),
            "audit": audit_plan(plan),
        }

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "optimizing cutting plan")


@router.post("/cutting/compare", response_model=Dict[str, Any], tags=["Cutting Algorithm"])
def compare_strategies(request: schemas.ComparisonRequest):
    """Run several strategies on the same stock and requests and report the best per metric"""
    try:
        comparison = CuttingOptimizer.compare(
            request.to_rolls(),
            request.to_requests(),
            strategies=request.strategies,
            options_by_strategy=request.options,
        )
        logger.info(f"✅ Compared {len(comparison['results'])} strategies")
        return {
            "results": comparison["results"],
            "best": comparison["best"],
        }

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "comparing strategies")
