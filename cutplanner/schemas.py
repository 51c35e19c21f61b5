from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date

from . import config
from .models import CutRequest, Priority, Roll

# ============================================================================
# STOCK AND DEMAND SCHEMAS
# ============================================================================

class RollIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    material: str = Field(..., min_length=1, max_length=100, description="Material code, e.g. PAP-80-WHT")
    width: int = Field(..., gt=0, description="Roll width in mm")
    length: float = Field(..., gt=0, description="Roll length in m")
    code: Optional[str] = Field(None, max_length=100, description="Human-readable roll code")
    weight: Optional[float] = Field(None, ge=0)
    batch: Optional[str] = Field(None, max_length=100)

    def to_roll(self) -> Roll:
        return Roll(
            id=self.id,
            material=self.material,
            width=self.width,
            length=self.length,
            code=self.code,
            weight=self.weight,
            batch=self.batch,
        )


class CutRequestIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    order_number: str = Field(..., min_length=1, max_length=100)
    material: str = Field(..., min_length=1, max_length=100)
    width: int = Field(..., gt=0, description="Requested width in mm")
    length: float = Field(..., gt=0, description="Requested length in m")
    quantity: int = Field(default=1, ge=1)
    priority: Priority = Field(default=Priority.NORMAL, description="low, normal (medium), high, urgent or 1-4")
    deadline: Optional[date] = None

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v):
        if v is None:
            return Priority.NORMAL
        return Priority.parse(v)

    def to_request(self) -> CutRequest:
        return CutRequest(
            id=self.id,
            order_number=self.order_number,
            material=self.material,
            width=self.width,
            length=self.length,
            quantity=self.quantity,
            priority=self.priority,
            deadline=self.deadline,
        )


def _check_unique_ids(items: List[BaseModel], label: str):
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f"Duplicate {label} id: {item.id}")
        seen.add(item.id)

# ============================================================================
# OPTIMIZATION SCHEMAS
# ============================================================================

class OptimizationRequest(BaseModel):
    strategy: str = Field(default_factory=lambda: config.DEFAULT_STRATEGY, description="Registered strategy key")
    options: Optional[Dict[str, Any]] = Field(None, description="Strategy settings, see GET /api/cutting/algorithms")
    rolls: List[RollIn] = Field(default_factory=list)
    requests: List[CutRequestIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_ids(self):
        _check_unique_ids(self.rolls, "roll")
        _check_unique_ids(self.requests, "request")
        return self

    def to_rolls(self) -> List[Roll]:
        return [roll.to_roll() for roll in self.rolls]

    def to_requests(self) -> List[CutRequest]:
        return [request.to_request() for request in self.requests]


class ComparisonRequest(BaseModel):
    strategies: Optional[List[str]] = Field(None, description="Strategy keys to compare, all when omitted")
    options: Optional[Dict[str, Dict[str, Any]]] = Field(None, description="Settings per strategy key")
    rolls: List[RollIn] = Field(default_factory=list)
    requests: List[CutRequestIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_ids(self):
        _check_unique_ids(self.rolls, "roll")
        _check_unique_ids(self.requests, "request")
        return self

    def to_rolls(self) -> List[Roll]:
        return [roll.to_roll() for roll in self.rolls]

    def to_requests(self) -> List[CutRequest]:
        return [request.to_request() for request in self.requests]
