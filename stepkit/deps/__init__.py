"""Step ordering module."""

from .resolver import (
    StepOrderResolver,
    ExecutionPlan,
    OrderingConstraint,
    ResolutionFailure,
)

__all__ = [
    "StepOrderResolver",
    "ExecutionPlan",
    "OrderingConstraint",
    "ResolutionFailure",
]
