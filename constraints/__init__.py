"""Constraint evaluation modules.

Each AIR is a FrameworkEval written once against the EvalAtRow interface and
evaluated by the verifier at the out-of-domain point through a
FrameworkComponent. CONSTRAINT_REGISTRY maps AIR names to their eval classes.
"""

from .base import (
    ComponentInfo,
    Components,
    EvalAtRow,
    FrameworkComponent,
    FrameworkEval,
    InfoEvaluator,
    PointEvaluationAccumulator,
    PointEvaluator,
    TraceLocationAllocator,
)
from .wide_fibonacci import WideFibonacciEval

# Registry mapping AIR names to constraint eval classes
CONSTRAINT_REGISTRY: dict[str, type[FrameworkEval]] = {
    "WideFibonacci": WideFibonacciEval,
}


def get_constraint_module(air_name: str, **params) -> FrameworkEval:
    """Instantiate the constraint eval registered for an AIR.

    Args:
        air_name: Name of the AIR (e.g., 'WideFibonacci')
        **params: Constructor arguments of the eval class

    Raises:
        KeyError: If no constraint module is registered for the AIR
    """
    if air_name in CONSTRAINT_REGISTRY:
        return CONSTRAINT_REGISTRY[air_name](**params)
    raise KeyError(
        f"No constraint module for AIR '{air_name}'. "
        f"Available: {list(CONSTRAINT_REGISTRY.keys())}"
    )


__all__ = [
    "ComponentInfo",
    "Components",
    "EvalAtRow",
    "FrameworkComponent",
    "FrameworkEval",
    "InfoEvaluator",
    "PointEvaluationAccumulator",
    "PointEvaluator",
    "TraceLocationAllocator",
    "WideFibonacciEval",
    "CONSTRAINT_REGISTRY",
    "get_constraint_module",
]
