"""
Generic numeric samplers and the optimization collaborator.

**Slice sampling (slice.py):**
- ScalarSliceSampler: stepping-out / shrinkage slice sampler with bounds

**Optimization (optimization.py):**
- newton_maximize, brent_maximize, powell_minimize
- OptimizationResult: location, value, evaluation count, convergence flag
"""

from bayesgibbs.samplers.slice import ScalarSliceSampler
from bayesgibbs.samplers.optimization import (
    OptimizationResult,
    newton_maximize,
    brent_maximize,
    powell_minimize,
)

__all__ = [
    "ScalarSliceSampler",
    "OptimizationResult",
    "newton_maximize",
    "brent_maximize",
    "powell_minimize",
]
