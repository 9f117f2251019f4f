"""
Univariate slice sampler.

Neal (2003), "Slice sampling", Annals of Statistics. A vertical level is
drawn uniformly under the density at the current point, a bracket is
stepped out by doubling until both ends fall below the level, and a point
is drawn uniformly from the bracket, shrinking it after each rejection.

Hard bounds clip the bracket, so the sampler never evaluates the target
outside its declared domain.
"""

from typing import Callable
import numpy as np


class ScalarSliceSampler:
    """
    Slice sampler for a scalar log density.

    Attributes
    ----------
    logf : callable
        Un-normalized log density. May return -inf.
    lower, upper : float
        Support bounds. The sampler never proposes outside [lower, upper].
    width : float
        Current initial bracket width. Adapted toward the typical jump
        size after every draw.
    """

    def __init__(
        self,
        logf: Callable[[float], float],
        lower: float = -np.inf,
        upper: float = np.inf,
        initial_width: float = 1.0,
    ) -> None:
        if not lower < upper:
            raise ValueError(f"lower ({lower}) must be less than upper ({upper})")
        if initial_width <= 0:
            raise ValueError(f"initial_width must be positive. Got {initial_width}")
        self.logf = logf
        self.lower = float(lower)
        self.upper = float(upper)
        self.width = float(initial_width)

    def set_limits(self, lower: float, upper: float) -> None:
        """Reset the support bounds."""
        if not lower < upper:
            raise ValueError(f"lower ({lower}) must be less than upper ({upper})")
        self.lower = float(lower)
        self.upper = float(upper)

    def _step_out(self, x: float, log_level: float, rng: np.random.Generator):
        lo = max(x - self.width * rng.uniform(), self.lower)
        hi = min(lo + self.width, self.upper)

        step = self.width
        while lo > self.lower and self.logf(lo) > log_level:
            lo = max(lo - step, self.lower)
            step *= 2.0
        step = self.width
        while hi < self.upper and self.logf(hi) > log_level:
            hi = min(hi + step, self.upper)
            step *= 2.0
        return lo, hi

    def draw(self, x: float, rng: np.random.Generator) -> float:
        """
        Take one slice sampling step from x.

        Parameters
        ----------
        x : float
            Current value, inside [lower, upper].
        rng : np.random.Generator
            Random number generator.

        Returns
        -------
        float
            New value with the target as its invariant distribution.

        Raises
        ------
        ValueError
            If x lies outside the bounds.
        RuntimeError
            If the target has zero density at x.
        """
        x = float(x)
        if x < self.lower or x > self.upper:
            raise ValueError(
                f"Slice sampler started at {x}, outside [{self.lower}, {self.upper}]"
            )
        logp = self.logf(x)
        if not np.isfinite(logp):
            raise RuntimeError(
                f"Slice sampler started at a point with zero density (x = {x})"
            )
        log_level = logp - rng.exponential()
        lo, hi = self._step_out(x, log_level, rng)

        tiny = 1e-12 * (1.0 + abs(x))
        while True:
            if hi - lo < tiny:
                candidate = x
                break
            candidate = rng.uniform(lo, hi)
            if self.logf(candidate) > log_level:
                break
            if candidate < x:
                lo = candidate
            else:
                hi = candidate

        jump = abs(candidate - x)
        if jump > 0:
            self.width = 0.5 * self.width + 0.5 * 2.0 * jump
        return float(candidate)

    def __repr__(self) -> str:
        return (
            f"ScalarSliceSampler(lower={self.lower}, upper={self.upper}, "
            f"width={self.width:.4g})"
        )
