"""
Gamma model with shape α and rate β.

Mathematical formulation:
    y_i ~ Gamma(α, β),  E[y] = α / β
    suf = {n, Σy, Σlog y}
    log L(α, β) = n α log β - n lgamma(α) + (α - 1) Σlog y - β Σy
"""

import logging
from typing import List, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.special import digamma, gammaln, polygamma

from bayesgibbs.models.base import (
    DiffDoubleModel,
    DiffLoglikeModel,
    EmMixtureComponent,
    Model,
    SufficientStatistic,
)
from bayesgibbs.models.params import Params, UnivParams, VectorSource, take
from bayesgibbs.samplers.optimization import OptimizationResult, newton_maximize

logger = logging.getLogger(__name__)


class GammaSuf(SufficientStatistic):
    """Sufficient statistics {n, Σy, Σlog y}. Vector layout [n, sum, sumlog]."""

    def __init__(self, n: float = 0.0, sum: float = 0.0, sumlog: float = 0.0) -> None:
        self.n = float(n)
        self.sum = float(sum)
        self.sumlog = float(sumlog)

    def set(self, n: float, sum: float, sumlog: float) -> None:
        """Overwrite all three statistics, e.g. with hand-computed values."""
        self.n, self.sum, self.sumlog = float(n), float(sum), float(sumlog)

    def clear(self) -> None:
        self.n = self.sum = self.sumlog = 0.0

    def update(self, y: float) -> None:
        y = float(y)
        self.n += 1.0
        self.sum += y
        self.sumlog += np.log(y) if y > 0 else -np.inf

    def update_with_weight(self, y: float, prob: float) -> None:
        # A zero weight must not turn 0 * log(0) into NaN.
        if prob == 0:
            return
        y = float(y)
        self.n += prob
        self.sum += prob * y
        self.sumlog += prob * (np.log(y) if y > 0 else -np.inf)

    def combine(self, other: "GammaSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sum += other.sum
        self.sumlog += other.sumlog

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.array([self.n, self.sum, self.sumlog])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.n, self.sum, self.sumlog = (float(v) for v in take(values, 3))

    def __repr__(self) -> str:
        return f"GammaSuf(n={self.n:g}, sum={self.sum:.6g}, sumlog={self.sumlog:.6g})"


def gamma_log_likelihood(
    alpha: float,
    beta: float,
    suf: GammaSuf,
    nd: int = 0,
):
    """
    Gamma log likelihood from sufficient statistics.

    Returns
    -------
    (value, gradient, hessian)
        Derivatives are with respect to (α, β); -inf when either is <= 0.
    """
    if alpha <= 0 or beta <= 0:
        return -np.inf, None, None
    n = suf.n
    log_beta = np.log(beta)
    ans = n * alpha * log_beta - n * gammaln(alpha) + (alpha - 1) * suf.sumlog - beta * suf.sum
    gradient = hessian = None
    if nd > 0:
        gradient = np.array([
            n * log_beta - n * digamma(alpha) + suf.sumlog,
            n * alpha / beta - suf.sum,
        ])
        if nd > 1:
            hessian = np.array([
                [-n * polygamma(1, alpha), n / beta],
                [n / beta, -n * alpha / beta ** 2],
            ])
    return float(ans), gradient, hessian


class GammaModel(Model, DiffDoubleModel, DiffLoglikeModel, EmMixtureComponent):
    """
    Gamma model parameterized by shape α and rate β.

    Attributes
    ----------
    alpha_prm : UnivParams
        Shape parameter.
    beta_prm : UnivParams
        Rate parameter.
    suf : GammaSuf
        Sufficient statistics.
    """

    def __init__(self, alpha: float = 1.0, beta: float = 1.0) -> None:
        super().__init__()
        if alpha <= 0 or beta <= 0:
            raise ValueError(
                f"Gamma shape and rate must be positive. Got ({alpha}, {beta})"
            )
        self.alpha_prm = UnivParams(alpha)
        self.beta_prm = UnivParams(beta)
        self.suf = GammaSuf()

    @classmethod
    def from_mean(cls, mean: float, alpha: float) -> "GammaModel":
        """Build from the mean and shape."""
        return cls(alpha, alpha / mean)

    def params(self) -> List[Params]:
        return [self.alpha_prm, self.beta_prm]

    @property
    def alpha(self) -> float:
        """Shape α."""
        return self.alpha_prm.value

    @property
    def beta(self) -> float:
        """Rate β (inverse scale)."""
        return self.beta_prm.value

    @property
    def mean(self) -> float:
        """α / β."""
        return self.alpha / self.beta

    @property
    def variance(self) -> float:
        return self.alpha / self.beta ** 2

    def set_alpha(self, alpha: float) -> None:
        """
        Set the shape.

        Parameters
        ----------
        alpha : float
            New shape α.

        Raises
        ------
        ValueError
            If alpha is not positive.
        """
        if alpha <= 0:
            raise ValueError(f"Gamma shape must be positive. Got {alpha}")
        self.alpha_prm.set(alpha)

    def set_beta(self, beta: float) -> None:
        """Set the rate. Raises ValueError if beta is not positive."""
        if beta <= 0:
            raise ValueError(f"Gamma rate must be positive. Got {beta}")
        self.beta_prm.set(beta)

    def set_shape_and_mean(self, alpha: float, mean: float) -> None:
        """
        Set the shape and move β so the mean is α / β = mean.

        Parameters
        ----------
        alpha : float
            New shape.
        mean : float
            Target mean, positive.

        Raises
        ------
        ValueError
            If alpha or mean is not positive.
        """
        if mean <= 0:
            raise ValueError(f"Gamma mean must be positive. Got {mean}")
        self.set_alpha(alpha)
        self.set_beta(alpha / mean)

    def logp_derivatives(self, x: float, nd: int) -> Tuple[float, float, float]:
        """
        Log density of x with derivatives in x.

        At x = 0 the density is finite only for α = 1; it is +inf for α < 1
        and 0 for α > 1. Negative x gives -inf.

        Returns
        -------
        (logp, d1, d2) : Tuple[float, float, float]
            Derivatives beyond nd are 0.
        """
        x = float(x)
        a, b = self.alpha, self.beta
        if x < 0:
            return -np.inf, 0.0, 0.0
        if x == 0:
            if a == 1:
                return float(np.log(b)), -b, 0.0
            return (np.inf if a < 1 else -np.inf), 0.0, 0.0
        ans = a * np.log(b) - gammaln(a) + (a - 1) * np.log(x) - b * x
        d1 = (a - 1) / x - b if nd > 0 else 0.0
        d2 = -(a - 1) / x ** 2 if nd > 1 else 0.0
        return float(ans), d1, d2

    def simulate(self, rng: np.random.Generator) -> float:
        return float(rng.gamma(self.alpha, 1.0 / self.beta))

    # ---- likelihood ----
    def likelihood_theta(self) -> NDArray[np.float64]:
        return np.array([self.alpha, self.beta])

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.set_alpha(theta[0])
        self.set_beta(theta[1])

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        return gamma_log_likelihood(float(theta[0]), float(theta[1]), self.suf, nd)

    def method_of_moments(self) -> NDArray[np.float64]:
        """
        Closed form starting value for the MLE.

        Uses Minka's approximation to the shape from
        s = log(mean) - mean(log y).
        """
        n = self.suf.n
        if n <= 0 or self.suf.sum <= 0:
            return self.likelihood_theta()
        ybar = self.suf.sum / n
        s = np.log(ybar) - self.suf.sumlog / n
        if not np.isfinite(s) or s <= 0:
            return self.likelihood_theta()
        alpha = (3.0 - s + np.sqrt((s - 3.0) ** 2 + 24.0 * s)) / (12.0 * s)
        return np.array([alpha, alpha / ybar])

    def mle(self) -> OptimizationResult:
        """
        Newton MLE from the current parameters, restarted from the
        method-of-moments value if the first run fails.
        """
        result = super().mle()
        if not result.converged:
            logger.warning(
                "Gamma MLE from current values did not converge; "
                "restarting from the method-of-moments estimate"
            )
            result = newton_maximize(
                lambda theta: self.log_likelihood(theta, 2),
                self.method_of_moments(),
            )
            if np.isfinite(result.value):
                self.set_likelihood_theta(result.x)
        return result

    # ---- EM ----
    def add_mixture_data(self, y: float, prob: float) -> None:
        self.suf.update_with_weight(y, prob)

    def __repr__(self) -> str:
        return f"GammaModel(alpha={self.alpha:.4g}, beta={self.beta:.4g})"
