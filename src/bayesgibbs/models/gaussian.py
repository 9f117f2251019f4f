"""
Univariate Gaussian model.

Mathematical formulation:
    y_i ~ N(μ, σ²)
    suf = {n, Σy, Σy²}
    log L(μ, σ²) = -0.5 [n (log 2π + log σ²) + SS(μ) / σ²]
    SS(μ) = Σy² - 2μ Σy + n μ²
"""

from typing import List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.distributions.draws import LOG_2PI
from bayesgibbs.models.base import (
    DiffDoubleModel,
    DiffLoglikeModel,
    EmMixtureComponent,
    Model,
    SufficientStatistic,
)
from bayesgibbs.models.params import Params, UnivParams, VectorSource, take


class GaussianSuf(SufficientStatistic):
    """
    Sufficient statistics {n, Σy, Σy²} for Gaussian data.

    n is a float so that responsibility-weighted (EM) updates can make it
    non-integral. Vector layout is [n, sum, sumsq].
    """

    def __init__(self, n: float = 0.0, sum: float = 0.0, sumsq: float = 0.0) -> None:
        self.n = float(n)
        self.sum = float(sum)
        self.sumsq = float(sumsq)

    def clear(self) -> None:
        self.n = self.sum = self.sumsq = 0.0

    def update(self, y: float) -> None:
        y = float(y)
        self.n += 1.0
        self.sum += y
        self.sumsq += y * y

    def update_with_weight(self, y: float, prob: float) -> None:
        y = float(y)
        self.n += prob
        self.sum += prob * y
        self.sumsq += prob * y * y

    def combine(self, other: "GaussianSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sum += other.sum
        self.sumsq += other.sumsq

    def ybar(self) -> float:
        """Sample mean, 0 for an empty data set."""
        return self.sum / self.n if self.n > 0 else 0.0

    def sample_var(self) -> float:
        """Unbiased sample variance, 0 when n <= 1."""
        if self.n <= 1:
            return 0.0
        return (self.sumsq - self.n * self.ybar() ** 2) / (self.n - 1.0)

    def centered_sumsq(self, mu: float) -> float:
        """Σ (y_i - μ)²."""
        return self.sumsq + (-2.0 * self.sum + self.n * mu) * mu

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.array([self.n, self.sum, self.sumsq])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.n, self.sum, self.sumsq = (float(v) for v in take(values, 3))

    def __repr__(self) -> str:
        return f"GaussianSuf(n={self.n:g}, sum={self.sum:.6g}, sumsq={self.sumsq:.6g})"


class GaussianModel(Model, DiffDoubleModel, DiffLoglikeModel, EmMixtureComponent):
    """
    Gaussian model with mean μ and variance σ².

    Attributes
    ----------
    mu_prm : UnivParams
        Mean parameter.
    sigsq_prm : UnivParams
        Variance parameter. Pass an existing UnivParams to share one
        variance among several models.
    suf : GaussianSuf
        Sufficient statistics of the assigned data.
    """

    def __init__(
        self,
        mu: float = 0.0,
        sigma: float = 1.0,
        sigsq_prm: Optional[UnivParams] = None,
    ) -> None:
        super().__init__()
        if sigsq_prm is None:
            if sigma <= 0:
                raise ValueError(f"sigma must be positive. Got {sigma}")
            sigsq_prm = UnivParams(sigma * sigma)
        self.mu_prm = UnivParams(mu)
        self.sigsq_prm = sigsq_prm
        self.suf = GaussianSuf()

    def params(self) -> List[Params]:
        return [self.mu_prm, self.sigsq_prm]

    @property
    def mu(self) -> float:
        """Mean μ."""
        return self.mu_prm.value

    def set_mu(self, mu: float) -> None:
        """
        Set the mean.

        Parameters
        ----------
        mu : float
            New mean. Any real value.
        """
        self.mu_prm.set(mu)

    @property
    def sigsq(self) -> float:
        """Variance σ², read through the (possibly shared) sigsq_prm."""
        return self.sigsq_prm.value

    @property
    def sigma(self) -> float:
        return float(np.sqrt(self.sigsq))

    def set_sigsq(self, sigsq: float) -> None:
        """
        Set the variance.

        Models sharing sigsq_prm all see the new value.

        Parameters
        ----------
        sigsq : float
            New variance σ².

        Raises
        ------
        ValueError
            If sigsq is not positive.
        """
        if sigsq <= 0:
            raise ValueError(f"Variance must be positive. Got {sigsq}")
        self.sigsq_prm.set(sigsq)

    def set_sigma(self, sigma: float) -> None:
        """Set the standard deviation; equivalent to set_sigsq(sigma ** 2)."""
        self.set_sigsq(sigma * sigma)

    def logp_derivatives(self, x: float, nd: int) -> Tuple[float, float, float]:
        """
        Log density of x with derivatives in x.

        Parameters
        ----------
        x : float
            Point at which to evaluate.
        nd : int
            Number of derivatives wanted (0, 1 or 2).

        Returns
        -------
        (logp, d1, d2) : Tuple[float, float, float]
            log N(x | μ, σ²), -(x - μ) / σ² and -1 / σ². Derivatives
            beyond nd are 0.
        """
        sigsq = self.sigsq
        resid = float(x) - self.mu
        ans = -0.5 * (LOG_2PI + np.log(sigsq) + resid * resid / sigsq)
        d1 = -resid / sigsq if nd > 0 else 0.0
        d2 = -1.0 / sigsq if nd > 1 else 0.0
        return float(ans), d1, d2

    def simulate(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mu, self.sigma))

    # ---- likelihood ----
    def likelihood_theta(self) -> NDArray[np.float64]:
        return np.array([self.mu, self.sigsq])

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.set_mu(theta[0])
        self.set_sigsq(theta[1])

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        mu, sigsq = float(theta[0]), float(theta[1])
        if sigsq <= 0:
            return -np.inf, None, None
        n = self.suf.n
        ss = self.suf.centered_sumsq(mu)
        ans = -0.5 * (n * (LOG_2PI + np.log(sigsq)) + ss / sigsq)
        gradient = hessian = None
        if nd > 0:
            score_mu = (self.suf.sum - n * mu) / sigsq
            gradient = np.array([
                score_mu,
                -0.5 * n / sigsq + 0.5 * ss / sigsq ** 2,
            ])
            if nd > 1:
                cross = -score_mu / sigsq
                hessian = np.array([
                    [-n / sigsq, cross],
                    [cross, 0.5 * n / sigsq ** 2 - ss / sigsq ** 3],
                ])
        return float(ans), gradient, hessian

    def mle(self) -> None:
        """
        Closed form MLE.

        An empty data set gives (0, 1). A single observation gives
        (y, 1). Otherwise the mean and the biased sample variance.
        """
        n = self.suf.n
        if n <= 0:
            self.set_mu(0.0)
            self.set_sigsq(1.0)
            return
        ybar = self.suf.ybar()
        self.set_mu(ybar)
        if n <= 1:
            self.set_sigsq(1.0)
            return
        var = self.suf.centered_sumsq(ybar) / n
        self.set_sigsq(var if var > 0 else 1.0)

    # ---- EM ----
    def add_mixture_data(self, y: float, prob: float) -> None:
        self.suf.update_with_weight(y, prob)

    def __repr__(self) -> str:
        return f"GaussianModel(mu={self.mu:.4g}, sigma={self.sigma:.4g})"
