"""
Poisson model.

Mathematical formulation:
    y_i ~ Poisson(λ)
    suf = {n, Σy, Σ lgamma(y + 1)}
    log L(λ) = Σy log λ - n λ - Σ lgamma(y + 1)
"""

from typing import List
import numpy as np
from numpy.typing import NDArray
from scipy.special import gammaln

from bayesgibbs.models.base import (
    DiffLoglikeModel,
    DoubleModel,
    EmMixtureComponent,
    Model,
    SufficientStatistic,
)
from bayesgibbs.models.params import Params, UnivParams, VectorSource, take


class PoissonSuf(SufficientStatistic):
    """
    Sufficient statistics {n, Σy, Σ log y!}.

    lognc is the log normalizing constant, needed only to report the
    likelihood on its natural scale. Vector layout [n, sum, lognc].
    """

    def __init__(self, n: float = 0.0, sum: float = 0.0, lognc: float = 0.0) -> None:
        self.n = float(n)
        self.sum = float(sum)
        self.lognc = float(lognc)

    def set(self, n: float, sum: float, lognc: float = 0.0) -> None:
        """
        Overwrite the statistics.

        Parameters
        ----------
        n : float
            Number (or total weight) of observations.
        sum : float
            Σ y.
        lognc : float
            Σ log y!. Leave at 0 when only the kernel of the likelihood matters.
        """
        self.n, self.sum, self.lognc = float(n), float(sum), float(lognc)

    def clear(self) -> None:
        self.n = self.sum = self.lognc = 0.0

    def update(self, y: float) -> None:
        y = float(y)
        self.n += 1.0
        self.sum += y
        self.lognc += float(gammaln(y + 1.0))

    def update_with_weight(self, y: float, prob: float) -> None:
        y = float(y)
        self.n += prob
        self.sum += prob * y
        self.lognc += prob * float(gammaln(y + 1.0))

    def combine(self, other: "PoissonSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sum += other.sum
        self.lognc += other.lognc

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.array([self.n, self.sum, self.lognc])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.n, self.sum, self.lognc = (float(v) for v in take(values, 3))

    def __repr__(self) -> str:
        return f"PoissonSuf(n={self.n:g}, sum={self.sum:g})"


class PoissonModel(Model, DoubleModel, DiffLoglikeModel, EmMixtureComponent):
    """
    Poisson model with rate λ.

    Attributes
    ----------
    lam_prm : UnivParams
        Rate parameter.
    suf : PoissonSuf
        Sufficient statistics.
    """

    def __init__(self, lam: float = 1.0) -> None:
        super().__init__()
        if lam <= 0:
            raise ValueError(f"Poisson rate must be positive. Got {lam}")
        self.lam_prm = UnivParams(lam)
        self.suf = PoissonSuf()

    def params(self) -> List[Params]:
        return [self.lam_prm]

    @property
    def lam(self) -> float:
        """Mean (and variance) λ."""
        return self.lam_prm.value

    def set_lam(self, lam: float) -> None:
        """
        Set λ.

        Raises
        ------
        ValueError
            If lam is not positive.
        """
        if lam <= 0:
            raise ValueError(f"Poisson rate must be positive. Got {lam}")
        self.lam_prm.set(lam)

    def logp(self, y: float) -> float:
        """Log probability of a count; -inf for negative or non-integer y."""
        y = float(y)
        if y < 0 or y != np.floor(y):
            return -np.inf
        return float(y * np.log(self.lam) - self.lam - gammaln(y + 1.0))

    def simulate(self, rng: np.random.Generator) -> float:
        return float(rng.poisson(self.lam))

    # ---- likelihood ----
    def likelihood_theta(self) -> NDArray[np.float64]:
        return np.array([self.lam])

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.set_lam(theta[0])

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        lam = float(theta[0])
        if lam <= 0:
            return -np.inf, None, None
        ans = self.suf.sum * np.log(lam) - self.suf.n * lam - self.suf.lognc
        gradient = hessian = None
        if nd > 0:
            gradient = np.array([self.suf.sum / lam - self.suf.n])
            if nd > 1:
                hessian = np.array([[-self.suf.sum / lam ** 2]])
        return float(ans), gradient, hessian

    def mle(self) -> None:
        """Set λ to the sample mean. Left unchanged if the mean is not positive."""
        if self.suf.n > 0 and self.suf.sum > 0:
            self.set_lam(self.suf.sum / self.suf.n)

    # ---- EM ----
    def add_mixture_data(self, y: float, prob: float) -> None:
        self.suf.update_with_weight(y, prob)

    def __repr__(self) -> str:
        return f"PoissonModel(lam={self.lam:.4g})"
