"""
Wishart model for random positive definite matrices.

Mathematical formulation (inverse scale parameterization):
    p(W | ν, S) = |S|^{ν/2} |W|^{(ν-k-1)/2} exp(-tr(S W) / 2)
                  / (2^{νk/2} Γ_k(ν/2))
    E[W] = ν S^{-1}
    suf = {n, Σ log|W_i|, Σ W_i}
"""

import logging
from typing import List
import numpy as np
from numpy.typing import NDArray
from scipy.special import multigammaln

from bayesgibbs.distributions.draws import dwishart, rwishart
from bayesgibbs.linalg import (
    from_lower_triangle,
    logdet,
    lower_triangle,
    spd_inverse,
    trace_ab,
)
from bayesgibbs.models.base import LoglikeModel, Model, SufficientStatistic
from bayesgibbs.models.params import (
    Params,
    SpdParams,
    UnivParams,
    VectorSource,
    as_iterator,
    take,
)
from bayesgibbs.samplers.optimization import OptimizationResult, brent_maximize

logger = logging.getLogger(__name__)


class WishartSuf(SufficientStatistic):
    """
    Sufficient statistics {n, Σ log|W|, Σ W}.

    Vector layout: Σ W (lower triangle when minimal, else full), n, sumldw.
    """

    def __init__(self, dim: int) -> None:
        if dim <= 0:
            raise ValueError(f"dim must be positive. Got {dim}")
        self.dim = dim
        self.n = 0.0
        self.sumldw = 0.0
        self.sumW = np.zeros((dim, dim))

    def clear(self) -> None:
        self.n = 0.0
        self.sumldw = 0.0
        self.sumW = np.zeros((self.dim, self.dim))

    def _check(self, W: NDArray[np.float64]) -> NDArray[np.float64]:
        W = np.atleast_2d(np.asarray(W, dtype=np.float64))
        if W.shape != (self.dim, self.dim):
            raise ValueError(
                f"Expected a {self.dim} x {self.dim} matrix, got {W.shape}"
            )
        return W

    def update(self, W: NDArray[np.float64]) -> None:
        W = self._check(W)
        self.n += 1.0
        self.sumldw += logdet(W)
        self.sumW += W

    def update_with_weight(self, W: NDArray[np.float64], prob: float) -> None:
        W = self._check(W)
        self.n += prob
        self.sumldw += prob * logdet(W)
        self.sumW += prob * W

    def combine(self, other: "WishartSuf") -> None:
        self._check_same_type(other)
        if other.dim != self.dim:
            raise ValueError(f"Cannot combine dimension {other.dim} with {self.dim}")
        self.n += other.n
        self.sumldw += other.sumldw
        self.sumW += other.sumW

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        sumW = lower_triangle(self.sumW) if minimal else self.sumW.ravel()
        return np.concatenate([sumW, [self.n, self.sumldw]])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        k = self.dim
        it = as_iterator(values)
        if minimal:
            self.sumW = from_lower_triangle(take(it, k * (k + 1) // 2), k)
        else:
            self.sumW = take(it, k * k).reshape(k, k)
        self.n, self.sumldw = (float(v) for v in take(it, 2))

    def __repr__(self) -> str:
        return f"WishartSuf(dim={self.dim}, n={self.n:g})"


class WishartModel(Model, LoglikeModel):
    """
    Wishart model with degrees of freedom ν and inverse scale S.

    Attributes
    ----------
    nu_prm : UnivParams
        Degrees of freedom, must exceed dim - 1.
    sumsq_prm : SpdParams
        Inverse scale matrix S.
    suf : WishartSuf
        Sufficient statistics.
    """

    def __init__(self, nu: float, sumsq: NDArray[np.float64]) -> None:
        super().__init__()
        sumsq = np.atleast_2d(np.asarray(sumsq, dtype=np.float64))
        if nu <= sumsq.shape[0] - 1:
            raise ValueError(
                f"Degrees of freedom must exceed dim - 1 = {sumsq.shape[0] - 1}. Got {nu}"
            )
        self.nu_prm = UnivParams(nu)
        self.sumsq_prm = SpdParams(sumsq)
        self.suf = WishartSuf(sumsq.shape[0])

    def params(self) -> List[Params]:
        return [self.nu_prm, self.sumsq_prm]

    @property
    def dim(self) -> int:
        return self.sumsq_prm.dim

    @property
    def nu(self) -> float:
        """Degrees of freedom ν."""
        return self.nu_prm.value

    @property
    def sumsq(self) -> NDArray[np.float64]:
        """Sum of squares matrix S; E[W] = ν S^{-1}."""
        return self.sumsq_prm.value

    def set_nu(self, nu: float) -> None:
        """
        Set the degrees of freedom.

        Raises
        ------
        ValueError
            If nu <= dim - 1.
        """
        if nu <= self.dim - 1:
            raise ValueError(f"Degrees of freedom must exceed {self.dim - 1}. Got {nu}")
        self.nu_prm.set(nu)

    def set_sumsq(self, sumsq: NDArray[np.float64]) -> None:
        """Set S. Raises ValueError if it is not symmetric positive definite."""
        self.sumsq_prm.set(sumsq)

    def mean(self) -> NDArray[np.float64]:
        """E[W] = ν S^{-1}."""
        return self.nu * spd_inverse(self.sumsq)

    def logp(self, W: NDArray[np.float64]) -> float:
        return dwishart(W, self.sumsq, self.nu)

    def simulate(self, rng: np.random.Generator) -> NDArray[np.float64]:
        return rwishart(self.nu, self.sumsq, rng)

    def log_likelihood(self, nu: float, sumsq: NDArray[np.float64]) -> float:
        """
        Log likelihood at (ν, S) from the sufficient statistics.

        Returns -inf if ν < k or S is not positive definite.
        """
        k = self.dim
        if nu < k:
            return -np.inf
        ld = logdet(sumsq)
        if not np.isfinite(ld):
            return -np.inf
        suf = self.suf
        normalizing = -nu * k * np.log(2.0) - 2.0 * multigammaln(0.5 * nu, k) + nu * ld
        ans = 0.5 * (
            suf.n * normalizing
            + (nu - k - 1) * suf.sumldw
            - trace_ab(sumsq, suf.sumW)
        )
        return float(ans)

    def loglike(self) -> float:
        return self.log_likelihood(self.nu, self.sumsq)

    def mle(self) -> OptimizationResult:
        """
        Maximum likelihood by profiling.

        For fixed ν the optimal inverse scale is S(ν) = n ν (Σ W)^{-1}, so
        only ν needs a numerical (bounded Brent) search.

        Raises
        ------
        ValueError
            If no data have been assigned.
        """
        if self.suf.n <= 0:
            raise ValueError("WishartModel.mle requires data")
        sumW_inv = spd_inverse(self.suf.sumW)
        n = self.suf.n

        def profile(nu: float) -> float:
            return self.log_likelihood(nu, n * nu * sumW_inv)

        k = self.dim
        result = brent_maximize(profile, self.nu, bounds=(float(k), 1e5))
        nu_hat = float(result.x)
        self.set_nu(nu_hat)
        self.set_sumsq(n * nu_hat * sumW_inv)
        return result

    def __repr__(self) -> str:
        return f"WishartModel(dim={self.dim}, nu={self.nu:.4g})"
