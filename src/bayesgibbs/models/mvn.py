"""
Multivariate normal model.

Mathematical formulation:
    y_i ~ N(μ, Σ)
    suf = {n, Σ y_i, Σ y_i y_iᵀ}
    log L(μ, Σ) = -0.5 [n k log 2π + n log|Σ| + tr(Σ^{-1} SS(μ))]
    SS(μ) = Σ (y_i - μ)(y_i - μ)ᵀ
"""

from typing import List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_triangular

from bayesgibbs.distributions.draws import LOG_2PI, rmvn
from bayesgibbs.linalg import cholesky, from_lower_triangle, logdet, lower_triangle, spd_inverse, trace_ab
from bayesgibbs.models.base import EmMixtureComponent, LoglikeModel, Model, SufficientStatistic
from bayesgibbs.models.params import Params, SpdParams, VectorParams, VectorSource, as_iterator, take


class MvnSuf(SufficientStatistic):
    """
    Sufficient statistics {n, Σy, Σyyᵀ}.

    Vector layout: n, sum, sumsq (lower triangle when minimal).
    """

    def __init__(self, dim: int) -> None:
        if dim <= 0:
            raise ValueError(f"dim must be positive. Got {dim}")
        self.dim = dim
        self.clear()

    def clear(self) -> None:
        self.n = 0.0
        self.sum = np.zeros(self.dim)
        self.sumsq = np.zeros((self.dim, self.dim))

    def _check(self, y: NDArray[np.float64]) -> NDArray[np.float64]:
        y = np.asarray(y, dtype=np.float64).ravel()
        if len(y) != self.dim:
            raise ValueError(f"Expected a vector of length {self.dim}, got {len(y)}")
        return y

    def update(self, y: NDArray[np.float64]) -> None:
        self.update_with_weight(y, 1.0)

    def update_with_weight(self, y: NDArray[np.float64], prob: float) -> None:
        y = self._check(y)
        self.n += prob
        self.sum += prob * y
        self.sumsq += prob * np.outer(y, y)

    def combine(self, other: "MvnSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sum += other.sum
        self.sumsq += other.sumsq

    def ybar(self) -> NDArray[np.float64]:
        """Sample mean vector; zeros when empty."""
        return self.sum / self.n if self.n > 0 else np.zeros(self.dim)

    def center_sumsq(self, mu: Optional[NDArray[np.float64]] = None) -> NDArray[np.float64]:
        """Σ (y_i - μ)(y_i - μ)ᵀ, centered at ybar when mu is None."""
        if mu is None:
            mu = self.ybar()
        cross = np.outer(self.sum, mu)
        return self.sumsq - cross - cross.T + self.n * np.outer(mu, mu)

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        sumsq = lower_triangle(self.sumsq) if minimal else self.sumsq.ravel()
        return np.concatenate([[self.n], self.sum, sumsq])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        k = self.dim
        it = as_iterator(values)
        self.n = float(take(it, 1)[0])
        self.sum = take(it, k)
        if minimal:
            self.sumsq = from_lower_triangle(take(it, k * (k + 1) // 2), k)
        else:
            self.sumsq = take(it, k * k).reshape(k, k)

    def __repr__(self) -> str:
        return f"MvnSuf(dim={self.dim}, n={self.n:g})"


class MvnModel(Model, LoglikeModel, EmMixtureComponent):
    """
    Multivariate normal model with mean μ and variance Σ.

    Attributes
    ----------
    mu_prm : VectorParams
        Mean vector.
    Sigma_prm : SpdParams
        Variance matrix.
    suf : MvnSuf
        Sufficient statistics.
    """

    def __init__(
        self,
        mu: NDArray[np.float64],
        Sigma: Optional[NDArray[np.float64]] = None,
    ) -> None:
        super().__init__()
        mu = np.asarray(mu, dtype=np.float64).ravel()
        if Sigma is None:
            Sigma = np.eye(len(mu))
        Sigma = np.atleast_2d(np.asarray(Sigma, dtype=np.float64))
        if Sigma.shape != (len(mu), len(mu)):
            raise ValueError(
                f"Sigma must have shape ({len(mu)}, {len(mu)}). Got {Sigma.shape}"
            )
        self.mu_prm = VectorParams(mu)
        self.Sigma_prm = SpdParams(Sigma)
        self.suf = MvnSuf(len(mu))

    def params(self) -> List[Params]:
        return [self.mu_prm, self.Sigma_prm]

    @property
    def dim(self) -> int:
        """Dimension k of an observation."""
        return len(self.mu)

    @property
    def mu(self) -> NDArray[np.float64]:
        return self.mu_prm.value

    @property
    def Sigma(self) -> NDArray[np.float64]:
        """Variance matrix Σ."""
        return self.Sigma_prm.value

    def siginv(self) -> NDArray[np.float64]:
        """Precision matrix Σ^{-1}, recomputed on each call."""
        return spd_inverse(self.Sigma)

    def set_mu(self, mu: NDArray[np.float64]) -> None:
        """Set the mean. Raises ValueError on a length mismatch."""
        self.mu_prm.set(mu)

    def set_Sigma(self, Sigma: NDArray[np.float64]) -> None:
        """
        Set the variance matrix.

        Parameters
        ----------
        Sigma : NDArray[np.float64]
            Symmetric positive definite matrix of shape (k, k).

        Raises
        ------
        ValueError
            If Sigma has the wrong shape or is not positive definite.
        """
        self.Sigma_prm.set(Sigma)

    def set_siginv(self, siginv: NDArray[np.float64]) -> None:
        """
        Set Σ from its inverse, as precision-scale samplers produce.

        Parameters
        ----------
        siginv : NDArray[np.float64]
            Symmetric positive definite precision matrix of shape (k, k).
        """
        self.Sigma_prm.set(spd_inverse(siginv))

    def log_det(self) -> float:
        """log |Σ|."""
        return logdet(self.Sigma)

    def mahalanobis_distance(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        d(x, μ) = sqrt((x - μ)ᵀ Σ^{-1} (x - μ)).

        x may be a single point (k,) or a batch (..., k).
        """
        L, ok = cholesky(self.Sigma)
        if not ok:
            raise ValueError("Sigma must be positive definite")
        diff = np.asarray(x, dtype=np.float64) - self.mu
        z = solve_triangular(L, np.atleast_2d(diff).T, lower=True)
        d = np.sqrt(np.sum(z * z, axis=0))
        return d[0] if diff.ndim == 1 else d

    def conditional_distribution(
        self,
        indices_obs: NDArray[np.int64],
        values_obs: NDArray[np.float64],
    ) -> Tuple[NDArray[np.int64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Distribution of the unobserved coordinates given the observed ones.

            μ_u|o = μ_u + Σ_uo Σ_oo^{-1} (x_o - μ_o)
            Σ_u|o = Σ_uu - Σ_uo Σ_oo^{-1} Σ_ou

        Returns
        -------
        indices_unobs : NDArray[np.int64]
            The complementary index set, in increasing order.
        conditional_mean : NDArray[np.float64]
        conditional_cov : NDArray[np.float64]
        """
        indices_obs = np.asarray(indices_obs, dtype=np.int64)
        indices_unobs = np.setdiff1d(np.arange(self.dim), indices_obs)
        Sigma = self.Sigma
        Sigma_oo = Sigma[np.ix_(indices_obs, indices_obs)]
        Sigma_ou = Sigma[np.ix_(indices_obs, indices_unobs)]
        Sigma_uu = Sigma[np.ix_(indices_unobs, indices_unobs)]

        L_oo, ok = cholesky(Sigma_oo)
        if not ok:
            raise ValueError("Observed block of Sigma is not positive definite")
        innovation = np.asarray(values_obs, dtype=np.float64) - self.mu[indices_obs]
        alpha = solve_triangular(L_oo, innovation, lower=True)
        beta = solve_triangular(L_oo.T, alpha, lower=False)
        conditional_mean = self.mu[indices_unobs] + Sigma_ou.T @ beta

        gamma = solve_triangular(L_oo, Sigma_ou, lower=True)
        conditional_cov = Sigma_uu - gamma.T @ gamma
        return indices_unobs, conditional_mean, conditional_cov

    def logp(self, y: NDArray[np.float64]) -> float:
        """Log density of one observation; -inf if Σ is singular."""
        ld = self.log_det()
        if not np.isfinite(ld):
            return -np.inf
        d = float(self.mahalanobis_distance(y))
        return float(-0.5 * (self.dim * LOG_2PI + ld + d * d))

    def pdf(self, y: NDArray[np.float64], logscale: bool = False) -> float:
        ans = self.logp(y)
        return ans if logscale else float(np.exp(ans))

    def simulate(self, rng: np.random.Generator) -> NDArray[np.float64]:
        return rmvn(self.mu, self.Sigma, rng)

    def log_likelihood(self, mu: NDArray[np.float64], siginv: NDArray[np.float64]) -> float:
        """Log likelihood at (μ, Σ^{-1}); -inf if Σ^{-1} is not positive definite."""
        ld = logdet(siginv)
        if not np.isfinite(ld):
            return -np.inf
        n = self.suf.n
        ss = self.suf.center_sumsq(mu)
        return float(-0.5 * (n * self.dim * LOG_2PI - n * ld + trace_ab(siginv, ss)))

    def loglike(self) -> float:
        return self.log_likelihood(self.mu, self.siginv())

    def mle(self) -> None:
        """Sample mean and (biased) sample variance. Needs more than dim observations."""
        n = self.suf.n
        if n <= 0:
            return
        self.set_mu(self.suf.ybar())
        if n > self.dim:
            self.set_Sigma(self.suf.center_sumsq() / n)

    def add_mixture_data(self, y: NDArray[np.float64], prob: float) -> None:
        self.suf.update_with_weight(y, prob)

    def __repr__(self) -> str:
        return f"MvnModel(dim={self.dim})"
