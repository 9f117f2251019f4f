"""
Dirichlet and product-Dirichlet models.

Mathematical formulation:
    p_i ~ Dirichlet(ν)
    suf = {n, Σ log p_i}
    log L(ν) = n [lgamma(Σν) - Σ lgamma(ν_j)] + Σ_j (ν_j - 1) sumlog_j

A product-Dirichlet model is a matrix of independent Dirichlet rows, the
natural prior for the rows of a Markov transition matrix.
"""

from typing import List
import numpy as np
from numpy.typing import NDArray
from scipy.special import digamma, gammaln, polygamma

from bayesgibbs.distributions.draws import ddirichlet, rdirichlet
from bayesgibbs.models.base import (
    DiffLoglikeModel,
    LoglikeModel,
    Model,
    SufficientStatistic,
)
from bayesgibbs.models.params import (
    MatrixParams,
    Params,
    VectorParams,
    VectorSource,
    as_iterator,
    take,
)


def dirichlet_row_loglike(nu: NDArray[np.float64], n: float, sumlog: NDArray[np.float64]) -> float:
    """Log likelihood of one Dirichlet row; -inf if any ν_j <= 0."""
    if np.any(nu <= 0):
        return -np.inf
    return float(
        n * (gammaln(nu.sum()) - gammaln(nu).sum()) + np.dot(nu - 1.0, sumlog)
    )


class DirichletSuf(SufficientStatistic):
    """Sufficient statistics {n, Σ log p}. Vector layout [n, sumlog...]."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self.n = 0.0
        self.sumlog = np.zeros(dim)

    def clear(self) -> None:
        self.n = 0.0
        self.sumlog = np.zeros(self.dim)

    def _log(self, p: NDArray[np.float64]) -> NDArray[np.float64]:
        p = np.asarray(p, dtype=np.float64).ravel()
        if len(p) != self.dim:
            raise ValueError(f"Expected a vector of length {self.dim}, got {len(p)}")
        with np.errstate(divide="ignore"):
            return np.log(p)

    def update(self, p: NDArray[np.float64]) -> None:
        self.n += 1.0
        self.sumlog += self._log(p)

    def update_with_weight(self, p: NDArray[np.float64], prob: float) -> None:
        self.n += prob
        self.sumlog += prob * self._log(p)

    def combine(self, other: "DirichletSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sumlog += other.sumlog

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([[self.n], self.sumlog])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        it = as_iterator(values)
        self.n = float(take(it, 1)[0])
        self.sumlog = take(it, self.dim)

    def __repr__(self) -> str:
        return f"DirichletSuf(dim={self.dim}, n={self.n:g})"


class DirichletModel(Model, DiffLoglikeModel):
    """
    Dirichlet model for probability vectors.

    Attributes
    ----------
    nu_prm : VectorParams
        Concentration parameters, all positive.
    suf : DirichletSuf
        Sufficient statistics.
    """

    def __init__(self, nu: NDArray[np.float64]) -> None:
        super().__init__()
        nu = np.asarray(nu, dtype=np.float64).ravel()
        if len(nu) < 2:
            raise ValueError("A Dirichlet model needs at least 2 categories")
        if np.any(nu <= 0):
            raise ValueError("Dirichlet concentration parameters must be positive")
        self.nu_prm = VectorParams(nu)
        self.suf = DirichletSuf(len(nu))

    def params(self) -> List[Params]:
        return [self.nu_prm]

    @property
    def dim(self) -> int:
        """Number of categories."""
        return len(self.nu)

    @property
    def nu(self) -> NDArray[np.float64]:
        """Concentration parameters ν."""
        return self.nu_prm.value

    def set_nu(self, nu: NDArray[np.float64]) -> None:
        """
        Set the concentration parameters.

        Parameters
        ----------
        nu : NDArray[np.float64]
            Positive vector with one entry per category.

        Raises
        ------
        ValueError
            If any entry is not positive, or the length is wrong.
        """
        nu = np.asarray(nu, dtype=np.float64)
        if np.any(nu <= 0):
            raise ValueError("Dirichlet concentration parameters must be positive")
        self.nu_prm.set(nu)

    def pi(self) -> NDArray[np.float64]:
        """Mean probability vector ν / Σν."""
        return self.nu / self.nu.sum()

    def logp(self, p: NDArray[np.float64]) -> float:
        """Log Dirichlet density of a probability vector."""
        return ddirichlet(p, self.nu)

    def simulate(self, rng: np.random.Generator) -> NDArray[np.float64]:
        return rdirichlet(self.nu, rng)

    def likelihood_theta(self) -> NDArray[np.float64]:
        return self.nu.copy()

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.set_nu(theta)

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        nu = np.asarray(theta, dtype=np.float64)
        ans = dirichlet_row_loglike(nu, self.suf.n, self.suf.sumlog)
        if not np.isfinite(ans):
            return ans, None, None
        n = self.suf.n
        gradient = hessian = None
        if nd > 0:
            gradient = n * (digamma(nu.sum()) - digamma(nu)) + self.suf.sumlog
            if nd > 1:
                hessian = n * (
                    polygamma(1, nu.sum()) * np.ones((len(nu), len(nu)))
                    - np.diag(polygamma(1, nu))
                )
        return ans, gradient, hessian

    def __repr__(self) -> str:
        return f"DirichletModel(nu={np.round(self.nu, 4)})"


class ProductDirichletSuf(SufficientStatistic):
    """
    Sufficient statistics for a matrix of independent Dirichlet rows.

    Each datum is a row-stochastic matrix Q. Vector layout:
    [n, sumlog (row-major)].
    """

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self.n = 0.0
        self.sumlog = np.zeros((dim, dim))

    def clear(self) -> None:
        self.n = 0.0
        self.sumlog = np.zeros((self.dim, self.dim))

    def _log(self, Q: NDArray[np.float64]) -> NDArray[np.float64]:
        Q = np.atleast_2d(np.asarray(Q, dtype=np.float64))
        if Q.shape != (self.dim, self.dim):
            raise ValueError(f"Expected a {self.dim} x {self.dim} matrix, got {Q.shape}")
        with np.errstate(divide="ignore"):
            return np.log(Q)

    def update(self, Q: NDArray[np.float64]) -> None:
        self.n += 1.0
        self.sumlog += self._log(Q)

    def update_with_weight(self, Q: NDArray[np.float64], prob: float) -> None:
        self.n += prob
        self.sumlog += prob * self._log(Q)

    def combine(self, other: "ProductDirichletSuf") -> None:
        self._check_same_type(other)
        self.n += other.n
        self.sumlog += other.sumlog

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([[self.n], self.sumlog.ravel()])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        it = as_iterator(values)
        self.n = float(take(it, 1)[0])
        self.sumlog = take(it, self.dim * self.dim).reshape(self.dim, self.dim)

    def __repr__(self) -> str:
        return f"ProductDirichletSuf(dim={self.dim}, n={self.n:g})"


class ProductDirichletModel(Model, LoglikeModel):
    """
    Independent Dirichlet distributions on the rows of a square matrix.

    Attributes
    ----------
    Nu_prm : MatrixParams
        Row s holds the concentration parameters of row s.
    suf : ProductDirichletSuf
        Sufficient statistics.
    """

    def __init__(self, Nu: NDArray[np.float64]) -> None:
        super().__init__()
        Nu = np.atleast_2d(np.asarray(Nu, dtype=np.float64))
        if Nu.shape[0] != Nu.shape[1]:
            raise ValueError(f"Nu must be square. Got shape {Nu.shape}")
        if np.any(Nu <= 0):
            raise ValueError("Dirichlet concentration parameters must be positive")
        self.Nu_prm = MatrixParams(Nu)
        self.suf = ProductDirichletSuf(Nu.shape[0])

    @classmethod
    def symmetric(cls, dim: int, nu: float = 1.0) -> "ProductDirichletModel":
        """Prior with every concentration equal to nu. nu = 1 is uniform on each row."""
        return cls(np.full((dim, dim), nu))

    def params(self) -> List[Params]:
        return [self.Nu_prm]

    @property
    def dim(self) -> int:
        return self.Nu.shape[0]

    @property
    def Nu(self) -> NDArray[np.float64]:
        """Concentration matrix; row s is the prior for row s of Q."""
        return self.Nu_prm.value

    def set_Nu(self, Nu: NDArray[np.float64]) -> None:
        """Set the concentration matrix. Raises ValueError for non-positive entries."""
        Nu = np.asarray(Nu, dtype=np.float64)
        if np.any(Nu <= 0):
            raise ValueError("Dirichlet concentration parameters must be positive")
        self.Nu_prm.set(Nu)

    def logp(self, Q: NDArray[np.float64]) -> float:
        """Sum of the row-wise Dirichlet log densities of a transition matrix."""
        Q = np.atleast_2d(Q)
        return float(sum(ddirichlet(Q[s], self.Nu[s]) for s in range(self.dim)))

    def simulate(self, rng: np.random.Generator) -> NDArray[np.float64]:
        return np.vstack([rdirichlet(self.Nu[s], rng) for s in range(self.dim)])

    def row_loglike(self, row: int, nu: NDArray[np.float64]) -> float:
        """
        Log likelihood of one row's concentration vector.

        Parameters
        ----------
        row : int
            Row index s.
        nu : NDArray[np.float64]
            Candidate concentrations for that row.

        Returns
        -------
        float
            Log likelihood given the observed rows s of the data matrices.
        """
        return dirichlet_row_loglike(nu, self.suf.n, self.suf.sumlog[row])

    def loglike(self) -> float:
        return float(sum(self.row_loglike(s, self.Nu[s]) for s in range(self.dim)))

    def __repr__(self) -> str:
        return f"ProductDirichletModel(dim={self.dim})"
