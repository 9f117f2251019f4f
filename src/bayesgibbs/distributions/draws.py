"""
Random draws and log densities built on an explicit numpy Generator.

Every function that draws takes the generator as an argument, so a
sampler (or a worker task) that owns its generator is reproducible from a
seed and independent of every other sampler.

Conventions:
    Gamma(a, b) is shape / rate, mean a / b.
    Wishart(nu, S) is parameterized by the inverse scale matrix S:
        p(W) ∝ |W|^{(nu-k-1)/2} exp(-tr(S W) / 2),   E[W] = nu S^{-1}
"""

from typing import Union
import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.linalg import cho_solve, solve_triangular
from scipy.special import gammaln, logsumexp, multigammaln

from bayesgibbs.linalg import cholesky, logdet, spd_inverse, trace_ab

LOG_2PI = 1.8378770664093453

SeedLike = Union[None, int, np.random.SeedSequence, np.random.Generator]


def seed_rng(seed: SeedLike = None) -> np.random.Generator:
    """
    Build a generator from a seed, or pass an existing generator through.

    Parameters
    ----------
    seed : int, SeedSequence, Generator, or None
        None draws fresh OS entropy.

    Returns
    -------
    np.random.Generator
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def rgamma(a: float, b: float, rng: np.random.Generator) -> float:
    """Gamma draw with shape a and rate b."""
    return float(rng.gamma(a, 1.0 / b))


def rdirichlet(nu: NDArray[np.float64], rng: np.random.Generator) -> NDArray[np.float64]:
    """Dirichlet draw via normalized gamma variates."""
    g = rng.gamma(np.asarray(nu, dtype=np.float64))
    total = g.sum()
    if total <= 0:
        # Every component underflowed; the largest concentration wins.
        ans = np.zeros(len(g))
        ans[np.argmax(nu)] = 1.0
        return ans
    return g / total


def mdirichlet(nu: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Mode of a Dirichlet distribution.

    Components with nu <= 1 sit on the boundary (zero). If no component
    exceeds 1 the mean is returned instead.
    """
    nu = np.asarray(nu, dtype=np.float64)
    excess = np.clip(nu - 1.0, 0.0, None)
    total = excess.sum()
    if total <= 0:
        return nu / nu.sum()
    return excess / total


def rmulti(probs: NDArray[np.float64], rng: np.random.Generator) -> int:
    """Draw a category index from (possibly unnormalized) probabilities."""
    probs = np.asarray(probs, dtype=np.float64)
    cumulative = np.cumsum(probs)
    u = rng.uniform(0.0, cumulative[-1])
    return int(min(np.searchsorted(cumulative, u, side="right"), len(probs) - 1))


def rmvn(
    mu: NDArray[np.float64],
    Sigma: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """Multivariate normal draw given mean and variance."""
    L, ok = cholesky(Sigma)
    if not ok:
        raise ValueError("Variance matrix must be positive definite")
    z = rng.standard_normal(len(mu))
    return np.asarray(mu, dtype=np.float64) + L @ z


def rmvn_ivar(
    mu: NDArray[np.float64],
    ivar: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """
    Multivariate normal draw given mean and precision.

    If ivar = L L^T then x = mu + L^{-T} z has variance ivar^{-1}.
    """
    mu = np.asarray(mu, dtype=np.float64)
    if len(mu) == 0:
        return mu.copy()
    L, ok = cholesky(ivar)
    if not ok:
        raise ValueError("Precision matrix must be positive definite")
    z = rng.standard_normal(len(mu))
    return mu + solve_triangular(L.T, z, lower=False)


def rmvn_suf(
    ivar: NDArray[np.float64],
    ivar_mu: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """
    Multivariate normal draw from its sufficient statistics.

    Parameters
    ----------
    ivar : NDArray[np.float64]
        Posterior precision, shape (p, p).
    ivar_mu : NDArray[np.float64]
        Posterior precision times posterior mean, shape (p,).

    Returns
    -------
    NDArray[np.float64]
        Draw from N(ivar^{-1} ivar_mu, ivar^{-1}).
    """
    ivar_mu = np.asarray(ivar_mu, dtype=np.float64)
    if len(ivar_mu) == 0:
        return ivar_mu.copy()
    L, ok = cholesky(ivar)
    if not ok:
        raise ValueError("Precision matrix must be positive definite")
    mean = cho_solve((L, True), ivar_mu)
    z = rng.standard_normal(len(ivar_mu))
    return mean + solve_triangular(L.T, z, lower=False)


def rwishart(
    nu: float,
    sumsq: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """Wishart draw with nu degrees of freedom and inverse scale sumsq."""
    sumsq = np.atleast_2d(sumsq)
    scale = spd_inverse(sumsq)
    draw = stats.wishart(df=nu, scale=scale).rvs(random_state=rng)
    return np.atleast_2d(draw).reshape(sumsq.shape)


def lse(x: NDArray[np.float64]) -> float:
    """log(sum(exp(x))) computed stably."""
    return float(logsumexp(x))


def dgamma(x: float, a: float, b: float, logscale: bool = True) -> float:
    """Gamma density (shape a, rate b); -inf outside the support."""
    if a <= 0 or b <= 0 or x < 0:
        ans = -np.inf
    else:
        ans = float(stats.gamma.logpdf(x, a, scale=1.0 / b))
    return ans if logscale else float(np.exp(ans))


def ddirichlet(
    p: NDArray[np.float64],
    nu: NDArray[np.float64],
    logscale: bool = True,
) -> float:
    """
    Dirichlet density.

    Returns -inf when p has negative entries or does not sum to one.
    """
    p = np.asarray(p, dtype=np.float64)
    nu = np.asarray(nu, dtype=np.float64)
    if np.any(p < 0) or not np.isclose(p.sum(), 1.0, atol=1e-8) or np.any(nu <= 0):
        ans = -np.inf
    else:
        with np.errstate(divide="ignore"):
            logp = np.log(p)
        terms = np.where(nu == 1.0, 0.0, (nu - 1.0) * logp)
        ans = float(gammaln(nu.sum()) - gammaln(nu).sum() + terms.sum())
    return ans if logscale else float(np.exp(ans))


def dmvn_ivar(
    x: NDArray[np.float64],
    mu: NDArray[np.float64],
    ivar: NDArray[np.float64],
    logscale: bool = True,
) -> float:
    """Multivariate normal density given mean and precision."""
    x = np.asarray(x, dtype=np.float64)
    if len(x) == 0:
        return 0.0 if logscale else 1.0
    ld = logdet(ivar)
    if not np.isfinite(ld):
        return -np.inf if logscale else 0.0
    diff = x - mu
    ans = -0.5 * (len(x) * LOG_2PI - ld + float(diff @ ivar @ diff))
    return ans if logscale else float(np.exp(ans))


def dwishart(
    W: NDArray[np.float64],
    sumsq: NDArray[np.float64],
    nu: float,
    logscale: bool = True,
) -> float:
    """
    Wishart density with inverse scale sumsq.

    Returns -inf if W or sumsq is not positive definite, or if
    nu <= k - 1.
    """
    W = np.atleast_2d(W)
    k = W.shape[0]
    ld_W = logdet(W)
    ld_S = logdet(sumsq)
    if nu <= k - 1 or not np.isfinite(ld_W) or not np.isfinite(ld_S):
        ans = -np.inf
    else:
        ans = (
            0.5 * (nu - k - 1) * ld_W
            - 0.5 * trace_ab(sumsq, W)
            + 0.5 * nu * ld_S
            - 0.5 * nu * k * np.log(2.0)
            - multigammaln(0.5 * nu, k)
        )
    return float(ans) if logscale else float(np.exp(ans))
