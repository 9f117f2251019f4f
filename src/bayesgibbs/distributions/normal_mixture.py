"""
Finite normal mixture approximations to univariate densities.

Auxiliary mixture samplers replace an awkward error distribution (the
Gumbel error of a multinomial logit utility, or the -log Gamma error of a
Poisson waiting time) by a mixture of normals. Conditional on the mixture
component the model is Gaussian, so coefficients can be drawn with
conjugate regression updates.

Mathematical formulation:
    q(y) = Σ_k w_k N(y | μ_k, σ_k²)
    KL(f || q) = ∫ f(y) [log f(y) - log q(y)] dy

The mixture is fit by minimizing KL over θ = (μ, log σ, logit w) with
Powell's method, where logit w is taken relative to the first weight.
"""

import bisect
import logging
from typing import Callable, List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.integrate import trapezoid
from scipy.special import gammaln, logsumexp

from bayesgibbs.samplers.optimization import brent_maximize, powell_minimize

logger = logging.getLogger(__name__)

# The integration window extends until the target is this far (on the
# log scale) below its mode.
_WINDOW_LOG_DROP = 30.0
_GRID_SIZE = 2001


class NegLogGamma:
    """
    Log density of y = -log(x) where x ~ Gamma(nu, 1).

    log p(y) = -nu y - exp(-y) - lgamma(nu). With nu = 1 this is the
    standard Gumbel (minimum extreme value) error of a logit utility.
    """

    def __init__(self, nu: float) -> None:
        if nu <= 0:
            raise ValueError(f"nu must be positive. Got {nu}")
        self.nu = float(nu)
        self._lgamma_nu = float(gammaln(self.nu))

    def __call__(self, y):
        y = np.asarray(y, dtype=np.float64)
        ans = -self.nu * y - np.exp(-y) - self._lgamma_nu
        return float(ans) if ans.ndim == 0 else ans

    def __repr__(self) -> str:
        return f"NegLogGamma(nu={self.nu})"


def _integration_window(logf: Callable) -> Tuple[float, float, float]:
    """Locate the mode of logf and a window covering its bulk."""
    res = brent_maximize(logf, 0.0)
    mode, mode_value = float(res.x), res.value

    lower = mode - 1.0
    while mode_value - logf(lower) < _WINDOW_LOG_DROP:
        lower -= 1.0
    upper = mode + 1.0
    while mode_value - logf(upper) < _WINDOW_LOG_DROP:
        upper += 1.0
    return lower, upper, mode


class KullbackLeiblerDivergence:
    """
    KL(f || q) between a fixed target f and a candidate mixture q.

    The target is evaluated once on a quadrature grid. Calling the object
    with a parameter vector θ installs θ in the mixture and returns the
    divergence, which makes it a target for powell_minimize.
    """

    def __init__(
        self,
        logf: Callable,
        approximation: "NormalMixtureApproximation",
        grid_size: int = _GRID_SIZE,
    ) -> None:
        self.approximation = approximation
        self.lower, self.upper, self.guess_at_mode = _integration_window(logf)
        self.grid = np.linspace(self.lower, self.upper, grid_size)
        self.log_target = np.array([logf(y) for y in self.grid], dtype=np.float64)
        self.target = np.exp(self.log_target)

    def current_distance(self) -> float:
        """KL divergence of the current approximation from the target (trapezoid rule)."""
        log_q = self.approximation.logp(self.grid)
        integrand = self.target * (self.log_target - log_q)
        return float(trapezoid(integrand, self.grid))

    def __call__(self, theta: NDArray[np.float64]) -> float:
        self.approximation.set_theta(theta)
        ans = self.current_distance()
        return ans if np.isfinite(ans) else 1e100


class NormalMixtureApproximation:
    """
    Mixture of normals approximating a univariate density.

    Components are kept sorted by mean (by standard deviation when the
    means are forced to zero).

    Attributes
    ----------
    mu : NDArray[np.float64]
        Component means.
    sigma : NDArray[np.float64]
        Component standard deviations.
    weights : NDArray[np.float64]
        Mixing weights, summing to 1.
    kullback_leibler : float
        Divergence from the target at fit time, or nan if never fit.
    number_of_function_evaluations : int
        Evaluations used by the fit, or -1.
    """

    def __init__(
        self,
        mu: NDArray[np.float64],
        sigma: NDArray[np.float64],
        weights: NDArray[np.float64],
        force_zero_mu: bool = False,
    ) -> None:
        mu = np.atleast_1d(np.asarray(mu, dtype=np.float64))
        sigma = np.atleast_1d(np.asarray(sigma, dtype=np.float64))
        weights = np.atleast_1d(np.asarray(weights, dtype=np.float64))
        if not (len(mu) == len(sigma) == len(weights)):
            raise ValueError(
                "mu, sigma and weights must have the same length. Got "
                f"{len(mu)}, {len(sigma)}, {len(weights)}"
            )
        if np.any(sigma <= 0):
            raise ValueError("All component standard deviations must be positive")
        if np.any(weights < 0) or weights.sum() <= 0:
            raise ValueError("Weights must be non-negative with a positive sum")
        self.force_zero_mu = force_zero_mu
        self.kullback_leibler = np.nan
        self.number_of_function_evaluations = -1
        self._set(mu, sigma, weights / weights.sum())

    @classmethod
    def fit(
        cls,
        logf: Callable,
        initial_mu: NDArray[np.float64],
        initial_sigma: NDArray[np.float64],
        initial_weights: NDArray[np.float64],
        precision: float = 1e-6,
        max_evaluations: int = 10000,
        initial_stepsize: float = 1.0,
        force_zero_mu: bool = False,
    ) -> "NormalMixtureApproximation":
        """
        Fit a mixture to a normalized target log density.

        Parameters
        ----------
        logf : callable
            Normalized target log density.
        initial_mu, initial_sigma, initial_weights : NDArray[np.float64]
            Starting mixture.
        precision : float, optional
            Powell tolerance.
        max_evaluations : int, optional
            Maximum number of Powell evaluations.
        initial_stepsize : float, optional
            Powell initial step.
        force_zero_mu : bool, optional
            Fit a scale mixture with every mean fixed at 0.

        Returns
        -------
        NormalMixtureApproximation
            The fitted mixture, with kullback_leibler and
            number_of_function_evaluations recorded.
        """
        initial_mu = np.atleast_1d(np.asarray(initial_mu, dtype=np.float64))
        if force_zero_mu:
            initial_mu = np.zeros_like(initial_mu)
        approx = cls(initial_mu, initial_sigma, initial_weights, force_zero_mu)
        kl = KullbackLeiblerDivergence(logf, approx)
        res = powell_minimize(
            kl,
            approx.theta(),
            max_evaluations=max_evaluations,
            precision=precision,
            initial_stepsize=initial_stepsize,
        )
        approx.set_theta(res.x)
        approx.kullback_leibler = kl.current_distance()
        approx.number_of_function_evaluations = res.number_of_evaluations
        logger.debug(
            "Fit %d component normal mixture: KL = %.3g after %d evaluations",
            approx.dim, approx.kullback_leibler, res.number_of_evaluations,
        )
        return approx

    @property
    def dim(self) -> int:
        """Number of mixture components."""
        return len(self.mu)

    def _set(
        self,
        mu: NDArray[np.float64],
        sigma: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> None:
        order = np.argsort(sigma if self.force_zero_mu else mu, kind="stable")
        self.mu = mu[order]
        self.sigma = sigma[order]
        self.weights = weights[order]
        with np.errstate(divide="ignore"):
            self.log_weights = np.log(self.weights)

    def theta(self) -> NDArray[np.float64]:
        """Unconstrained parameter vector (μ, log σ, logit w)."""
        logit_w = np.log(self.weights[1:]) - np.log(self.weights[0])
        parts = [np.log(self.sigma), logit_w]
        if not self.force_zero_mu:
            parts.insert(0, self.mu)
        return np.concatenate(parts)

    def set_theta(self, theta: NDArray[np.float64]) -> None:
        """Install an unconstrained parameter vector."""
        theta = np.asarray(theta, dtype=np.float64)
        k = self.dim
        if self.force_zero_mu:
            mu = np.zeros(k)
            offset = 0
        else:
            mu = theta[:k].copy()
            offset = k
        sigma = np.exp(theta[offset:offset + k])
        log_w = np.concatenate([[0.0], theta[offset + k:]])
        log_w = log_w - logsumexp(log_w)
        self._set(mu, sigma, np.exp(log_w))

    def _component_logp(self, y) -> NDArray[np.float64]:
        y = np.asarray(y, dtype=np.float64)
        return self.log_weights + stats.norm.logpdf(
            y[..., np.newaxis], self.mu, self.sigma
        )

    def logp(self, y):
        """Log density of the mixture at y (scalar or array)."""
        ans = logsumexp(self._component_logp(y), axis=-1)
        return float(ans) if np.ndim(ans) == 0 else ans

    def unmix(self, u: float, rng: np.random.Generator) -> Tuple[float, float]:
        """
        Draw the mixture component responsible for a residual.

        Parameters
        ----------
        u : float
            Residual whose error distribution is approximated.
        rng : np.random.Generator
            Random number generator.

        Returns
        -------
        mu : float
            Mean of the drawn component.
        sigsq : float
            Variance of the drawn component.
        """
        log_probs = self._component_logp(u)
        probs = np.exp(log_probs - logsumexp(log_probs))
        k = int(rng.choice(self.dim, p=probs / probs.sum()))
        return float(self.mu[k]), float(self.sigma[k] ** 2)

    def compute_kullback_leibler(self, logf: Callable) -> float:
        """KL divergence from a normalized target log density."""
        kl = KullbackLeiblerDivergence(logf, self)
        self.kullback_leibler = kl.current_distance()
        return self.kullback_leibler

    def __repr__(self) -> str:
        return (
            f"NormalMixtureApproximation(dim={self.dim}, "
            f"kl={self.kullback_leibler:.3g})"
        )


class NormalMixtureApproximationTable:
    """
    Cache of mixture approximations to NegLogGamma(nu), indexed by nu.

    Entries are kept sorted by index. A missing index between two cached
    neighbours is first tried by linear interpolation of the neighbours'
    parameters, and fit directly when interpolation misses the 1e-5 KL
    threshold or the index lies outside the cached range.
    """

    interpolation_threshold = 1e-5

    def __init__(self) -> None:
        self.index: List[int] = []
        self.approximations: List[NormalMixtureApproximation] = []

    def add(self, index: int, approximation: NormalMixtureApproximation) -> None:
        """Insert an approximation, keeping the index sorted."""
        position = bisect.bisect_left(self.index, index)
        if position < len(self.index) and self.index[position] == index:
            self.approximations[position] = approximation
            return
        self.index.insert(position, index)
        self.approximations.insert(position, approximation)

    def smallest_index(self) -> int:
        return self.index[0]

    def largest_index(self) -> int:
        return self.index[-1]

    def __len__(self) -> int:
        return len(self.index)

    @staticmethod
    def _direct_fit(nu: int, number_of_components: int) -> NormalMixtureApproximation:
        k = number_of_components
        return NormalMixtureApproximation.fit(
            NegLogGamma(nu),
            np.full(k, -np.log(nu)) + np.linspace(-0.5, 0.5, k) / np.sqrt(nu),
            np.full(k, np.sqrt(1.0 / nu)),
            np.full(k, 1.0 / k),
            precision=1e-6,
            max_evaluations=20000,
            initial_stepsize=0.5 / np.sqrt(nu),
        )

    def approximate(self, nu: int) -> NormalMixtureApproximation:
        """
        Approximation to NegLogGamma(nu), building and caching it if needed.

        Raises
        ------
        RuntimeError
            If the table is empty.
        """
        if not self.index:
            raise RuntimeError("Cannot approximate from an empty table")
        position = bisect.bisect_left(self.index, nu)
        if position < len(self.index) and self.index[position] == nu:
            return self.approximations[position]

        if position == 0 or position == len(self.index):
            neighbour = self.approximations[min(position, len(self.index) - 1)]
            approximation = self._direct_fit(nu, neighbour.dim)
            self.add(nu, approximation)
            return approximation

        nu0, nu1 = self.index[position - 1], self.index[position]
        approx0 = self.approximations[position - 1]
        approx1 = self.approximations[position]
        approximation: Optional[NormalMixtureApproximation] = None
        if approx0.dim == approx1.dim:
            weight = (nu - nu0) / (nu1 - nu0)
            candidate = NormalMixtureApproximation(
                (1 - weight) * approx0.mu + weight * approx1.mu,
                (1 - weight) * approx0.sigma + weight * approx1.sigma,
                (1 - weight) * approx0.weights + weight * approx1.weights,
            )
            kl = candidate.compute_kullback_leibler(NegLogGamma(nu))
            if kl < self.interpolation_threshold:
                approximation = candidate
        if approximation is None:
            approximation = self._direct_fit(nu, max(approx0.dim, approx1.dim))
        self.add(nu, approximation)
        return approximation

    def __repr__(self) -> str:
        return f"NormalMixtureApproximationTable(index={self.index})"
