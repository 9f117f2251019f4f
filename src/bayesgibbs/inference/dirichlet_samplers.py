"""
Slice samplers for Dirichlet concentration parameters.

ν is reparameterised as (α, φ) with α = Σν and φ = ν / α. Priors are put
on α (any DoubleModel) and on φ (a DirichletModel). Changing variables
back to ν contributes a Jacobian of α^{-(d-1)}, so each ν_j is slice
sampled from
    loglike(ν) + log p_α(Σν) + log p_φ(ν / Σν) - (d - 1) log Σν
with a lower limit min_nu.
"""

from typing import Callable, List, Sequence, Union
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.distributions.draws import SeedLike
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.base import DoubleModel
from bayesgibbs.models.dirichlet import DirichletModel, ProductDirichletModel
from bayesgibbs.samplers.slice import ScalarSliceSampler


def dirichlet_log_posterior(
    nu: NDArray[np.float64],
    loglike: Callable[[NDArray[np.float64]], float],
    phi_prior: DirichletModel,
    alpha_prior: DoubleModel,
) -> float:
    """Un-normalized log posterior of ν; -inf if any ν_j <= 0."""
    if np.any(nu <= 0):
        return -np.inf
    alpha = nu.sum()
    ans = alpha_prior.logp(alpha) + phi_prior.logp(nu / alpha)
    if not np.isfinite(ans):
        return -np.inf
    return float(ans - (len(nu) - 1) * np.log(alpha) + loglike(nu))


def _unset_target(x: float) -> float:
    raise RuntimeError("Coordinate target used before it was set")


def _slice_sample_coordinates(
    nu: NDArray[np.float64],
    target: Callable[[NDArray[np.float64]], float],
    samplers: List[ScalarSliceSampler],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """One sweep of coordinate-wise slice sampling of ν under target."""
    nu = nu.copy()
    for j, sampler in enumerate(samplers):
        def logf(x: float, j: int = j) -> float:
            nu[j] = x
            return target(nu)

        current = nu[j]
        sampler.logf = logf
        nu[j] = sampler.draw(current, rng)
    return nu


class DirichletPosteriorSampler(PosteriorSampler):
    """
    Draws ν of a DirichletModel one coordinate at a time.

    Attributes
    ----------
    phi_prior : DirichletModel
        Prior on ν / Σν.
    alpha_prior : DoubleModel
        Prior on Σν.
    min_nu : float
        Lower limit for every ν_j.
    """

    def __init__(
        self,
        model: DirichletModel,
        phi_prior: DirichletModel,
        alpha_prior: DoubleModel,
        min_nu: float = 0.0,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if phi_prior.dim != model.dim:
            raise ValueError(f"phi_prior has dimension {phi_prior.dim}, model has {model.dim}")
        if min_nu < 0:
            raise ValueError(f"min_nu must be non-negative. Got {min_nu}")
        self.model = model
        self.phi_prior = phi_prior
        self.alpha_prior = alpha_prior
        self.min_nu = float(min_nu)
        self.samplers = [
            ScalarSliceSampler(_unset_target, lower=self.min_nu) for _ in range(model.dim)
        ]

    def _target(self, nu: NDArray[np.float64]) -> float:
        return dirichlet_log_posterior(
            nu, lambda v: self.model.log_likelihood(v)[0], self.phi_prior, self.alpha_prior
        )

    def draw(self) -> None:
        nu = _slice_sample_coordinates(self.model.nu, self._target, self.samplers, self.rng)
        self.model.set_nu(nu)

    def logpri(self) -> float:
        return dirichlet_log_posterior(self.model.nu, lambda v: 0.0, self.phi_prior, self.alpha_prior)


class ProductDirichletPosteriorSampler(PosteriorSampler):
    """
    Draws each row of a ProductDirichletModel's Nu independently.

    phi_prior and alpha_prior may be single models shared by every row or
    sequences with one model per row.
    """

    def __init__(
        self,
        model: ProductDirichletModel,
        phi_prior: Union[DirichletModel, Sequence[DirichletModel]],
        alpha_prior: Union[DoubleModel, Sequence[DoubleModel]],
        min_nu: float = 0.0,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        d = model.dim
        self.model = model
        self.phi_priors = self._per_row(phi_prior, d, "phi_prior")
        self.alpha_priors = self._per_row(alpha_prior, d, "alpha_prior")
        if any(p.dim != d for p in self.phi_priors):
            raise ValueError(f"Every phi prior must have dimension {d}")
        if min_nu < 0:
            raise ValueError(f"min_nu must be non-negative. Got {min_nu}")
        self.min_nu = float(min_nu)
        self.samplers = [
            [ScalarSliceSampler(_unset_target, lower=self.min_nu) for _ in range(d)] for _ in range(d)
        ]

    @staticmethod
    def _per_row(prior, d: int, name: str) -> list:
        if isinstance(prior, (list, tuple)):
            if len(prior) != d:
                raise ValueError(f"{name} must have one entry per row ({d}). Got {len(prior)}")
            return list(prior)
        return [prior] * d

    def draw(self) -> None:
        Nu = self.model.Nu.copy()
        for s in range(self.model.dim):
            def target(nu: NDArray[np.float64], s: int = s) -> float:
                return dirichlet_log_posterior(
                    nu,
                    lambda v: self.model.row_loglike(s, v),
                    self.phi_priors[s],
                    self.alpha_priors[s],
                )

            Nu[s] = _slice_sample_coordinates(Nu[s], target, self.samplers[s], self.rng)
        self.model.set_Nu(Nu)

    def logpri(self) -> float:
        return float(sum(
            dirichlet_log_posterior(self.model.Nu[s], lambda v: 0.0, self.phi_priors[s], self.alpha_priors[s])
            for s in range(self.model.dim)
        ))
