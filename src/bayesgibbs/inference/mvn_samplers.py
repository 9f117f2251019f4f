"""
Conjugate samplers for the multivariate normal model.

MvnMeanSampler       μ | Σ with a N(μ₀, Ω) prior
MvnConjMeanSampler   μ | Σ with the conjugate N(μ₀, Σ/κ) prior
MvnVarSampler        Σ⁻¹ | μ with a Wishart(ν, S) prior
MvnIndependentVarianceSampler
                     diagonal Σ with independent Gamma priors on 1/σ_j²
"""

from typing import Optional, Sequence
import numpy as np

from bayesgibbs.distributions.draws import SeedLike, dmvn_ivar, rmvn, rmvn_suf, rwishart
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.inference.gaussian_samplers import draw_precision, sigsq_log_prior
from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.models.mvn import MvnModel
from bayesgibbs.models.wishart import WishartModel


class MvnMeanSampler(PosteriorSampler):
    """
    Draws μ given Σ under an independent normal prior.

        ivar = Ω⁻¹ + n Σ⁻¹
        ivar_mu = Ω⁻¹ μ₀ + Σ⁻¹ Σ_i y_i
    """

    def __init__(
        self,
        model: MvnModel,
        mu_prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if mu_prior.dim != model.dim:
            raise ValueError(f"Prior dimension {mu_prior.dim} != model dimension {model.dim}")
        self.model = model
        self.mu_prior = mu_prior

    def _posterior(self):
        prior_ivar = self.mu_prior.siginv()
        siginv = self.model.siginv()
        suf = self.model.suf
        ivar = prior_ivar + suf.n * siginv
        ivar_mu = prior_ivar @ self.mu_prior.mu + siginv @ suf.sum
        return ivar, ivar_mu

    def draw(self) -> None:
        self.model.set_mu(rmvn_suf(*self._posterior(), self.rng))

    def logpri(self) -> float:
        return self.mu_prior.logp(self.model.mu)

    def find_posterior_mode(self) -> None:
        ivar, ivar_mu = self._posterior()
        self.model.set_mu(np.linalg.solve(ivar, ivar_mu))


class MvnConjMeanSampler(PosteriorSampler):
    """Draws μ | Σ ~ N((κ μ₀ + Σy) / (κ + n), Σ / (κ + n))."""

    def __init__(
        self,
        model: MvnModel,
        mu0: Sequence[float],
        kappa: float = 1.0,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        mu0 = np.asarray(mu0, dtype=np.float64).ravel()
        if len(mu0) != model.dim:
            raise ValueError(f"mu0 has length {len(mu0)}, model dimension is {model.dim}")
        if kappa <= 0:
            raise ValueError(f"kappa must be positive. Got {kappa}")
        self.model = model
        self.mu0 = mu0
        self.kappa = float(kappa)

    def _posterior_mean(self):
        suf = self.model.suf
        kappa_n = self.kappa + suf.n
        return (self.kappa * self.mu0 + suf.sum) / kappa_n, kappa_n

    def draw(self) -> None:
        mean, kappa_n = self._posterior_mean()
        self.model.set_mu(rmvn(mean, self.model.Sigma / kappa_n, self.rng))

    def logpri(self) -> float:
        return dmvn_ivar(self.model.mu, self.mu0, self.kappa * self.model.siginv())

    def find_posterior_mode(self) -> None:
        self.model.set_mu(self._posterior_mean()[0])


class MvnVarSampler(PosteriorSampler):
    """
    Draws Σ⁻¹ | μ ~ Wishart(ν + n, S + Σ(y - μ)(y - μ)ᵀ).

    The prior is a WishartModel on Σ⁻¹ with inverse scale S.
    """

    def __init__(
        self,
        model: MvnModel,
        siginv_prior: WishartModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if siginv_prior.dim != model.dim:
            raise ValueError(
                f"Prior dimension {siginv_prior.dim} != model dimension {model.dim}"
            )
        self.model = model
        self.siginv_prior = siginv_prior

    def _posterior(self):
        suf = self.model.suf
        return (
            self.siginv_prior.nu + suf.n,
            self.siginv_prior.sumsq + suf.center_sumsq(self.model.mu),
        )

    def draw(self) -> None:
        nu, sumsq = self._posterior()
        self.model.set_siginv(rwishart(nu, sumsq, self.rng))

    def logpri(self) -> float:
        return self.siginv_prior.logp(self.model.siginv())

    def find_posterior_mode(self) -> None:
        nu, sumsq = self._posterior()
        k = self.model.dim
        if nu <= k + 1:
            raise RuntimeError("Wishart posterior mode does not exist for nu <= dim + 1")
        # Mode of Σ⁻¹ is (ν - k - 1) S⁻¹, so Σ = S / (ν - k - 1).
        self.model.set_Sigma(sumsq / (nu - k - 1))


class MvnIndependentVarianceSampler(PosteriorSampler):
    """
    Draws a diagonal Σ one element at a time.

    Each 1/σ_j² has its own Gamma prior and optional upper limit on σ_j.
    Off-diagonal elements of Σ are set to zero.
    """

    def __init__(
        self,
        model: MvnModel,
        siginv_priors: Sequence[GammaModel],
        sigma_upper_limits: Optional[Sequence[float]] = None,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        siginv_priors = list(siginv_priors)
        if len(siginv_priors) != model.dim:
            raise ValueError(f"Need {model.dim} priors, got {len(siginv_priors)}")
        if sigma_upper_limits is None:
            sigma_upper_limits = np.full(model.dim, np.inf)
        sigma_upper_limits = np.asarray(sigma_upper_limits, dtype=np.float64)
        if len(sigma_upper_limits) != model.dim or np.any(sigma_upper_limits <= 0):
            raise ValueError(f"Need {model.dim} positive sigma upper limits")
        self.model = model
        self.siginv_priors = siginv_priors
        self.sigma_upper_limits = sigma_upper_limits

    def draw(self) -> None:
        suf = self.model.suf
        sumsq = np.diag(suf.center_sumsq(self.model.mu))
        variances = np.array([
            1.0 / draw_precision(prior, suf.n, sumsq[j], self.rng, self.sigma_upper_limits[j])
            for j, prior in enumerate(self.siginv_priors)
        ])
        self.model.set_Sigma(np.diag(variances))

    def logpri(self) -> float:
        variances = np.diag(self.model.Sigma)
        if np.any(np.sqrt(variances) > self.sigma_upper_limits):
            return -np.inf
        return float(sum(
            sigsq_log_prior(prior, variances[j]) for j, prior in enumerate(self.siginv_priors)
        ))
