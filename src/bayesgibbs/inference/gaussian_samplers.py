"""
Conjugate samplers for the univariate Gaussian model.

Priors are expressed on the precision 1/σ² as a GammaModel(a, b):
    1/σ² | y ~ Gamma(a + n/2, b + SS(μ)/2)
and on the mean as a Gaussian:
    μ | y, σ² ~ N(mean_n, 1/ivar_n),  ivar_n = 1/τ² + n/σ²
An optional upper limit on σ truncates the precision draw from below.
"""

from typing import Sequence
import numpy as np

from bayesgibbs.distributions.draws import SeedLike, dgamma, rgamma
from bayesgibbs.distributions.truncated import rtrun_gamma
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.models.gaussian import GaussianModel


def draw_precision(
    prior: GammaModel,
    n: float,
    sumsq: float,
    rng: np.random.Generator,
    sigma_upper_limit: float = np.inf,
) -> float:
    """
    Draw 1/σ² from its Gamma full conditional.

    Parameters
    ----------
    prior : GammaModel
        Prior on 1/σ².
    n : float
        Number of observations.
    sumsq : float
        Residual sum of squares.
    sigma_upper_limit : float
        σ is constrained to be at most this value.

    Returns
    -------
    float
        Precision draw.
    """
    a = prior.alpha + 0.5 * n
    b = prior.beta + 0.5 * sumsq
    if np.isfinite(sigma_upper_limit):
        return rtrun_gamma(a, b, 1.0 / sigma_upper_limit ** 2, rng)
    return rgamma(a, b, rng)


def sigsq_log_prior(prior: GammaModel, sigsq: float) -> float:
    """Log density of σ² implied by a Gamma prior on 1/σ²."""
    if sigsq <= 0:
        return -np.inf
    return dgamma(1.0 / sigsq, prior.alpha, prior.beta) - 2.0 * np.log(sigsq)


def _check_sigma_upper_limit(sigma_upper_limit: float) -> float:
    if sigma_upper_limit <= 0:
        raise ValueError(f"sigma_upper_limit must be positive. Got {sigma_upper_limit}")
    return float(sigma_upper_limit)


class GaussianMeanSampler(PosteriorSampler):
    """Draws μ given σ² under a N(mu0, τ²) prior."""

    def __init__(
        self,
        model: GaussianModel,
        mean_prior: GaussianModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.mean_prior = mean_prior

    def _posterior(self):
        suf = self.model.suf
        ivar = 1.0 / self.mean_prior.sigsq + suf.n / self.model.sigsq
        mean = (self.mean_prior.mu / self.mean_prior.sigsq + suf.sum / self.model.sigsq) / ivar
        return mean, ivar

    def draw(self) -> None:
        mean, ivar = self._posterior()
        self.model.set_mu(self.rng.normal(mean, 1.0 / np.sqrt(ivar)))

    def logpri(self) -> float:
        return self.mean_prior.logp(self.model.mu)

    def find_posterior_mode(self) -> None:
        self.model.set_mu(self._posterior()[0])

    def __repr__(self) -> str:
        return f"GaussianMeanSampler(prior={self.mean_prior})"


class GaussianVarSampler(PosteriorSampler):
    """Draws σ² given μ under a Gamma prior on 1/σ²."""

    def __init__(
        self,
        model: GaussianModel,
        siginv_prior: GammaModel,
        sigma_upper_limit: float = np.inf,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.siginv_prior = siginv_prior
        self.sigma_upper_limit = _check_sigma_upper_limit(sigma_upper_limit)

    def set_sigma_upper_limit(self, sigma_upper_limit: float) -> None:
        """Bound σ above. Raises ValueError if the limit is not positive."""
        self.sigma_upper_limit = _check_sigma_upper_limit(sigma_upper_limit)

    def draw(self) -> None:
        suf = self.model.suf
        siginv = draw_precision(
            self.siginv_prior,
            suf.n,
            suf.centered_sumsq(self.model.mu),
            self.rng,
            self.sigma_upper_limit,
        )
        self.model.set_sigsq(1.0 / siginv)

    def logpri(self) -> float:
        if self.model.sigma > self.sigma_upper_limit:
            return -np.inf
        return sigsq_log_prior(self.siginv_prior, self.model.sigsq)

    def find_posterior_mode(self) -> None:
        suf = self.model.suf
        a = self.siginv_prior.alpha + 0.5 * suf.n
        b = self.siginv_prior.beta + 0.5 * suf.centered_sumsq(self.model.mu)
        # Mode of the precision; the mean when the mode sits at zero.
        siginv = (a - 1.0) / b if a > 1 else a / b
        self.model.set_sigsq(1.0 / siginv)

    def __repr__(self) -> str:
        return f"GaussianVarSampler(prior={self.siginv_prior})"


class GaussianConjSampler(PosteriorSampler):
    """
    Joint draw of (μ, σ²) under the normal-inverse-gamma prior.

    Prior:
        1/σ² ~ Gamma(df/2, ss/2),  ss = sigma_guess² · df
        μ | σ² ~ N(mu0, σ²/κ)

    Posterior, with ȳ the sample mean and S = Σ(y - ȳ)²:
        κ_n = κ + n,   μ_n = (κ mu0 + n ȳ) / κ_n
        df_n = df + n, ss_n = ss + S + κ n (ȳ - mu0)² / κ_n
    """

    def __init__(
        self,
        model: GaussianModel,
        mu0: float = 0.0,
        kappa: float = 1.0,
        df: float = 1.0,
        sigma_guess: float = 1.0,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.set_conjugate_prior(mu0, kappa, df, sigma_guess)

    def set_conjugate_prior(
        self,
        mu0: float,
        kappa: float,
        df: float,
        sigma_guess: float,
    ) -> None:
        """
        Set the normal-inverse-gamma prior.

            μ | σ² ~ N(mu0, σ² / kappa),   1 / σ² ~ Gamma(df / 2, ss / 2)

        with ss = df * sigma_guess².

        Parameters
        ----------
        mu0 : float
            Prior mean of μ.
        kappa : float
            Prior sample size for μ.
        df : float
            Prior sample size for σ².
        sigma_guess : float
            Prior guess at σ.

        Raises
        ------
        ValueError
            If kappa, df or sigma_guess is not positive.
        """
        if kappa <= 0 or df <= 0 or sigma_guess <= 0:
            raise ValueError("kappa, df and sigma_guess must all be positive")
        self.mu0 = float(mu0)
        self.kappa = float(kappa)
        self.df = float(df)
        self.ss = float(sigma_guess) ** 2 * self.df

    def _posterior(self):
        suf = self.model.suf
        n = suf.n
        ybar = suf.ybar()
        kappa_n = self.kappa + n
        mu_n = (self.kappa * self.mu0 + n * ybar) / kappa_n
        df_n = self.df + n
        ss_n = (
            self.ss
            + suf.centered_sumsq(ybar)
            + self.kappa * n * (ybar - self.mu0) ** 2 / kappa_n
        )
        return mu_n, kappa_n, df_n, ss_n

    def draw(self) -> None:
        mu_n, kappa_n, df_n, ss_n = self._posterior()
        siginv = rgamma(0.5 * df_n, 0.5 * ss_n, self.rng)
        sigsq = 1.0 / siginv
        self.model.set_sigsq(sigsq)
        self.model.set_mu(self.rng.normal(mu_n, np.sqrt(sigsq / kappa_n)))

    def logpri(self) -> float:
        sigsq = self.model.sigsq
        resid = self.model.mu - self.mu0
        ans = dgamma(1.0 / sigsq, 0.5 * self.df, 0.5 * self.ss)
        ans += -0.5 * (np.log(2 * np.pi * sigsq / self.kappa) + self.kappa * resid ** 2 / sigsq)
        return float(ans)

    def find_posterior_mode(self) -> None:
        mu_n, _, df_n, ss_n = self._posterior()
        # Joint mode in (μ, 1/σ²).
        siginv = (df_n - 1.0) / ss_n if df_n > 1 else df_n / ss_n
        self.model.set_mu(mu_n)
        self.model.set_sigsq(1.0 / siginv)

    def __repr__(self) -> str:
        return (
            f"GaussianConjSampler(mu0={self.mu0:.4g}, kappa={self.kappa:.4g}, "
            f"df={self.df:.4g}, ss={self.ss:.4g})"
        )


class SharedSigsqSampler(PosteriorSampler):
    """
    Draws a variance shared by several Gaussian models.

    Every model must hold the same UnivParams object as its variance.
    The residual sums of squares of all models are pooled.
    """

    def __init__(
        self,
        models: Sequence[GaussianModel],
        siginv_prior: GammaModel,
        sigma_upper_limit: float = np.inf,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        models = list(models)
        if not models:
            raise ValueError("At least one model is required")
        shared = models[0].sigsq_prm
        if any(m.sigsq_prm is not shared for m in models):
            raise ValueError("All models must share one variance parameter")
        self.models = models
        self.siginv_prior = siginv_prior
        self.sigma_upper_limit = _check_sigma_upper_limit(sigma_upper_limit)

    def draw(self) -> None:
        n = sum(m.suf.n for m in self.models)
        ss = sum(m.suf.centered_sumsq(m.mu) for m in self.models)
        siginv = draw_precision(self.siginv_prior, n, ss, self.rng, self.sigma_upper_limit)
        self.models[0].set_sigsq(1.0 / siginv)

    def logpri(self) -> float:
        return sigsq_log_prior(self.siginv_prior, self.models[0].sigsq)

    def __repr__(self) -> str:
        return f"SharedSigsqSampler(models={len(self.models)})"


class GaussianMeanVarSampler(PosteriorSampler):
    """
    Gibbs sampler alternating GaussianMeanSampler and GaussianVarSampler.

    Use when the priors on μ and σ² are independent rather than
    conjugate.
    """

    def __init__(
        self,
        model: GaussianModel,
        mean_prior: GaussianModel,
        siginv_prior: GammaModel,
        sigma_upper_limit: float = np.inf,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.mean_sampler = GaussianMeanSampler(model, mean_prior, seed=self.rng)
        self.var_sampler = GaussianVarSampler(
            model, siginv_prior, sigma_upper_limit, seed=self.rng
        )

    def set_seed(self, seed: SeedLike) -> None:
        """Reseed, and share the new generator with the mean and variance samplers."""
        super().set_seed(seed)
        self.mean_sampler.rng = self.rng
        self.var_sampler.rng = self.rng

    def draw(self) -> None:
        self.mean_sampler.draw()
        self.var_sampler.draw()

    def logpri(self) -> float:
        return self.mean_sampler.logpri() + self.var_sampler.logpri()
