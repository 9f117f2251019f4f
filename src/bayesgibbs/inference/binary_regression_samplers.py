"""
Data augmentation samplers for logistic and probit regression.

One draw is a sweep over three full conditionals:

1. Impute a latent utility z_i for every observation,
       z_i = x_iᵀβ + ε_i,   y_i = 1 exactly when z_i > 0.
   Logit: ε_i is logistic, represented as N(0, λ_i) with λ_i drawn from
   its Holmes-Held full conditional given the residual |z_i - η_i|.
   Probit: ε_i is N(0, 1).
2. Accumulate (z_i, x_i, 1/λ_i) in a weighted regression statistic.
3. Draw the included coefficients from their multivariate normal full
   conditional
       precision = Ω⁻¹ + XᵀWX,   precision · mean = Ω⁻¹μ + XᵀWz.

The Bma variants put a VariableSelectionPrior on the inclusion vector γ
and, between steps 2 and 3, run a stochastic search that flips
inclusion indicators one at a time in random order. γ is drawn with β
integrated out, using the marginal log posterior

    log p(γ) + ½ log|Ω_γ⁻¹| - ½ μ_γᵀΩ_γ⁻¹μ_γ
             - Σ log diag(L) + ½ ‖L⁻¹(XᵀWz + Ω_γ⁻¹μ)_γ‖²

where L Lᵀ = (Ω⁻¹ + XᵀWX)_γ.
"""

import logging
from typing import Optional
import numpy as np
from scipy.linalg import solve_triangular
from scipy.special import expit

from bayesgibbs.distributions.draws import SeedLike, dmvn_ivar, rmvn_suf
from bayesgibbs.distributions.logit_lambda import draw_lambda_mixing_weight
from bayesgibbs.distributions.truncated import rtrun_logis, rtrun_norm
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.linalg import cholesky, logdet
from bayesgibbs.models.glm import BinaryRegressionModel, LogisticRegressionModel, ProbitRegressionModel
from bayesgibbs.models.mvn import MvnModel
from bayesgibbs.models.regression import WeightedRegSuf
from bayesgibbs.models.selector import Selector, VariableSelectionPrior

logger = logging.getLogger(__name__)


class LatentRegressionSampler(PosteriorSampler):
    """
    Shared coefficient draw for augmentation samplers.

    Subclasses implement impute_latent_data(), which refills self.suf.

    Attributes
    ----------
    model : BinaryRegressionModel
        Model whose included coefficients are updated.
    prior : MvnModel
        Normal prior on the full coefficient vector.
    suf : WeightedRegSuf
        Latent data from the most recent imputation.
    """

    def __init__(
        self,
        model: BinaryRegressionModel,
        prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if prior.dim != model.xdim:
            raise ValueError(
                f"Prior dimension {prior.dim} does not match {model.xdim} coefficients"
            )
        self.model = model
        self.prior = prior
        self.suf = WeightedRegSuf(model.xdim)

    def impute_latent_data(self) -> None:
        """Refill self.suf with freshly imputed latent data."""
        raise NotImplementedError

    def _prior_terms(self, inc: Selector):
        """(Ω_γ⁻¹, μ_γ) for the included coefficients."""
        return inc.select_square(self.prior.siginv()), inc.select(self.prior.mu)

    def draw_beta(self) -> None:
        """Draw the included coefficients given the latent data (Gaussian full conditional)."""
        inc = self.model.inc
        Ominv, mu = self._prior_terms(inc)
        ivar = Ominv + inc.select_square(self.suf.xtx)
        ivar_mu = Ominv @ mu + inc.select(self.suf.xty)
        self.model.coef.set_included_coefficients(rmvn_suf(ivar, ivar_mu, self.rng))

    def draw(self) -> None:
        self.impute_latent_data()
        self.draw_beta()

    def logpri(self) -> float:
        inc = self.model.inc
        Ominv, mu = self._prior_terms(inc)
        return dmvn_ivar(inc.select(self.model.beta), mu, Ominv)


class LogitSampler(LatentRegressionSampler):
    """Holmes-Held auxiliary mixture sampler for logistic regression."""

    def __init__(
        self,
        model: LogisticRegressionModel,
        prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)

    def impute_latent_data(self) -> None:
        """
        Draw each z_i from a logistic truncated to the side of 0 that y_i
        selects, then its normal variance λ_i.
        """
        self.suf.clear()
        y, X = self.model.response_and_design()
        offset = self.model.offset()
        eta = self.model.linear_predictor(X)
        for i in range(len(y)):
            if y[i] > 0:
                z = rtrun_logis(eta[i], 0.0, np.inf, self.rng)
            else:
                z = rtrun_logis(eta[i], -np.inf, 0.0, self.rng)
            lam = draw_lambda_mixing_weight(abs(z - eta[i]), self.rng)
            self.suf.add_data(z - offset, X[i], 1.0 / lam)


class ProbitSampler(LatentRegressionSampler):
    """Albert-Chib sampler for probit regression."""

    def __init__(
        self,
        model: ProbitRegressionModel,
        prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)

    def impute_latent_data(self) -> None:
        """Draw z_i ~ N(x_iᵀβ, 1) truncated to the side of 0 that y_i selects."""
        self.suf.clear()
        y, X = self.model.response_and_design()
        eta = self.model.linear_predictor(X)
        for i in range(len(y)):
            if y[i] > 0:
                z = rtrun_norm(eta[i], 1.0, 0.0, np.inf, self.rng)
            else:
                z = rtrun_norm(eta[i], 1.0, -np.inf, 0.0, self.rng)
            self.suf.add_data(z, X[i], 1.0)


class ModelSelectionMixin:
    """
    Stochastic search over inclusion vectors.

    Mixed into a LatentRegressionSampler; needs self.vs_prior and
    self.max_flips.
    """

    vs_prior: VariableSelectionPrior
    max_flips: int

    def _init_model_selection(
        self,
        vs_prior: VariableSelectionPrior,
        max_flips: Optional[int],
    ) -> None:
        if vs_prior.nvars_possible != self.model.xdim:
            raise ValueError(
                f"Variable selection prior covers {vs_prior.nvars_possible} "
                f"positions, model has {self.model.xdim}"
            )
        if max_flips is None:
            max_flips = self.model.xdim
        if max_flips < 0:
            raise ValueError(f"max_flips must be non-negative. Got {max_flips}")
        self.vs_prior = vs_prior
        self.max_flips = int(max_flips)

    def log_model_prob(self, inc: Selector) -> float:
        """Log posterior of an inclusion vector with β integrated out."""
        ans = self.vs_prior.logp(inc)
        if not np.isfinite(ans) or inc.nvars == 0:
            return ans
        Ominv, mu = self._prior_terms(inc)
        Ominv_mu = Ominv @ mu
        ans += 0.5 * logdet(Ominv) - 0.5 * float(mu @ Ominv_mu)
        L, ok = cholesky(Ominv + inc.select_square(self.suf.xtx))
        if not ok:
            return -np.inf
        w = solve_triangular(L, inc.select(self.suf.xty) + Ominv_mu, lower=True)
        ans -= np.log(np.diag(L)).sum() - 0.5 * float(w @ w)
        return float(ans)

    def draw_gamma(self) -> None:
        """
        Propose flipping up to max_flips randomly chosen inclusion flags.

        Each flip is accepted with probability p(γ') / (p(γ) + p(γ')), with β
        integrated out of p(γ). The accepted vector is installed in the model.

        Raises
        ------
        RuntimeError
            If the model's current inclusion vector has zero posterior
            probability under vs_prior.
        """
        if self.max_flips == 0:
            return
        inc = self.model.inc.copy()
        logp_old = self.log_model_prob(inc)
        if not np.isfinite(logp_old):
            raise RuntimeError(
                f"Starting inclusion vector {inc} has zero posterior probability"
            )
        order = self.rng.permutation(inc.nvars_possible)
        accepted = 0
        for i in order[: min(inc.nvars_possible, self.max_flips)]:
            inc.flip(int(i))
            logp_new = self.log_model_prob(inc)
            if np.isfinite(logp_new) and self.rng.uniform() < expit(logp_new - logp_old):
                logp_old = logp_new
                accepted += 1
            else:
                inc.flip(int(i))
        logger.debug("Accepted %d inclusion flips, %d variables in", accepted, inc.nvars)
        self._install(inc)

    def _install(self, inc: Selector) -> None:
        coef = self.model.coef
        for i in range(inc.nvars_possible):
            if inc.inc(i) and not coef.inc.inc(i):
                coef.add(i)
            elif not inc.inc(i) and coef.inc.inc(i):
                coef.drop(i)

    def draw(self) -> None:
        self.impute_latent_data()
        self.draw_gamma()
        self.draw_beta()

    def logpri(self) -> float:
        ans = self.vs_prior.logp(self.model.inc)
        if not np.isfinite(ans):
            return -np.inf
        return ans + super().logpri()


class LogitSamplerBma(ModelSelectionMixin, LogitSampler):
    """
    LogitSampler with spike-and-slab variable selection.

    Parameters
    ----------
    model : LogisticRegressionModel
        Model to update. Its Selector is changed in place.
    prior : MvnModel
        Slab: prior on the full coefficient vector.
    vs_prior : VariableSelectionPrior
        Spike: prior on the inclusion vector.
    max_flips : int, optional
        Number of indicators proposed per sweep; defaults to every
        position, 0 disables the search.
    """

    def __init__(
        self,
        model: LogisticRegressionModel,
        prior: MvnModel,
        vs_prior: VariableSelectionPrior,
        max_flips: Optional[int] = None,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)
        self._init_model_selection(vs_prior, max_flips)


class ProbitSamplerBma(ModelSelectionMixin, ProbitSampler):
    """ProbitSampler with spike-and-slab variable selection."""

    def __init__(
        self,
        model: ProbitRegressionModel,
        prior: MvnModel,
        vs_prior: VariableSelectionPrior,
        max_flips: Optional[int] = None,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)
        self._init_model_selection(vs_prior, max_flips)
