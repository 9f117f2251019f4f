"""
Data augmentation samplers for multinomial choice models.

MLAuxMixSampler (multinomial logit). Utilities are z_im = η_im + ε_im
with standard Gumbel errors, and the chosen category has the largest
utility. Given η, the exponentials W_im = exp(-z_im) are drawn exactly:
the smallest, belonging to the chosen category, is Exp(Σ_m λ_im) with
λ_im = exp(η_im), and every other W_im exceeds it by an independent
Exp(λ_im). Each Gumbel error is then replaced by a draw from a fitted
normal mixture, which turns the update of β_m into a weighted normal
regression.

MnpSampler (multinomial probit). Utilities have unit-variance normal
errors and are updated one at a time from truncated normals so that the
chosen utility stays the largest.
"""

from functools import lru_cache
import logging
import numpy as np

from bayesgibbs.distributions.draws import SeedLike, dmvn_ivar, rmvn_suf
from bayesgibbs.distributions.normal_mixture import NegLogGamma, NormalMixtureApproximation
from bayesgibbs.distributions.truncated import rtrun_norm
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.multinomial import ChoiceModel, MultinomialLogitModel, MultinomialProbitModel
from bayesgibbs.models.mvn import MvnModel
from bayesgibbs.models.regression import RegSuf, WeightedRegSuf

logger = logging.getLogger(__name__)

EULER_GAMMA = 0.5772156649015329


@lru_cache(maxsize=None)
def gumbel_mixture(number_of_components: int = 5) -> NormalMixtureApproximation:
    """
    Normal mixture approximation to the standard Gumbel density.

    -log of an Exp(1) variate is NegLogGamma(1). The fit is computed once
    per process.
    """
    k = number_of_components
    approximation = NormalMixtureApproximation.fit(
        NegLogGamma(1.0),
        EULER_GAMMA + np.linspace(-1.5, 2.5, k),
        np.linspace(0.6, 1.6, k),
        np.full(k, 1.0 / k),
        precision=1e-6,
        max_evaluations=5000,
        initial_stepsize=0.5,
    )
    logger.info(
        "Fitted %d component Gumbel mixture, KL = %.3g",
        k,
        approximation.kullback_leibler,
    )
    return approximation


class ChoiceSampler(PosteriorSampler):
    """Shared prior handling for samplers of ChoiceModel coefficients."""

    def __init__(
        self,
        model: ChoiceModel,
        prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if prior.dim != model.xdim:
            raise ValueError(
                f"Prior dimension {prior.dim} does not match {model.xdim} predictors"
            )
        self.model = model
        self.prior = prior

    def _draw_rows(self, sufs) -> None:
        """Draw β_m for every non-baseline choice from its regression statistic."""
        Ominv = self.prior.siginv()
        Ominv_mu = Ominv @ self.prior.mu
        beta = np.vstack([
            rmvn_suf(Ominv + suf.xtx, Ominv_mu + suf.xty, self.rng) for suf in sufs
        ])
        self.model.set_beta(beta)

    def logpri(self) -> float:
        Ominv = self.prior.siginv()
        return float(sum(dmvn_ivar(row, self.prior.mu, Ominv) for row in self.model.beta))


class MLAuxMixSampler(ChoiceSampler):
    """
    Auxiliary mixture sampler for the multinomial logit model.

    Attributes
    ----------
    sufs : list of WeightedRegSuf
        Imputed regression data for choices 1, …, M-1.
    mixture : NormalMixtureApproximation
        Approximation to the Gumbel error distribution.
    """

    def __init__(
        self,
        model: MultinomialLogitModel,
        prior: MvnModel,
        number_of_mixture_components: int = 5,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)
        self.mixture = gumbel_mixture(number_of_mixture_components)
        self.sufs = [WeightedRegSuf(model.xdim) for _ in range(model.nchoices - 1)]

    def impute_latent_data(self) -> None:
        """
        Impute minimum-Gumbel utilities for every non-baseline choice.

        Each utility is then matched to a normal mixture component. The
        component's mean shifts the response and its variance sets the weight
        in that choice's regression statistics.
        """
        for suf in self.sufs:
            suf.clear()
        y, X = self.model.choices_and_design()
        eta = self.model.eta(X)
        M = self.model.nchoices
        for i in range(len(y)):
            lam = np.exp(eta[i])
            smallest = self.rng.exponential(1.0 / lam.sum())
            for m in range(1, M):
                if m == y[i]:
                    w = smallest
                else:
                    w = smallest + self.rng.exponential(1.0 / lam[m])
                z = -np.log(w)
                mu, sigsq = self.mixture.unmix(z - eta[i, m], self.rng)
                self.sufs[m - 1].add_data(z - mu, X[i], 1.0 / sigsq)

    def draw(self) -> None:
        self.impute_latent_data()
        self._draw_rows(self.sufs)

    def __repr__(self) -> str:
        return f"MLAuxMixSampler(nchoices={self.model.nchoices})"


class MnpSampler(ChoiceSampler):
    """
    Gibbs sampler for the multinomial probit model.

    The latent utilities persist between draws. They are rebuilt when the
    data change size.
    """

    def __init__(
        self,
        model: MultinomialProbitModel,
        prior: MvnModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(model, prior, seed)
        self.utilities = np.zeros((0, model.nchoices))
        self.sufs = [RegSuf(model.xdim) for _ in range(model.nchoices - 1)]

    def _initialize_utilities(self, y, eta) -> None:
        u = eta.copy()
        for i in range(len(y)):
            others = np.delete(u[i], y[i])
            u[i, y[i]] = max(u[i, y[i]], others.max() + 1.0)
        self.utilities = u

    def impute_latent_data(self) -> None:
        """
        Update each utility from its truncated normal full conditional.

        The chosen utility stays above every other. Refills one regression
        statistic per non-baseline choice.
        """
        y, X = self.model.choices_and_design()
        eta = self.model.eta(X)
        if self.utilities.shape != eta.shape:
            self._initialize_utilities(y, eta)
        u = self.utilities
        M = self.model.nchoices
        for i in range(len(y)):
            chosen = y[i]
            for m in range(M):
                if m == chosen:
                    lo = np.delete(u[i], chosen).max()
                    u[i, m] = rtrun_norm(eta[i, m], 1.0, lo, np.inf, self.rng)
                else:
                    u[i, m] = rtrun_norm(eta[i, m], 1.0, -np.inf, u[i, chosen], self.rng)
        for suf in self.sufs:
            suf.clear()
        for i in range(len(y)):
            for m in range(1, M):
                self.sufs[m - 1].add_data(u[i, m], X[i])

    def draw(self) -> None:
        self.impute_latent_data()
        self._draw_rows(self.sufs)

    def __repr__(self) -> str:
        return f"MnpSampler(nchoices={self.model.nchoices})"
