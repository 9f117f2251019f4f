"""
Slice samplers for Gamma models.

The Gamma shape has no conjugate prior, so both parameters are updated
one at a time with ScalarSliceSampler. Two parameterisations are offered:

    GammaPosteriorSampler      (mean, α) with β = α / mean
    GammaPosteriorSamplerBeta  (mean, β) with α = mean · β

The priors are arbitrary DoubleModels on the positive half line.
HierarchicalGammaSampler applies the first form to each group of a
HierarchicalGammaModel and then to the two Gamma priors the groups share.
"""

import logging
from typing import List
import numpy as np

from bayesgibbs.distributions.draws import SeedLike
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.base import DoubleModel
from bayesgibbs.models.gamma import GammaModel, GammaSuf, gamma_log_likelihood
from bayesgibbs.models.hierarchical import HierarchicalGammaModel
from bayesgibbs.samplers.slice import ScalarSliceSampler

logger = logging.getLogger(__name__)


class GammaPosteriorSampler(PosteriorSampler):
    """
    Draws (α, mean) of a GammaModel.

    Attributes
    ----------
    model : GammaModel
        Model whose parameters are updated.
    mean_prior : DoubleModel
        Prior on the mean α / β.
    alpha_prior : DoubleModel
        Prior on the shape α.
    """

    def __init__(
        self,
        model: GammaModel,
        mean_prior: DoubleModel,
        alpha_prior: DoubleModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.mean_prior = mean_prior
        self.alpha_prior = alpha_prior
        self.alpha_sampler = ScalarSliceSampler(self._alpha_log_posterior, lower=0.0)
        self.mean_sampler = ScalarSliceSampler(self._mean_log_posterior, lower=0.0)
        self._mean = model.mean
        self._alpha = model.alpha

    def _alpha_log_posterior(self, alpha: float) -> float:
        if alpha <= 0:
            return -np.inf
        ans = self.alpha_prior.logp(alpha)
        if not np.isfinite(ans):
            return -np.inf
        return ans + gamma_log_likelihood(alpha, alpha / self._mean, self.model.suf)[0]

    def _mean_log_posterior(self, mean: float) -> float:
        if mean <= 0:
            return -np.inf
        ans = self.mean_prior.logp(mean)
        if not np.isfinite(ans):
            return -np.inf
        return ans + gamma_log_likelihood(self._alpha, self._alpha / mean, self.model.suf)[0]

    def draw(self) -> None:
        self._mean = self.model.mean
        self._alpha = self.alpha_sampler.draw(self.model.alpha, self.rng)
        self._mean = self.mean_sampler.draw(self._mean, self.rng)
        self.model.set_shape_and_mean(self._alpha, self._mean)

    def logpri(self) -> float:
        return float(self.mean_prior.logp(self.model.mean) + self.alpha_prior.logp(self.model.alpha))

    def __repr__(self) -> str:
        return f"GammaPosteriorSampler(mean_prior={self.mean_prior}, alpha_prior={self.alpha_prior})"


class GammaPosteriorSamplerBeta(PosteriorSampler):
    """Draws (mean, β) of a GammaModel with priors on the mean and on β."""

    def __init__(
        self,
        model: GammaModel,
        mean_prior: DoubleModel,
        beta_prior: DoubleModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.mean_prior = mean_prior
        self.beta_prior = beta_prior
        self.mean_sampler = ScalarSliceSampler(self._mean_log_posterior, lower=0.0)
        self.beta_sampler = ScalarSliceSampler(self._beta_log_posterior, lower=0.0)
        self._mean = model.mean
        self._beta = model.beta

    def _mean_log_posterior(self, mean: float) -> float:
        if mean <= 0:
            return -np.inf
        ans = self.mean_prior.logp(mean)
        if not np.isfinite(ans):
            return -np.inf
        return ans + gamma_log_likelihood(mean * self._beta, self._beta, self.model.suf)[0]

    def _beta_log_posterior(self, beta: float) -> float:
        if beta <= 0:
            return -np.inf
        ans = self.beta_prior.logp(beta)
        if not np.isfinite(ans):
            return -np.inf
        return ans + gamma_log_likelihood(self._mean * beta, beta, self.model.suf)[0]

    def draw(self) -> None:
        self._beta = self.model.beta
        self._mean = self.mean_sampler.draw(self.model.mean, self.rng)
        self._beta = self.beta_sampler.draw(self._beta, self.rng)
        self.model.set_beta(self._beta)
        self.model.set_alpha(self._mean * self._beta)

    def logpri(self) -> float:
        return float(self.mean_prior.logp(self.model.mean) + self.beta_prior.logp(self.model.beta))


class HierarchicalGammaSampler(PosteriorSampler):
    """
    Gibbs sweep over a HierarchicalGammaModel.

    1. Each group's (α_i, mean_i) given its data and the shared priors.
    2. The prior on the group means, treating the mean_i as its data.
    3. The prior on the group shapes, treating the α_i as its data.

    Attributes
    ----------
    mean_mean_prior, mean_shape_prior : DoubleModel
        Hyperpriors on the mean and shape of prior_for_mean_parameters.
    shape_mean_prior, shape_shape_prior : DoubleModel
        Hyperpriors on the mean and shape of prior_for_shape_parameters.
    """

    def __init__(
        self,
        model: HierarchicalGammaModel,
        mean_mean_prior: DoubleModel,
        mean_shape_prior: DoubleModel,
        shape_mean_prior: DoubleModel,
        shape_shape_prior: DoubleModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.mean_prior_sampler = GammaPosteriorSampler(
            model.prior_for_mean_parameters, mean_mean_prior, mean_shape_prior, seed=self.rng
        )
        self.shape_prior_sampler = GammaPosteriorSampler(
            model.prior_for_shape_parameters, shape_mean_prior, shape_shape_prior, seed=self.rng
        )
        self._group_samplers: List[GammaPosteriorSampler] = []

    def set_seed(self, seed: SeedLike) -> None:
        """Reseed, and share the new generator with the prior and group samplers."""
        super().set_seed(seed)
        self.mean_prior_sampler.rng = self.rng
        self.shape_prior_sampler.rng = self.rng
        for sampler in self._group_samplers:
            sampler.rng = self.rng

    def _group_sampler_list(self) -> List[GammaPosteriorSampler]:
        if len(self._group_samplers) != self.model.number_of_groups:
            self._group_samplers = [
                GammaPosteriorSampler(
                    data_model,
                    self.model.prior_for_mean_parameters,
                    self.model.prior_for_shape_parameters,
                    seed=self.rng,
                )
                for data_model in self.model.data_models
            ]
        return self._group_samplers

    @staticmethod
    def _refresh_prior_suf(prior: GammaModel, values: List[float]) -> None:
        values = np.asarray(values, dtype=np.float64)
        prior.suf = GammaSuf(len(values), values.sum(), np.log(values).sum())

    def draw(self) -> None:
        for sampler in self._group_sampler_list():
            sampler.draw()
        means = [m.mean for m in self.model.data_models]
        shapes = [m.alpha for m in self.model.data_models]
        self._refresh_prior_suf(self.model.prior_for_mean_parameters, means)
        self.mean_prior_sampler.draw()
        self._refresh_prior_suf(self.model.prior_for_shape_parameters, shapes)
        self.shape_prior_sampler.draw()
        logger.debug(
            "Hyperparameters: mean prior %s, shape prior %s",
            self.model.prior_for_mean_parameters,
            self.model.prior_for_shape_parameters,
        )

    def logpri(self) -> float:
        """Log density of the hyperparameters under the hyperpriors."""
        return self.mean_prior_sampler.logpri() + self.shape_prior_sampler.logpri()

    def __repr__(self) -> str:
        return f"HierarchicalGammaSampler(groups={self.model.number_of_groups})"
