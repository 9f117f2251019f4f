"""
Hierarchical Gamma model.

Mathematical formulation:
    y_ij ~ Gamma(a_i, a_i / μ_i)     group i, observation j
    μ_i  ~ Gamma(mean prior)
    a_i  ~ Gamma(shape prior)

Each group is summarised by its GammaSuf, so the raw observations never
need to be stored.
"""

import logging
from typing import List, Sequence
import numpy as np

from bayesgibbs.models.base import Model
from bayesgibbs.models.gamma import GammaModel, GammaSuf
from bayesgibbs.models.params import Params

logger = logging.getLogger(__name__)


class HierarchicalGammaModel(Model):
    """
    Per-group Gamma data models sharing Gamma priors on means and shapes.

    Attributes
    ----------
    data_models : list of GammaModel
        One model per group.
    prior_for_mean_parameters : GammaModel
        Prior on the group means μ_i.
    prior_for_shape_parameters : GammaModel
        Prior on the group shapes a_i.
    """

    def __init__(
        self,
        number_of_observations_per_group: Sequence[float],
        sum_of_observations_per_group: Sequence[float],
        sum_of_logs_per_group: Sequence[float],
    ) -> None:
        super().__init__()
        n = np.asarray(number_of_observations_per_group, dtype=np.float64)
        sums = np.asarray(sum_of_observations_per_group, dtype=np.float64)
        sumlogs = np.asarray(sum_of_logs_per_group, dtype=np.float64)
        if not (len(n) == len(sums) == len(sumlogs)):
            raise ValueError("Group summaries must all have the same length")
        if len(n) == 0:
            raise ValueError("At least one group is required")
        self.prior_for_mean_parameters = GammaModel(1.0, 1.0)
        self.prior_for_shape_parameters = GammaModel(1.0, 1.0)
        self.data_models: List[GammaModel] = []
        for i in range(len(n)):
            self.add_data(GammaSuf(n[i], sums[i], sumlogs[i]))
        self._initialize()

    @property
    def number_of_groups(self) -> int:
        """Number of groups, one GammaModel each."""
        return len(self.data_models)

    def data_model(self, i: int) -> GammaModel:
        """Gamma model of group i."""
        return self.data_models[i]

    def params(self) -> List[Params]:
        ans = self.prior_for_mean_parameters.params() + self.prior_for_shape_parameters.params()
        for m in self.data_models:
            ans += m.params()
        return ans

    def add_data(self, suf: GammaSuf) -> None:
        """Add a group summarised by its sufficient statistics."""
        model = GammaModel(1.0, 1.0)
        model.suf.combine(suf)
        self._data.append(suf)
        self.data_models.append(model)

    def clear_data(self) -> None:
        self._data = []
        self.data_models = []

    def _initialize(self) -> None:
        """Method-of-moments start for every group, then the priors."""
        means, shapes = [], []
        for model in self.data_models:
            alpha, beta = model.method_of_moments()
            if np.isfinite(alpha) and alpha > 0 and beta > 0:
                model.set_alpha(alpha)
                model.set_beta(beta)
            means.append(model.mean)
            shapes.append(model.alpha)
        self.prior_for_mean_parameters.set_shape_and_mean(1.0, float(np.mean(means)))
        self.prior_for_shape_parameters.set_shape_and_mean(1.0, float(np.mean(shapes)))
        logger.debug("Initialized %d groups", self.number_of_groups)

    def loglike(self) -> float:
        """Log likelihood of the data and the group parameters."""
        ans = 0.0
        for model in self.data_models:
            ans += model.loglike()
            ans += self.prior_for_mean_parameters.logp(model.mean)
            ans += self.prior_for_shape_parameters.logp(model.alpha)
        return float(ans)

    def __repr__(self) -> str:
        return f"HierarchicalGammaModel(groups={self.number_of_groups})"
