"""
Data augmentation sampler for ordinal (cumulative logit) regression.

Latent z_i = x_iᵀβ + ε_i with logistic ε_i, and y_i = k exactly when
c_k < z_i <= c_{k+1} for cutpoints c = (-∞, 0, δ_1, …, δ_{K-2}, ∞).
A sweep draws
    z, λ | β, δ, y    truncated logistic, then the Holmes-Held scale
    β | z, λ          weighted normal regression
    δ | z, y          each free cutpoint uniform on the gap between the
                      largest z in the category below it and the
                      smallest z in the category above it
"""

import numpy as np
from numpy.typing import NDArray

from bayesgibbs.distributions.draws import SeedLike, dmvn_ivar, rmvn_suf
from bayesgibbs.distributions.logit_lambda import draw_lambda_mixing_weight
from bayesgibbs.distributions.truncated import rtrun_logis
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.glm import CumulativeLogitModel
from bayesgibbs.models.mvn import MvnModel
from bayesgibbs.models.regression import WeightedRegSuf


class CumulativeLogitSampler(PosteriorSampler):
    """
    Draws β and the free cutpoints of a CumulativeLogitModel.

    Attributes
    ----------
    model : CumulativeLogitModel
        Model to update.
    prior : MvnModel
        Normal prior on β. The cutpoints have a flat prior.
    """

    def __init__(
        self,
        model: CumulativeLogitModel,
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
        self.latent = np.zeros(0)

    def impute_latent_data(self) -> None:
        """
        Draw each z_i from a logistic truncated to the interval of category y_i.

        The draws are kept in self.latent for draw_delta.
        """
        self.suf.clear()
        y, X = self.model.response_and_design()
        y = y.astype(np.int64)
        cuts = self.model.cutpoints()
        eta = X @ self.model.beta
        self.latent = np.zeros(len(y))
        for i in range(len(y)):
            z = rtrun_logis(eta[i], cuts[y[i]], cuts[y[i] + 1], self.rng)
            lam = draw_lambda_mixing_weight(abs(z - eta[i]), self.rng)
            self.suf.add_data(z, X[i], 1.0 / lam)
            self.latent[i] = z

    def draw_beta(self) -> None:
        Ominv = self.prior.siginv()
        ivar = Ominv + self.suf.xtx
        ivar_mu = Ominv @ self.prior.mu + self.suf.xty
        self.model.set_beta(rmvn_suf(ivar, ivar_mu, self.rng))

    def _category_extremes(self, y: NDArray[np.int64]):
        """Largest and smallest latent value in each category."""
        K = self.model.nlevels
        largest = np.full(K, -np.inf)
        smallest = np.full(K, np.inf)
        for k in range(K):
            z = self.latent[y == k]
            if len(z):
                largest[k] = z.max()
                smallest[k] = z.min()
        return largest, smallest

    def draw_delta(self) -> None:
        """
        Draw each free cutpoint uniformly between the latent values on either side.

        δ_k is bounded by the neighbouring cutpoints, the largest latent value in
        category k and the smallest in category k + 1. A cutpoint whose interval
        is empty keeps its value.
        """
        y, _ = self.model.response_and_design()
        y = y.astype(np.int64)
        largest, smallest = self._category_extremes(y)
        cuts = self.model.cutpoints()
        # cuts[k + 1] separates category k from k + 1; cuts[1] = 0 is fixed.
        for k in range(1, self.model.nlevels - 1):
            lo = max(cuts[k], largest[k])
            hi = min(cuts[k + 2], smallest[k + 1])
            if np.isfinite(lo) and np.isfinite(hi) and lo < hi:
                cuts[k + 1] = self.rng.uniform(lo, hi)
        self.model.set_delta(cuts[2:-1])

    def draw(self) -> None:
        self.impute_latent_data()
        self.draw_beta()
        self.draw_delta()

    def logpri(self) -> float:
        return dmvn_ivar(self.model.beta, self.prior.mu, self.prior.siginv())

    def __repr__(self) -> str:
        return f"CumulativeLogitSampler(nlevels={self.model.nlevels})"
