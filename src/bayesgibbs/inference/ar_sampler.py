"""
Posterior sampler for the AR(p) model.

The prior on φ is uniform over the stationary region and the prior on
1/σ² is Gamma(a, b). Given σ², φ is normal with mean φ̂ = (XᵀX)⁻¹Xᵀy and
precision XᵀX / σ², restricted to the stationary region. A joint draw is
proposed up to max_proposals times; if none is stationary the
coefficients are drawn one at a time from truncated normals.
"""

import logging
import numpy as np
from scipy.special import comb

from bayesgibbs.distributions.draws import SeedLike, rmvn_ivar
from bayesgibbs.distributions.truncated import rtrun_norm
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.inference.gaussian_samplers import draw_precision, sigsq_log_prior
from bayesgibbs.linalg import cholesky
from bayesgibbs.models.ar import ArModel, is_stationary
from bayesgibbs.models.gamma import GammaModel

logger = logging.getLogger(__name__)


class ArPosteriorSampler(PosteriorSampler):
    """
    Draws (φ, σ²) for an ArModel.

    Attributes
    ----------
    siginv_prior : GammaModel
        Prior on 1/σ².
    max_proposals : int
        Joint proposals tried before the univariate fallback.
    sigma_upper_limit : float
        Upper limit on σ.
    """

    def __init__(
        self,
        model: ArModel,
        siginv_prior: GammaModel,
        max_proposals: int = 3,
        sigma_upper_limit: float = np.inf,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if max_proposals < 0:
            raise ValueError(f"max_proposals must be non-negative. Got {max_proposals}")
        self.model = model
        self.siginv_prior = siginv_prior
        self.max_proposals = int(max_proposals)
        self.sigma_upper_limit = np.inf
        self.set_sigma_upper_limit(sigma_upper_limit)

    def set_sigma_upper_limit(self, sigma_upper_limit: float) -> None:
        """
        Bound σ above; draws beyond it are rejected.

        Parameters
        ----------
        sigma_upper_limit : float
            Largest allowed innovation standard deviation. np.inf for none.

        Raises
        ------
        ValueError
            If sigma_upper_limit is not positive.
        """
        if sigma_upper_limit <= 0:
            raise ValueError(f"sigma_upper_limit must be positive. Got {sigma_upper_limit}")
        self.sigma_upper_limit = float(sigma_upper_limit)

    def draw(self) -> None:
        self.draw_phi()
        self.draw_sigma()

    def draw_phi(self) -> None:
        """
        Draw φ from its Gaussian full conditional restricted to the stationary region.

        Tries up to max_proposals unconstrained draws. If none is stationary,
        falls back to draw_phi_univariate.
        """
        suf = self.model.suf
        _, ok = cholesky(suf.xtx)
        if ok:
            phi_hat = suf.beta_hat()
            ivar = suf.xtx / self.model.sigsq
            for _ in range(self.max_proposals):
                phi = rmvn_ivar(phi_hat, ivar, self.rng)
                if is_stationary(phi):
                    self.model.set_phi(phi)
                    return
        logger.debug("Joint AR proposal failed, drawing coefficients one at a time")
        self.draw_phi_univariate()

    def draw_phi_univariate(self) -> None:
        """
        Draw each φ_j from its truncated normal full conditional.

        Candidates that leave the stationary region shrink the interval
        toward the current value, which is stationary.
        """
        suf = self.model.suf
        sigsq = self.model.sigsq
        phi = self.model.phi.copy()
        if not is_stationary(phi):
            raise RuntimeError("AR sampler requires a stationary starting value")
        for j in range(len(phi)):
            initial = phi[j]
            # Stationarity bounds |φ_j| by the binomial coefficient C(p, j + 1).
            hi = float(comb(len(phi), j + 1))
            lo = -hi
            xtx_jj = suf.xtx[j, j]
            if xtx_jj > 0:
                mean = (suf.xty[j] - suf.xtx[j] @ phi + xtx_jj * phi[j]) / xtx_jj
                sd = np.sqrt(sigsq / xtx_jj)
            while hi - lo > 1e-10:
                if xtx_jj > 0:
                    candidate = rtrun_norm(mean, sd, lo, hi, self.rng)
                else:
                    candidate = self.rng.uniform(lo, hi)
                phi[j] = candidate
                if is_stationary(phi):
                    break
                if candidate < initial:
                    lo = candidate
                else:
                    hi = candidate
            else:
                phi[j] = initial
        self.model.set_phi(phi)

    def draw_sigma(self) -> None:
        """Draw σ² from its conjugate full conditional given φ."""
        suf = self.model.suf
        siginv = draw_precision(
            self.siginv_prior,
            suf.n,
            suf.sse(self.model.phi),
            self.rng,
            self.sigma_upper_limit,
        )
        self.model.set_sigsq(1.0 / siginv)

    def logpri(self) -> float:
        if not is_stationary(self.model.phi) or self.model.sigma > self.sigma_upper_limit:
            return -np.inf
        return sigsq_log_prior(self.siginv_prior, self.model.sigsq)

    def __repr__(self) -> str:
        return (
            f"ArPosteriorSampler(max_proposals={self.max_proposals}, "
            f"sigma_upper_limit={self.sigma_upper_limit})"
        )
