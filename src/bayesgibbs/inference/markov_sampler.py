"""
Conjugate sampler for a Markov chain's transition matrix.

Each row of Q has an independent Dirichlet prior, so given the transition
counts N:
    Q_s | N ~ Dirichlet(Nu_s + N_s)
The initial distribution π₀ is drawn only when the model leaves it free:
    π₀ | init ~ Dirichlet(nu + init)
"""

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.distributions.draws import SeedLike, ddirichlet, mdirichlet, rdirichlet
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.dirichlet import DirichletModel, ProductDirichletModel
from bayesgibbs.models.markov import MarkovModel


class MarkovConjSampler(PosteriorSampler):
    """
    Draws Q (and π₀ when it is free) from the Dirichlet full conditionals.

    Attributes
    ----------
    model : MarkovModel
        Chain whose parameters are updated.
    Q_prior : ProductDirichletModel
        Row-wise Dirichlet prior on Q.
    pi0_prior : DirichletModel or None
        Prior on π₀. Supplying one frees π₀ in the model.
    """

    def __init__(
        self,
        model: MarkovModel,
        Q_prior: ProductDirichletModel,
        pi0_prior: Optional[DirichletModel] = None,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        S = model.state_space_size
        if Q_prior.dim != S:
            raise ValueError(f"Q_prior has dimension {Q_prior.dim}, chain has {S} states")
        if pi0_prior is not None and pi0_prior.dim != S:
            raise ValueError(f"pi0_prior has dimension {pi0_prior.dim}, chain has {S} states")
        self.model = model
        self.Q_prior = Q_prior
        self.pi0_prior = pi0_prior
        if pi0_prior is not None:
            model.free_pi0()

    @property
    def Nu(self) -> NDArray[np.float64]:
        return self.Q_prior.Nu

    @property
    def nu(self) -> NDArray[np.float64]:
        """Prior concentration for π₀."""
        if self.pi0_prior is None:
            raise RuntimeError("No prior was supplied for the initial distribution")
        return self.pi0_prior.nu

    def _check_pi0_prior(self) -> None:
        if not self.model.pi0_fixed and self.pi0_prior is None:
            raise RuntimeError(
                "The initial distribution is free but has no prior. "
                "Fix pi0 or supply pi0_prior."
            )

    def draw(self) -> None:
        self._check_pi0_prior()
        counts = self.model.suf.trans
        Q = np.vstack([
            rdirichlet(self.Nu[s] + counts[s], self.rng)
            for s in range(self.model.state_space_size)
        ])
        self.model.set_Q(Q, validate=False)
        if not self.model.pi0_fixed:
            self.model.set_pi0(rdirichlet(self.nu + self.model.suf.init, self.rng))

    def logpri(self) -> float:
        ans = self.Q_prior.logp(self.model.Q)
        if not self.model.pi0_fixed:
            ans += ddirichlet(self.model.pi0, self.nu)
        return float(ans)

    def find_posterior_mode(self) -> None:
        self._check_pi0_prior()
        counts = self.model.suf.trans
        Q = np.vstack([
            mdirichlet(self.Nu[s] + counts[s])
            for s in range(self.model.state_space_size)
        ])
        self.model.set_Q(Q, validate=False)
        if not self.model.pi0_fixed:
            self.model.set_pi0(mdirichlet(self.nu + self.model.suf.init))

    def __repr__(self) -> str:
        return (
            f"MarkovConjSampler(S={self.model.state_space_size}, "
            f"pi0_fixed={self.model.pi0_fixed})"
        )
