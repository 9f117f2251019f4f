"""
Gamma-Poisson conjugate samplers.

With a Gamma(a, b) prior on the rate λ:
    Poisson counts:   λ | y ~ Gamma(a + Σy, b + n)
    Poisson process:  λ | events ~ Gamma(a + #events, b + exposure)
"""

from bayesgibbs.distributions.draws import SeedLike, rgamma
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.models.point_process import HomogeneousPoissonProcess
from bayesgibbs.models.poisson import PoissonModel


def _gamma_mode(a: float, b: float) -> float:
    """Mode of Gamma(a, b); the mean when the mode is on the boundary."""
    return (a - 1.0) / b if a > 1 else a / b


class PoissonGammaSampler(PosteriorSampler):
    """
    Draws the rate of a PoissonModel.

    Attributes
    ----------
    model : PoissonModel
        Model whose rate is updated.
    prior : GammaModel
        Prior on λ.
    """

    def __init__(
        self,
        model: PoissonModel,
        prior: GammaModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.model = model
        self.prior = prior

    def posterior_parameters(self):
        """(shape, rate) of the Gamma full conditional."""
        suf = self.model.suf
        return self.prior.alpha + suf.sum, self.prior.beta + suf.n

    def draw(self) -> None:
        a, b = self.posterior_parameters()
        self.model.set_lam(rgamma(a, b, self.rng))

    def logpri(self) -> float:
        return self.prior.logp(self.model.lam)

    def find_posterior_mode(self) -> None:
        self.model.set_lam(_gamma_mode(*self.posterior_parameters()))

    def __repr__(self) -> str:
        return f"PoissonGammaSampler(prior={self.prior})"


class PoissonProcessGammaSampler(PosteriorSampler):
    """Draws the rate of a HomogeneousPoissonProcess."""

    def __init__(
        self,
        process: HomogeneousPoissonProcess,
        prior: GammaModel,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        self.process = process
        self.prior = prior

    def posterior_parameters(self):
        """(shape, rate) of the Gamma full conditional: (α + events, β + exposure)."""
        suf = self.process.suf
        return self.prior.alpha + suf.number_of_events, self.prior.beta + suf.exposure

    def draw(self) -> None:
        a, b = self.posterior_parameters()
        self.process.set_lam(rgamma(a, b, self.rng))

    def logpri(self) -> float:
        return self.prior.logp(self.process.lam)

    def find_posterior_mode(self) -> None:
        self.process.set_lam(_gamma_mode(*self.posterior_parameters()))

    def __repr__(self) -> str:
        return f"PoissonProcessGammaSampler(prior={self.prior})"
