"""
Posterior sampler base class.

A posterior sampler holds a non-owning reference to the model whose
parameters it updates, owns its prior models, and owns a numpy Generator.
It keeps no other state between draws beyond tuning constants.

Lifecycle:
    sampler = GammaPosteriorSampler(model, mean_prior, alpha_prior, seed=1)
    model.set_method(sampler)
    for _ in range(niter):
        model.sample_posterior()      # calls sampler.draw()
"""

from abc import ABC, abstractmethod

from bayesgibbs.distributions.draws import SeedLike, seed_rng


class PosteriorSampler(ABC):
    """
    Base class for MCMC updates of a model's parameters.

    Attributes
    ----------
    rng : np.random.Generator
        Generator used by every draw this sampler makes.
    """

    def __init__(self, seed: SeedLike = None) -> None:
        self.rng = seed_rng(seed)

    def set_seed(self, seed: SeedLike) -> None:
        """Replace the generator, e.g. to make a chain reproducible."""
        self.rng = seed_rng(seed)

    @abstractmethod
    def draw(self) -> None:
        """Draw new parameter values and write them into the model."""

    @abstractmethod
    def logpri(self) -> float:
        """Log prior density of the model's current parameters."""

    def find_posterior_mode(self) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} cannot locate the posterior mode"
        )
