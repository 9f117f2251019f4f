"""
Composite and finite mixture models.

A CompositeModel treats each datum as a tuple whose slices are modeled
independently by its sub-models:
    log p(d_1, …, d_J) = Σ_j log p_j(d_j)

A FiniteMixtureModel combines EM mixture components with weights π:
    p(y) = Σ_k π_k p_k(y)
One EM step computes responsibilities r_ik ∝ π_k p_k(y_i) (E-step), feeds
every datum to every component with weight r_ik, and maximizes each
component (M-step).
"""

import logging
from typing import Any, List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp

from bayesgibbs.models.base import EmMixtureComponent, LoglikeModel, Model
from bayesgibbs.models.params import Params, VectorParams

logger = logging.getLogger(__name__)


class CompositeModel(Model):
    """
    Product of independent sub-models over the slices of a tuple datum.

    Attributes
    ----------
    models : list of Model
        Sub-models, one per slice. Each must provide pdf(datum, logscale).
    """

    def __init__(self, models: Sequence[Model]) -> None:
        super().__init__()
        if len(models) == 0:
            raise ValueError("A composite model needs at least one sub-model")
        self.models = list(models)

    def params(self) -> List[Params]:
        return [p for m in self.models for p in m.params()]

    def _split(self, datum: Sequence[Any]) -> Sequence[Any]:
        if len(datum) != len(self.models):
            raise ValueError(
                f"Composite datum has {len(datum)} parts, expected {len(self.models)}"
            )
        return datum

    def add_data(self, datum: Sequence[Any]) -> None:
        """
        Store a tuple datum and pass each slice to its sub-model.

        Parameters
        ----------
        datum : Sequence[Any]
            One part per sub-model, in the order of models.

        Raises
        ------
        ValueError
            If the number of parts differs from the number of sub-models.
        """
        parts = self._split(datum)
        self._data.append(tuple(parts))
        for model, part in zip(self.models, parts):
            model.add_data(part)

    def clear_data(self) -> None:
        self._data = []
        for model in self.models:
            model.clear_data()

    def clear_suf(self) -> None:
        for model in self.models:
            model.clear_suf()

    def pdf(self, datum: Sequence[Any], logscale: bool = False) -> float:
        """Product of the sub-model densities of the slices."""
        parts = self._split(datum)
        ans = 0.0
        for model, part in zip(self.models, parts):
            ans += model.pdf(part, logscale=True)
        return float(ans) if logscale else float(np.exp(ans))

    def logp(self, datum: Sequence[Any]) -> float:
        return self.pdf(datum, logscale=True)

    def simulate(self, rng: np.random.Generator) -> Tuple[Any, ...]:
        return tuple(model.simulate(rng) for model in self.models)

    def sample_posterior(self) -> None:
        """Draw every sub-model's parameters, then any composite-level sampler."""
        for model in self.models:
            model.sample_posterior()
        for method in self._methods:
            method.draw()

    def logpri(self) -> float:
        ans = sum(model.logpri() for model in self.models)
        ans += sum(method.logpri() for method in self._methods)
        return float(ans)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(n_models={len(self.models)})"


class CompositeEmMixtureComponent(CompositeModel, EmMixtureComponent):
    """CompositeModel usable as a finite mixture component."""

    def __init__(self, models: Sequence[EmMixtureComponent]) -> None:
        super().__init__(models)

    def add_mixture_data(self, datum: Sequence[Any], prob: float) -> None:
        """Give every sub-model its slice with responsibility prob."""
        parts = self._split(datum)
        for model, part in zip(self.models, parts):
            model.add_mixture_data(part, prob)

    def mle(self) -> None:
        """Maximum likelihood for each sub-model independently."""
        for model in self.models:
            model.mle()

    def find_posterior_mode(self) -> None:
        for model in self.models:
            model.find_posterior_mode()


class FiniteMixtureModel(Model, LoglikeModel):
    """
    Finite mixture of EM mixture components.

    Attributes
    ----------
    components : list of EmMixtureComponent
        Mixture components. Their sufficient statistics are overwritten by
        each EM step.
    weights_prm : VectorParams
        Mixing weights π, summing to 1.
    """

    def __init__(
        self,
        components: Sequence[EmMixtureComponent],
        weights: Optional[NDArray[np.float64]] = None,
    ) -> None:
        super().__init__()
        if len(components) == 0:
            raise ValueError("A mixture needs at least one component")
        self.components = list(components)
        K = len(self.components)
        if weights is None:
            weights = np.full(K, 1.0 / K)
        weights = np.asarray(weights, dtype=np.float64)
        self._check_weights(weights, K)
        self.weights_prm = VectorParams(weights)

    @staticmethod
    def _check_weights(weights: NDArray[np.float64], K: int) -> None:
        if len(weights) != K:
            raise ValueError(f"Expected {K} weights, got {len(weights)}")
        if np.any(weights < 0) or not np.isclose(weights.sum(), 1.0):
            raise ValueError("Mixture weights must be non-negative and sum to 1")

    def params(self) -> List[Params]:
        return [self.weights_prm] + [p for c in self.components for p in c.params()]

    @property
    def weights(self) -> NDArray[np.float64]:
        """Mixing weights π."""
        return self.weights_prm.value

    def set_weights(self, weights: NDArray[np.float64]) -> None:
        """
        Set the mixing weights.

        Parameters
        ----------
        weights : NDArray[np.float64]
            One non-negative value per component, summing to 1.

        Raises
        ------
        ValueError
            If the length is wrong or the values are not a probability vector.
        """
        weights = np.asarray(weights, dtype=np.float64)
        self._check_weights(weights, len(self.components))
        self.weights_prm.set(weights)

    def _component_log_densities(self, datum: Any) -> NDArray[np.float64]:
        with np.errstate(divide="ignore"):
            log_w = np.log(self.weights)
        return log_w + np.array([c.pdf(datum, logscale=True) for c in self.components])

    def responsibilities(self, datum: Any) -> NDArray[np.float64]:
        """Posterior component probabilities for one datum."""
        logp = self._component_log_densities(datum)
        return np.exp(logp - logsumexp(logp))

    def pdf(self, datum: Any, logscale: bool = False) -> float:
        """Mixture density Σ_k π_k p_k(datum)."""
        ans = float(logsumexp(self._component_log_densities(datum)))
        return ans if logscale else float(np.exp(ans))

    def loglike(self) -> float:
        return float(sum(self.pdf(d, logscale=True) for d in self._data))

    def em_step(self) -> float:
        """
        One EM iteration.

        Returns
        -------
        float
            Log likelihood at the parameters used in the E-step.
        """
        for c in self.components:
            c.clear_suf()
        counts = np.zeros(len(self.components))
        loglike = 0.0
        for datum in self._data:
            logp = self._component_log_densities(datum)
            total = logsumexp(logp)
            loglike += total
            resp = np.exp(logp - total)
            counts += resp
            for c, r in zip(self.components, resp):
                c.add_mixture_data(datum, r)
        for c in self.components:
            c.mle()
        if counts.sum() > 0:
            self.set_weights(counts / counts.sum())
        return float(loglike)

    def run_em(self, max_iterations: int = 500, tolerance: float = 1e-8) -> float:
        """
        Iterate EM until the log likelihood gain falls below tolerance.

        Returns
        -------
        float
            Final log likelihood.
        """
        previous = -np.inf
        for iteration in range(max_iterations):
            current = self.em_step()
            if abs(current - previous) < tolerance:
                logger.info("EM converged after %d iterations", iteration + 1)
                return self.loglike()
            previous = current
        logger.warning("EM did not converge in %d iterations", max_iterations)
        return self.loglike()

    def simulate(self, rng: np.random.Generator) -> Any:
        """Draw a component from π, then a datum from it."""
        k = int(rng.choice(len(self.components), p=self.weights))
        return self.components[k].simulate(rng)

    def __repr__(self) -> str:
        return f"FiniteMixtureModel(n_components={len(self.components)})"
