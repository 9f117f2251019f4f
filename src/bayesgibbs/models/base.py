"""
Core model abstractions: sufficient statistics, models and capabilities.

A model is composed of three owned parts rather than layered policies:
    params   - list of Params objects (see params.py)
    suf      - a SufficientStatistic, or None for data-free models
    methods  - the posterior samplers that update the parameters

Capabilities are separate abstract classes that a model mixes in only
when it can provide them:
    DoubleModel       logp(x) for scalar data
    DiffDoubleModel   logp_derivatives(x, nd), derivatives w.r.t. x
    LoglikeModel      loglike() at the current parameters
    DiffLoglikeModel  log_likelihood(theta, nd) with gradient / Hessian
    EmMixtureComponent add_mixture_data, mle, find_posterior_mode, pdf
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.models.params import Params, VectorSource, as_iterator
from bayesgibbs.samplers.optimization import OptimizationResult, newton_maximize


class SufficientStatistic(ABC):
    """
    Incrementally updatable summary of a data set.

    The value after any permutation of the same observations is the
    same, and combining statistics built on disjoint partitions equals
    accumulating the union directly.
    """

    @abstractmethod
    def clear(self) -> None:
        """Reset to the statistic of an empty data set."""

    @abstractmethod
    def update(self, datum: Any) -> None:
        """Add one full-weight observation."""

    @abstractmethod
    def update_with_weight(self, datum: Any, prob: float) -> None:
        """Add an observation with fractional weight prob (EM)."""

    @abstractmethod
    def combine(self, other: "SufficientStatistic") -> None:
        """Add the contents of another statistic of the same type."""

    @abstractmethod
    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        """Flatten to a numeric vector."""

    @abstractmethod
    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        """Restore from the output of to_vector."""

    def add_mixture_data(self, datum: Any, prob: float) -> None:
        """Same as update_with_weight; lets a statistic stand in for an EM component."""
        self.update_with_weight(datum, prob)

    def clone_empty(self) -> "SufficientStatistic":
        """An independent cleared copy, for per-worker accumulation."""
        ans = copy.deepcopy(self)
        ans.clear()
        return ans

    def _check_same_type(self, other: "SufficientStatistic") -> None:
        if type(other) is not type(self):
            raise ValueError(
                f"Cannot combine {type(self).__name__} with {type(other).__name__}"
            )


class Model(ABC):
    """
    Base class for probability models.

    Subclasses set self.suf in their constructor (or leave it None) and
    implement params().
    """

    def __init__(self) -> None:
        self.suf: Optional[SufficientStatistic] = None
        self._data: List[Any] = []
        self._methods: List[Any] = []

    @abstractmethod
    def params(self) -> List[Params]:
        """The model's parameter objects, in serialization order."""

    # ---- data ----
    @property
    def data(self) -> List[Any]:
        """Observations added since the last clear_data(), in order."""
        return self._data

    def add_data(self, datum: Any) -> None:
        """
        Store one observation and fold it into the sufficient statistic.

        Parameters
        ----------
        datum : Any
            One observation in the form the model's suf.update() accepts.
        """
        self._data.append(datum)
        if self.suf is not None:
            self.suf.update(datum)

    def set_data(self, data: Sequence[Any]) -> None:
        """Replace the stored data (and statistic) with data."""
        self.clear_data()
        for datum in data:
            self.add_data(datum)

    def clear_data(self) -> None:
        """Drop the stored data and reset the statistic."""
        self._data = []
        if self.suf is not None:
            self.suf.clear()

    def clear_suf(self) -> None:
        """Reset the sufficient statistic without touching the stored data."""
        if self.suf is not None:
            self.suf.clear()

    def refresh_suf(self) -> None:
        """Rebuild the sufficient statistic from the stored data."""
        if self.suf is None:
            return
        self.suf.clear()
        for datum in self._data:
            self.suf.update(datum)

    # ---- parameters ----
    def vectorize_params(self, minimal: bool = True) -> NDArray[np.float64]:
        """
        Concatenate the vectors of every parameter object.

        Parameters
        ----------
        minimal : bool
            Drop redundant elements (symmetric halves, last probability).

        Returns
        -------
        NDArray[np.float64]
            Parameters in params() order. Empty for a parameter-free model.
        """
        parts = [p.to_vector(minimal) for p in self.params()]
        return np.concatenate(parts) if parts else np.zeros(0)

    def unvectorize_params(self, values: VectorSource, minimal: bool = True) -> None:
        """
        Install parameters from the output of vectorize_params.

        Parameters
        ----------
        values : array-like or iterator
            Parameter values. An iterator is consumed only as far as the
            model needs, so several models can read from one stream.
        minimal : bool
            Must match the flag used by vectorize_params.
        """
        it = as_iterator(values)
        for p in self.params():
            p.from_vector(it, minimal)

    # ---- posterior sampling ----
    def set_method(self, sampler: Any) -> None:
        """Append a posterior sampler; sample_posterior() runs them in order."""
        self._methods.append(sampler)

    def clear_methods(self) -> None:
        self._methods = []

    @property
    def methods(self) -> List[Any]:
        return self._methods

    def sample_posterior(self) -> None:
        """Run one draw of every assigned posterior sampler."""
        if not self._methods:
            raise RuntimeError(
                f"{type(self).__name__} has no posterior sampler assigned"
            )
        for method in self._methods:
            method.draw()

    def logpri(self) -> float:
        """Log prior density of the current parameters."""
        if not self._methods:
            raise RuntimeError(
                f"{type(self).__name__} has no posterior sampler assigned"
            )
        return float(sum(method.logpri() for method in self._methods))

    def find_posterior_mode(self) -> None:
        """Set the parameters to the posterior mode, if a sampler can."""
        if not self._methods:
            raise RuntimeError(
                f"{type(self).__name__} has no posterior sampler assigned"
            )
        self._methods[0].find_posterior_mode()


class DoubleModel(ABC):
    """Capability: log density of a scalar observation."""

    @abstractmethod
    def logp(self, x: float) -> float:
        """Log density at x; -inf outside the support."""

    def pdf(self, x: float, logscale: bool = False) -> float:
        """Density at x, or the log density when logscale is True."""
        ans = self.logp(x)
        return ans if logscale else float(np.exp(ans))

    @abstractmethod
    def simulate(self, rng: np.random.Generator) -> float:
        """Draw one observation."""


class DiffDoubleModel(DoubleModel):
    """Capability: derivatives of the log density with respect to x."""

    @abstractmethod
    def logp_derivatives(self, x: float, nd: int) -> Tuple[float, float, float]:
        """
        Log density and its derivatives at x.

        Returns
        -------
        (logp, d1, d2)
            d1 is meaningful when nd >= 1, d2 when nd >= 2. Unrequested
            derivatives are returned as 0.
        """

    def logp(self, x: float) -> float:
        return self.logp_derivatives(x, 0)[0]


class LoglikeModel(ABC):
    """Capability: log likelihood of the data at the current parameters."""

    @abstractmethod
    def loglike(self) -> float:
        """Log likelihood from the sufficient statistics; -inf if invalid."""


class DiffLoglikeModel(LoglikeModel):
    """
    Capability: log likelihood as a function of a parameter vector theta,
    with gradient and Hessian.

    The default mle() runs Newton's method from mle_starting_value() and
    installs the result with set_likelihood_theta() when its value is
    finite.
    """

    @abstractmethod
    def log_likelihood(
        self,
        theta: NDArray[np.float64],
        nd: int = 0,
    ) -> Tuple[float, Optional[NDArray[np.float64]], Optional[NDArray[np.float64]]]:
        """
        Log likelihood at theta.

        Returns
        -------
        (value, gradient, hessian)
            gradient is None unless nd >= 1, hessian None unless nd >= 2.
            value is -inf outside the parameter space.
        """

    @abstractmethod
    def likelihood_theta(self) -> NDArray[np.float64]:
        """Current parameters in the layout log_likelihood expects."""

    @abstractmethod
    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        """Install parameters given in the log_likelihood layout."""

    def loglike(self) -> float:
        return self.log_likelihood(self.likelihood_theta(), 0)[0]

    def mle_starting_value(self) -> NDArray[np.float64]:
        """Newton start; defaults to the current parameters."""
        return self.likelihood_theta()

    def mle(self) -> OptimizationResult:
        """Maximum likelihood by Newton's method; returns the run's result."""
        result = newton_maximize(
            lambda theta: self.log_likelihood(theta, 2),
            self.mle_starting_value(),
        )
        if np.isfinite(result.value):
            self.set_likelihood_theta(result.x)
        return result


class EmMixtureComponent(ABC):
    """Capability: a component usable in EM and finite mixtures."""

    @abstractmethod
    def add_mixture_data(self, datum: Any, prob: float) -> None:
        """Add datum with responsibility prob to the sufficient statistic."""

    @abstractmethod
    def mle(self) -> Any:
        """Set the parameters to the maximum likelihood estimate."""

    @abstractmethod
    def pdf(self, datum: Any, logscale: bool = False) -> float:
        """Density (or log density) of a datum."""

    @abstractmethod
    def simulate(self, rng: np.random.Generator) -> Any:
        """Draw one datum."""

    @abstractmethod
    def find_posterior_mode(self) -> None:
        """Set the parameters to the posterior mode."""
