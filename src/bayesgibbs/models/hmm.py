"""
Hidden Markov model over arbitrary mixture components.

Mathematical formulation:
    s_t | s_{t-1} ~ Q[s_{t-1}, ·],   s_0 ~ π₀
    y_t | s_t     ~ p_{s_t}(y_t)

Data are independent streams y = (y_0, …, y_{T-1}). The forward filter
uses the scaled recursion
    π_t(s) ∝ Σ_r π_{t-1}(r) Q[r, s] p_s(y_t)
and accumulates the log likelihood from the normalizing constants.
Posterior sampling imputes the hidden states by forward filtering and
backward sampling (see inference.hmm_imputer). EM uses the smoothed
marginals as responsibilities.
"""

import logging
from typing import Any, List, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.models.base import EmMixtureComponent, LoglikeModel, Model
from bayesgibbs.models.markov import MarkovModel
from bayesgibbs.models.params import Params

logger = logging.getLogger(__name__)


def log_density_matrix(
    components: Sequence[EmMixtureComponent],
    stream: Sequence[Any],
) -> NDArray[np.float64]:
    """logf[t, s] = log p_s(y_t)."""
    return np.array([
        [c.pdf(y, logscale=True) for c in components] for y in stream
    ], dtype=np.float64).reshape(len(stream), len(components))


def forward_filter(
    Q: NDArray[np.float64],
    pi0: NDArray[np.float64],
    logf: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], float]:
    """
    Scaled forward recursion.

    Returns
    -------
    filtered : NDArray[np.float64]
        filtered[t] = p(s_t | y_0, …, y_t), shape (T, S).
    loglike : float
        log p(y_0, …, y_{T-1}).
    """
    T, S = logf.shape
    filtered = np.zeros((T, S))
    loglike = 0.0
    prior = pi0
    for t in range(T):
        m = logf[t].max()
        if not np.isfinite(m):
            return filtered, -np.inf
        joint = prior * np.exp(logf[t] - m)
        total = joint.sum()
        if total <= 0:
            return filtered, -np.inf
        loglike += m + np.log(total)
        filtered[t] = joint / total
        prior = filtered[t] @ Q
    return filtered, float(loglike)


def backward_sample(
    Q: NDArray[np.float64],
    filtered: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.int64]:
    """Draw a state path from p(s | y) given the forward filter output."""
    T, S = filtered.shape
    states = np.zeros(T, dtype=np.int64)
    if T == 0:
        return states
    states[-1] = rng.choice(S, p=filtered[-1] / filtered[-1].sum())
    for t in range(T - 2, -1, -1):
        probs = filtered[t] * Q[:, states[t + 1]]
        states[t] = rng.choice(S, p=probs / probs.sum())
    return states


def forward_backward(
    Q: NDArray[np.float64],
    pi0: NDArray[np.float64],
    logf: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64], float]:
    """
    Smoothed marginals and expected transition counts.

    Returns
    -------
    marginals : NDArray[np.float64]
        p(s_t | all y), shape (T, S).
    transitions : NDArray[np.float64]
        Σ_t p(s_{t-1} = r, s_t = s | all y), shape (S, S).
    loglike : float
    """
    filtered, loglike = forward_filter(Q, pi0, logf)
    T, S = logf.shape
    marginals = np.zeros((T, S))
    transitions = np.zeros((S, S))
    if T == 0 or not np.isfinite(loglike):
        return marginals, transitions, loglike
    marginals[-1] = filtered[-1]
    for t in range(T - 1, 0, -1):
        predicted = filtered[t - 1] @ Q
        ratio = np.divide(
            marginals[t], predicted, out=np.zeros(S), where=predicted > 0
        )
        joint = filtered[t - 1][:, np.newaxis] * Q * ratio[np.newaxis, :]
        transitions += joint
        marginals[t - 1] = joint.sum(axis=1)
    return marginals, transitions, loglike


class HiddenMarkovModel(Model, LoglikeModel):
    """
    Hidden Markov model with a MarkovModel for the latent chain.

    Attributes
    ----------
    markov : MarkovModel
        Latent chain. Its sufficient statistics receive the imputed (or
        expected) transitions.
    components : list of EmMixtureComponent
        Observation model for each state.
    """

    def __init__(
        self,
        markov: MarkovModel,
        components: Sequence[EmMixtureComponent],
    ) -> None:
        super().__init__()
        if len(components) != markov.state_space_size:
            raise ValueError(
                f"Need {markov.state_space_size} components, got {len(components)}"
            )
        self.markov = markov
        self.components = list(components)

    @property
    def state_space_size(self) -> int:
        """Number of hidden states S."""
        return self.markov.state_space_size

    def params(self) -> List[Params]:
        return self.markov.params() + [p for c in self.components for p in c.params()]

    def add_data(self, stream: Sequence[Any]) -> None:
        """
        Store one observation sequence.

        Streams are modelled as independent realizations of the chain. The
        component statistics are filled only by EM or the data imputer,
        because the states are hidden.

        Parameters
        ----------
        stream : Sequence[Any]
            Observations in time order, each in the form the components accept.
        """
        self._data.append(list(stream))

    def clear_suf(self) -> None:
        self.markov.clear_suf()
        for c in self.components:
            c.clear_suf()

    def stream_loglike(self, stream: Sequence[Any]) -> float:
        """Log likelihood of one stream, with the hidden states summed out."""
        logf = log_density_matrix(self.components, stream)
        return forward_filter(self.markov.Q, self.markov.pi0, logf)[1]

    def loglike(self) -> float:
        return float(sum(self.stream_loglike(s) for s in self._data))

    def impute_stream(self, stream: Sequence[Any], rng: np.random.Generator):
        """
        Forward filter, backward sample one stream.

        Returns
        -------
        states : NDArray[np.int64]
        loglike : float
        """
        logf = log_density_matrix(self.components, stream)
        filtered, loglike = forward_filter(self.markov.Q, self.markov.pi0, logf)
        if not np.isfinite(loglike):
            raise RuntimeError("Stream has zero probability under the current parameters")
        return backward_sample(self.markov.Q, filtered, rng), loglike

    def em_step(self) -> float:
        """
        One Baum-Welch iteration.

        Returns
        -------
        float
            Log likelihood at the parameters used in the E-step.
        """
        self.clear_suf()
        Q, pi0 = self.markov.Q, self.markov.pi0
        total = 0.0
        for stream in self._data:
            logf = log_density_matrix(self.components, stream)
            marginals, transitions, loglike = forward_backward(Q, pi0, logf)
            total += loglike
            if len(stream) == 0:
                continue
            self.markov.suf.add_initial_distribution(marginals[0])
            self.markov.suf.add_transition_distribution(transitions)
            for t, y in enumerate(stream):
                for s, c in enumerate(self.components):
                    if marginals[t, s] > 0:
                        c.add_mixture_data(y, marginals[t, s])
        self.markov.mle()
        for c in self.components:
            c.mle()
        logger.debug("Baum-Welch step on %d streams, loglike %.6g", len(self._data), total)
        return float(total)

    def sample_posterior(self) -> None:
        """Impute hidden states, then draw the chain and every component."""
        if not self._methods:
            raise RuntimeError("HiddenMarkovModel has no data imputer assigned")
        for method in self._methods:
            method.draw()
        self.markov.sample_posterior()
        for c in self.components:
            c.sample_posterior()

    def logpri(self) -> float:
        return float(self.markov.logpri() + sum(c.logpri() for c in self.components))

    def simulate(self, rng: np.random.Generator, length: int = 1):
        """
        Simulate a stream.

        Returns
        -------
        states : NDArray[np.int64]
        observations : list
        """
        states = self.markov.simulate(rng, length)
        return states, [self.components[s].simulate(rng) for s in states]

    def __repr__(self) -> str:
        return f"HiddenMarkovModel(S={self.state_space_size}, streams={len(self._data)})"
