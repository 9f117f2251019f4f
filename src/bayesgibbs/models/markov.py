"""
Discrete-time Markov chain model.

States s_t ∈ {0, …, S-1} evolve with transition matrix Q:
    P(s_t = j | s_{t-1} = i) = Q_{ij}
    P(s_0 = j) = π₀_j

Each observation is a sequence of states. The sufficient statistics are
the transition counts N_{ij} and the initial state counts, so
    log L(Q, π₀) = Σ_ij N_ij log Q_ij + Σ_j init_j log π₀_j

By default π₀ is fixed (uniform, or whatever fix_pi0 installed) and the
initial counts do not enter the likelihood.
"""

from typing import List, Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.models.base import EmMixtureComponent, LoglikeModel, Model, SufficientStatistic
from bayesgibbs.models.params import Params, MatrixParams, VectorParams, VectorSource, as_iterator, take


def validate_transition_matrix(Q: NDArray[np.float64]) -> None:
    """
    Check that Q is square and row-stochastic.

    Raises
    ------
    ValueError
        If any check fails.
    """
    if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
        raise ValueError(f"Transition matrix must be square. Got shape {Q.shape}")
    if not np.all((Q >= 0) & (Q <= 1)):
        raise ValueError("All transition probabilities must be in [0, 1]")
    row_sums = Q.sum(axis=1)
    if not np.allclose(row_sums, 1.0, atol=1e-10):
        raise ValueError(f"Each row must sum to 1. Got row sums: {row_sums}")


def stationary_distribution(Q: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Stationary distribution π with π Q = π, Σ π = 1.

    Computed as the left eigenvector of Q for the eigenvalue closest to 1.
    """
    eigenvalues, eigenvectors = np.linalg.eig(Q.T)
    idx = np.argmin(np.abs(eigenvalues - 1.0))
    stationary = np.real(eigenvectors[:, idx])
    return (stationary / stationary.sum()).astype(np.float64)


class MarkovSuf(SufficientStatistic):
    """
    Transition and initial-state counts.

    Vector layout: transition counts (row-major), then initial counts.
    """

    def __init__(self, state_space_size: int) -> None:
        if state_space_size < 1:
            raise ValueError(f"state_space_size must be positive. Got {state_space_size}")
        self.state_space_size = state_space_size
        self.trans = np.zeros((state_space_size, state_space_size))
        self.init = np.zeros(state_space_size)

    def clear(self) -> None:
        S = self.state_space_size
        self.trans = np.zeros((S, S))
        self.init = np.zeros(S)

    def _states(self, sequence: Sequence[int]) -> NDArray[np.int64]:
        states = np.asarray(sequence, dtype=np.int64).ravel()
        if len(states) and (states.min() < 0 or states.max() >= self.state_space_size):
            raise ValueError(
                f"States must lie in [0, {self.state_space_size - 1}]"
            )
        return states

    def update_with_weight(self, sequence: Sequence[int], prob: float) -> None:
        states = self._states(sequence)
        if len(states) == 0:
            return
        self.init[states[0]] += prob
        np.add.at(self.trans, (states[:-1], states[1:]), prob)

    def update(self, sequence: Sequence[int]) -> None:
        self.update_with_weight(sequence, 1.0)

    def add_transition(self, from_state: int, to_state: int, prob: float = 1.0) -> None:
        """Count one transition from_state -> to_state with weight prob."""
        self.trans[from_state, to_state] += prob

    def add_initial_value(self, state: int, prob: float = 1.0) -> None:
        """Count state as the first state of a sequence."""
        self.init[state] += prob

    def add_transition_distribution(self, P: NDArray[np.float64]) -> None:
        """Add expected transition counts (e.g. from a forward-backward pass)."""
        self.trans += P

    def add_initial_distribution(self, pi: NDArray[np.float64]) -> None:
        """Add expected initial-state counts."""
        self.init += pi

    def combine(self, other: "MarkovSuf") -> None:
        self._check_same_type(other)
        self.trans += other.trans
        self.init += other.init

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([self.trans.ravel(), self.init])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        S = self.state_space_size
        it = as_iterator(values)
        self.trans = take(it, S * S).reshape(S, S)
        self.init = take(it, S)

    def __repr__(self) -> str:
        return f"MarkovSuf(S={self.state_space_size}, n_transitions={self.trans.sum():g})"


class MarkovModel(Model, LoglikeModel, EmMixtureComponent):
    """
    Markov chain with transition matrix Q and initial distribution π₀.

    Attributes
    ----------
    Q_prm : MatrixParams
        Transition matrix, row-stochastic.
    pi0_prm : VectorParams
        Initial state distribution.
    pi0_fixed : bool
        When True, π₀ is not estimated and its counts do not enter the
        likelihood.
    suf : MarkovSuf
        Sufficient statistics.
    """

    def __init__(
        self,
        Q: Optional[NDArray[np.float64]] = None,
        state_space_size: Optional[int] = None,
        pi0: Optional[NDArray[np.float64]] = None,
        validate: bool = True,
    ) -> None:
        super().__init__()
        if Q is None:
            if state_space_size is None:
                raise ValueError("Either Q or state_space_size is required")
            S = state_space_size
            Q = np.full((S, S), 1.0 / S)
        Q = np.atleast_2d(np.asarray(Q, dtype=np.float64))
        if validate:
            validate_transition_matrix(Q)
        S = Q.shape[0]
        self.Q_prm = MatrixParams(Q)
        self.pi0_prm = VectorParams(np.full(S, 1.0 / S) if pi0 is None else pi0)
        if len(self.pi0) != S:
            raise ValueError(f"pi0 must have length {S}")
        self.pi0_fixed = True
        self.suf = MarkovSuf(S)

    def params(self) -> List[Params]:
        return [self.Q_prm, self.pi0_prm]

    @property
    def state_space_size(self) -> int:
        """Number of states S."""
        return self.Q.shape[0]

    @property
    def Q(self) -> NDArray[np.float64]:
        """Transition matrix, Q[i, j] = P(s_t = j | s_{t-1} = i)."""
        return self.Q_prm.value

    @property
    def pi0(self) -> NDArray[np.float64]:
        """Distribution of the first state."""
        return self.pi0_prm.value

    def set_Q(self, Q: NDArray[np.float64], validate: bool = True) -> None:
        """
        Set the transition matrix.

        Parameters
        ----------
        Q : NDArray[np.float64]
            Row-stochastic matrix of shape (S, S).
        validate : bool, optional
            Check that Q is square with rows summing to 1. Samplers drawing
            rows from a Dirichlet can skip the check. Default is True.

        Raises
        ------
        ValueError
            If validate is True and Q is not a transition matrix.
        """
        Q = np.asarray(Q, dtype=np.float64)
        if validate:
            validate_transition_matrix(Q)
        self.Q_prm.set(Q)

    def set_pi0(self, pi0: NDArray[np.float64]) -> None:
        """
        Set the initial distribution.

        Raises
        ------
        ValueError
            If pi0 has negative entries or does not sum to 1.
        """
        pi0 = np.asarray(pi0, dtype=np.float64)
        if np.any(pi0 < 0) or not np.isclose(pi0.sum(), 1.0):
            raise ValueError("pi0 must be a probability vector")
        self.pi0_prm.set(pi0)

    def fix_pi0(self, pi0: Optional[NDArray[np.float64]] = None) -> None:
        """Hold π₀ fixed, optionally at a new value."""
        if pi0 is not None:
            self.set_pi0(pi0)
        self.pi0_fixed = True

    def fix_pi0_stationary(self) -> None:
        """Hold π₀ fixed at the stationary distribution of the current Q."""
        self.fix_pi0(self.stationary_distribution())

    def free_pi0(self) -> None:
        """Let π₀ be estimated."""
        self.pi0_fixed = False

    # ---- chain properties ----
    def stationary_distribution(self) -> NDArray[np.float64]:
        """Long-run state probabilities π with π Q = π."""
        return stationary_distribution(self.Q)

    def expected_duration(self, state: int) -> float:
        """
        Expected number of steps spent in a state per visit, 1 / (1 - Q_ii).

        Raises
        ------
        ValueError
            If the state index is out of bounds or the state is absorbing.
        """
        if not (0 <= state < self.state_space_size):
            raise ValueError(f"state must be in {{0, …, {self.state_space_size - 1}}}")
        self_prob = self.Q[state, state]
        if self_prob >= 1.0:
            raise ValueError(
                f"State {state} is absorbing. Expected duration is infinite."
            )
        return 1.0 / (1.0 - self_prob)

    def expected_durations(self) -> NDArray[np.float64]:
        """expected_duration for every state."""
        return np.array([self.expected_duration(s) for s in range(self.state_space_size)])

    def n_step_distribution(
        self,
        n_steps: int,
        initial_dist: Optional[NDArray[np.float64]] = None,
    ) -> NDArray[np.float64]:
        """Distribution of s_n given s_0 ~ initial_dist (default π₀): π₀ Qⁿ."""
        if initial_dist is None:
            initial_dist = self.pi0
        elif len(initial_dist) != self.state_space_size:
            raise ValueError(f"initial_dist must have length {self.state_space_size}")
        return initial_dist @ np.linalg.matrix_power(self.Q, n_steps)

    def simulate(
        self,
        rng: np.random.Generator,
        length: int = 1,
        initial_state: Optional[int] = None,
    ) -> NDArray[np.int64]:
        """
        Simulate a path of states.

        Parameters
        ----------
        rng : np.random.Generator
            Random number generator.
        length : int, optional
            Number of states in the path. Default is 1.
        initial_state : int, optional
            Starting state. Drawn from π₀ if None.
        """
        S = self.state_space_size
        path = np.zeros(length, dtype=np.int64)
        if length == 0:
            return path
        if initial_state is None:
            current = int(rng.choice(S, p=self.pi0))
        else:
            if not (0 <= initial_state < S):
                raise ValueError(f"initial_state must be in {{0, …, {S - 1}}}")
            current = initial_state
        path[0] = current
        for t in range(1, length):
            current = int(rng.choice(S, p=self.Q[current]))
            path[t] = current
        return path

    # ---- likelihood ----
    def logp(self, sequence: Sequence[int]) -> float:
        states = np.asarray(sequence, dtype=np.int64)
        if len(states) == 0:
            return 0.0
        with np.errstate(divide="ignore"):
            ans = np.log(self.pi0[states[0]])
            ans += np.log(self.Q[states[:-1], states[1:]]).sum()
        return float(ans)

    def pdf(self, sequence: Sequence[int], logscale: bool = False) -> float:
        ans = self.logp(sequence)
        return ans if logscale else float(np.exp(ans))

    def loglike(self) -> float:
        with np.errstate(divide="ignore", invalid="ignore"):
            terms = np.where(self.suf.trans > 0, self.suf.trans * np.log(self.Q), 0.0)
            ans = terms.sum()
            if not self.pi0_fixed:
                ans += np.where(self.suf.init > 0, self.suf.init * np.log(self.pi0), 0.0).sum()
        return float(ans)

    def mle(self) -> None:
        """Row-normalized transition counts; rows with no counts are unchanged."""
        Q = self.Q.copy()
        totals = self.suf.trans.sum(axis=1)
        for s in range(self.state_space_size):
            if totals[s] > 0:
                Q[s] = self.suf.trans[s] / totals[s]
        self.set_Q(Q)
        if not self.pi0_fixed and self.suf.init.sum() > 0:
            self.set_pi0(self.suf.init / self.suf.init.sum())

    def add_mixture_data(self, sequence: Sequence[int], prob: float) -> None:
        self.suf.update_with_weight(sequence, prob)

    def __repr__(self) -> str:
        return (
            f"MarkovModel(S={self.state_space_size}, "
            f"stationary={np.round(self.stationary_distribution(), 4)})"
        )
