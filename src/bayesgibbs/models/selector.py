"""
Inclusion indicators for variable selection.

A Selector is a fixed-length set of "is included" flags over the candidate
predictors. Sub-vectors and sub-matrices are always taken in index order,
so the included coefficients line up with the included columns of X.

A VariableSelectionPrior assigns each candidate an inclusion probability.
An interaction term has probability zero unless all of its parents are
included.
"""

from typing import Iterable, List, Optional, Sequence
import numpy as np
from numpy.typing import NDArray


class Selector:
    """
    Boolean inclusion vector.

    Attributes
    ----------
    included : NDArray[np.bool_]
        Inclusion flags, length nvars_possible.
    """

    def __init__(self, nvars_possible: int, all_included: bool = True) -> None:
        self.included = np.full(nvars_possible, all_included, dtype=bool)

    @classmethod
    def from_flags(cls, flags: Iterable[bool]) -> "Selector":
        """Selector with the given inclusion flags."""
        flags = np.asarray(list(flags), dtype=bool)
        ans = cls(len(flags))
        ans.included = flags.copy()
        return ans

    @classmethod
    def from_positions(cls, nvars_possible: int, positions: Iterable[int]) -> "Selector":
        """
        Selector including only the listed positions.

        Parameters
        ----------
        nvars_possible : int
            Number of candidate variables.
        positions : Iterable[int]
            Positions to include.

        Raises
        ------
        ValueError
            If a position is out of range.
        """
        ans = cls(nvars_possible, all_included=False)
        for i in positions:
            ans.add(i)
        return ans

    def copy(self) -> "Selector":
        return Selector.from_flags(self.included)

    @property
    def nvars(self) -> int:
        """Number of included variables."""
        return int(self.included.sum())

    @property
    def nvars_possible(self) -> int:
        """Number of candidate variables."""
        return len(self.included)

    def _check(self, i: int) -> None:
        if not (0 <= i < self.nvars_possible):
            raise ValueError(f"Position {i} outside [0, {self.nvars_possible - 1}]")

    def inc(self, i: int) -> bool:
        """True if position i is included."""
        return bool(self.included[i])

    def add(self, i: int) -> None:
        """Include position i. Raises ValueError if i is out of range."""
        self._check(i)
        self.included[i] = True

    def drop(self, i: int) -> None:
        """Exclude position i. Raises ValueError if i is out of range."""
        self._check(i)
        self.included[i] = False

    def flip(self, i: int) -> None:
        """Toggle position i, as one step of a stochastic search."""
        self._check(i)
        self.included[i] = not self.included[i]

    def add_all(self) -> None:
        self.included[:] = True

    def drop_all(self) -> None:
        self.included[:] = False

    def positions(self) -> NDArray[np.int64]:
        """Included positions in increasing order."""
        return np.flatnonzero(self.included)

    def select(self, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Included elements of a full-length vector."""
        v = np.asarray(v)
        if len(v) != self.nvars_possible:
            raise ValueError(
                f"Expected a vector of length {self.nvars_possible}, got {len(v)}"
            )
        return v[self.included]

    def select_square(self, M: NDArray[np.float64]) -> NDArray[np.float64]:
        """Included rows and columns of a square matrix."""
        idx = self.positions()
        return np.asarray(M)[np.ix_(idx, idx)]

    def select_columns(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """Included columns of a design matrix."""
        return np.asarray(X)[:, self.included]

    def expand(self, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Full-length vector with v in the included slots and 0 elsewhere."""
        v = np.asarray(v, dtype=np.float64)
        if len(v) != self.nvars:
            raise ValueError(f"Expected a vector of length {self.nvars}, got {len(v)}")
        ans = np.zeros(self.nvars_possible)
        ans[self.included] = v
        return ans

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Selector) and np.array_equal(self.included, other.included)

    def __repr__(self) -> str:
        return "Selector(" + "".join("1" if b else "0" for b in self.included) + ")"


class MainEffect:
    """A candidate variable included independently with probability prob."""

    def __init__(self, position: int, prob: float, name: str = "") -> None:
        if not 0 <= prob <= 1:
            raise ValueError(f"Inclusion probability must be in [0, 1]. Got {prob}")
        self.position = position
        self.prob = prob
        self.name = name

    def prior_prob(self, inc: Selector) -> float:
        """Probability that this variable is included, given the others in inc."""
        return self.prob

    def logp(self, inc: Selector) -> float:
        """Log prior of this variable's inclusion flag in inc."""
        p = self.prior_prob(inc)
        q = p if inc.inc(self.position) else 1.0 - p
        return float(np.log(q)) if q > 0 else -np.inf

    def __repr__(self) -> str:
        return f"MainEffect(position={self.position}, prob={self.prob})"


class Interaction(MainEffect):
    """An interaction term; probability zero unless every parent is in."""

    def __init__(
        self,
        position: int,
        prob: float,
        parents: Sequence[int],
        name: str = "",
    ) -> None:
        super().__init__(position, prob, name)
        self.parents = list(parents)

    def prior_prob(self, inc: Selector) -> float:
        """prob when every parent is included in inc, otherwise 0."""
        if all(inc.inc(p) for p in self.parents):
            return self.prob
        return 0.0

    def __repr__(self) -> str:
        return (
            f"Interaction(position={self.position}, prob={self.prob}, "
            f"parents={self.parents})"
        )


class VariableSelectionPrior:
    """
    Prior over inclusion vectors.

    Variables are added as main effects or interactions; positions not
    added are treated as main effects with probability 1 (always in).
    """

    def __init__(
        self,
        nvars_possible: int,
        prior_inclusion_probabilities: Optional[Sequence[float]] = None,
    ) -> None:
        self.nvars_possible = nvars_possible
        self.variables: List[MainEffect] = []
        if prior_inclusion_probabilities is not None:
            if len(prior_inclusion_probabilities) != nvars_possible:
                raise ValueError(
                    f"Expected {nvars_possible} inclusion probabilities, "
                    f"got {len(prior_inclusion_probabilities)}"
                )
            for i, p in enumerate(prior_inclusion_probabilities):
                self.add_main_effect(i, p)

    def _add(self, variable: MainEffect) -> None:
        if not 0 <= variable.position < self.nvars_possible:
            raise ValueError(f"Position {variable.position} out of range")
        self.variables = [v for v in self.variables if v.position != variable.position]
        self.variables.append(variable)
        # Interactions after main effects, so simulate sees parents first.
        self.variables.sort(key=lambda v: (isinstance(v, Interaction), v.position))

    def add_main_effect(self, position: int, prob: float, name: str = "") -> None:
        """
        Give a position its own inclusion probability.

        Parameters
        ----------
        position : int
            Index of the candidate variable.
        prob : float
            Prior inclusion probability, in [0, 1].
        name : str
            Optional label.

        Raises
        ------
        ValueError
            If position is out of range or prob outside [0, 1].
        """
        self._add(MainEffect(position, prob, name))

    def add_interaction(
        self,
        position: int,
        prob: float,
        parents: Sequence[int],
        name: str = "",
    ) -> None:
        """
        Add an interaction term that can be in only when its parents are.

        Parameters
        ----------
        position : int
            Index of the interaction column.
        prob : float
            Inclusion probability when every parent is included.
        parents : Sequence[int]
            Positions of the main effects it is built from.
        name : str
            Optional label.
        """
        self._add(Interaction(position, prob, parents, name))

    def prior_inclusion_probabilities(self) -> NDArray[np.float64]:
        """Marginal inclusion probability by position, 1 where none was given."""
        ans = np.ones(self.nvars_possible)
        for v in self.variables:
            ans[v.position] = v.prob
        return ans

    def logp(self, inc: Selector) -> float:
        """Log prior probability of an inclusion vector."""
        if inc.nvars_possible != self.nvars_possible:
            raise ValueError(
                f"Selector has {inc.nvars_possible} positions, "
                f"prior expects {self.nvars_possible}"
            )
        ans = 0.0
        covered = np.zeros(self.nvars_possible, dtype=bool)
        for v in self.variables:
            covered[v.position] = True
            ans += v.logp(inc)
            if not np.isfinite(ans):
                return -np.inf
        if np.any(~inc.included & ~covered):
            return -np.inf
        return float(ans)

    def simulate(self, rng: np.random.Generator) -> Selector:
        """Draw an inclusion vector, main effects before interactions."""
        inc = Selector(self.nvars_possible)
        for v in self.variables:
            if rng.uniform() >= v.prior_prob(inc):
                inc.drop(v.position)
        return inc

    def __repr__(self) -> str:
        return f"VariableSelectionPrior(nvars_possible={self.nvars_possible})"
