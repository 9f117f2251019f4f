"""
Multinomial choice models with subject-level predictors.

Choice 0 is the baseline. For choices m = 1, …, M-1 the utility is
    u_m = xᵀβ_m + ε_m,   u_0 = ε_0
and the subject picks the choice with the largest utility.

    multinomial logit:  ε_m iid Gumbel  =>  P(y = m) = exp(η_m) / Σ_j exp(η_j)
    multinomial probit: ε_m iid N(0, 1)
"""

from typing import List, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.special import logsumexp, softmax

from bayesgibbs.models.base import DiffLoglikeModel, LoglikeModel, Model
from bayesgibbs.models.params import MatrixParams, Params

# Probabilists' Gauss-Hermite rule for the probit choice probabilities.
_HERMITE_NODES, _HERMITE_WEIGHTS = np.polynomial.hermite_e.hermegauss(40)
_HERMITE_WEIGHTS = _HERMITE_WEIGHTS / np.sqrt(2.0 * np.pi)


class ChoiceModel(Model):
    """
    Shared parameter and data handling for multinomial choice models.

    Attributes
    ----------
    beta_prm : MatrixParams
        Coefficients, shape (nchoices - 1, xdim). Row m - 1 holds β_m.
    """

    def __init__(self, beta: NDArray[np.float64]) -> None:
        super().__init__()
        beta = np.atleast_2d(np.asarray(beta, dtype=np.float64))
        self.beta_prm = MatrixParams(beta)
        self._cache = None

    @classmethod
    def with_dims(cls, nchoices: int, xdim: int):
        """
        Model with all coefficients zero.

        Parameters
        ----------
        nchoices : int
            Number of choices M, at least 2.
        xdim : int
            Length of the predictor vector.

        Raises
        ------
        ValueError
            If nchoices < 2.
        """
        if nchoices < 2:
            raise ValueError(f"nchoices must be at least 2. Got {nchoices}")
        return cls(np.zeros((nchoices - 1, xdim)))

    def params(self) -> List[Params]:
        return [self.beta_prm]

    @property
    def beta(self) -> NDArray[np.float64]:
        """Coefficient matrix, shape (nchoices - 1, xdim)."""
        return self.beta_prm.value

    def set_beta(self, beta: NDArray[np.float64]) -> None:
        """Set the coefficient matrix. Raises ValueError on a shape mismatch."""
        self.beta_prm.set(beta)

    @property
    def nchoices(self) -> int:
        return self.beta.shape[0] + 1

    @property
    def xdim(self) -> int:
        return self.beta.shape[1]

    def add_data(self, datum: Tuple[int, NDArray[np.float64]]) -> None:
        y, x = datum
        y = int(y)
        x = np.asarray(x, dtype=np.float64).ravel()
        if not 0 <= y < self.nchoices:
            raise ValueError(f"Choice must be in [0, {self.nchoices - 1}]. Got {y}")
        if len(x) != self.xdim:
            raise ValueError(f"Expected a predictor of length {self.xdim}, got {len(x)}")
        self._cache = None
        super().add_data((y, x))

    def clear_data(self) -> None:
        self._cache = None
        super().clear_data()

    def choices_and_design(self) -> Tuple[NDArray[np.int64], NDArray[np.float64]]:
        """(y, X) arrays built from the stored data, cached until the data change."""
        if self._cache is None:
            if self._data:
                y = np.array([d[0] for d in self._data], dtype=np.int64)
                X = np.vstack([d[1] for d in self._data])
            else:
                y, X = np.zeros(0, dtype=np.int64), np.zeros((0, self.xdim))
            self._cache = (y, X)
        return self._cache

    def eta(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """Systematic utilities, shape (n, nchoices), baseline column 0."""
        X = np.atleast_2d(X)
        return np.hstack([np.zeros((X.shape[0], 1)), X @ self.beta.T])

    def choice_probabilities(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Probability of each choice at predictor x.

        Parameters
        ----------
        x : NDArray[np.float64]
            Predictor vector of length xdim.

        Returns
        -------
        NDArray[np.float64]
            Length nchoices, sums to 1.
        """
        raise NotImplementedError

    def logp(self, datum: Tuple[int, NDArray[np.float64]]) -> float:
        y, x = datum
        prob = self.choice_probabilities(x)[int(y)]
        return float(np.log(prob)) if prob > 0 else -np.inf

    def simulate(self, rng: np.random.Generator, x: NDArray[np.float64]) -> int:
        """Draw a choice at predictor x."""
        return int(rng.choice(self.nchoices, p=self.choice_probabilities(x)))


class MultinomialLogitModel(ChoiceModel, DiffLoglikeModel):
    """Multinomial logit with subject-level predictors."""

    def choice_probabilities(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return softmax(self.eta(x)[0])

    def logp(self, datum: Tuple[int, NDArray[np.float64]]) -> float:
        y, x = datum
        eta = self.eta(x)[0]
        return float(eta[int(y)] - logsumexp(eta))

    def likelihood_theta(self) -> NDArray[np.float64]:
        return self.beta.ravel().copy()

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.set_beta(np.asarray(theta).reshape(self.beta.shape))

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        y, X = self.choices_and_design()
        M, p = self.nchoices, self.xdim
        beta = np.asarray(theta, dtype=np.float64).reshape(M - 1, p)
        eta = np.hstack([np.zeros((len(y), 1)), X @ beta.T])
        log_norm = logsumexp(eta, axis=1)
        ans = float(np.sum(eta[np.arange(len(y)), y] - log_norm))
        gradient = hessian = None
        if nd > 0:
            probs = np.exp(eta - log_norm[:, np.newaxis])[:, 1:]
            indicator = np.zeros_like(probs)
            chose = y > 0
            indicator[np.flatnonzero(chose), y[chose] - 1] = 1.0
            gradient = ((indicator - probs).T @ X).ravel()
            if nd > 1:
                hessian = np.zeros(((M - 1) * p, (M - 1) * p))
                for m in range(M - 1):
                    for k in range(M - 1):
                        w = probs[:, m] * ((m == k) - probs[:, k])
                        block = -(X * w[:, np.newaxis]).T @ X
                        hessian[m * p:(m + 1) * p, k * p:(k + 1) * p] = block
        return ans, gradient, hessian

    def __repr__(self) -> str:
        return f"MultinomialLogitModel(nchoices={self.nchoices}, xdim={self.xdim})"


class MultinomialProbitModel(ChoiceModel, LoglikeModel):
    """
    Multinomial probit with independent unit-variance utilities.

    Choice probabilities are one-dimensional integrals,
        P(y = m) = E[ Π_{j≠m} Φ(η_m + ε - η_j) ],  ε ~ N(0, 1),
    evaluated by Gauss-Hermite quadrature.
    """

    def choice_probabilities(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        eta = self.eta(x)[0]
        M = len(eta)
        ans = np.zeros(M)
        for m in range(M):
            others = np.delete(eta, m)
            log_cdf = stats.norm.logcdf(
                eta[m] + _HERMITE_NODES[:, np.newaxis] - others[np.newaxis, :]
            ).sum(axis=1)
            ans[m] = np.dot(_HERMITE_WEIGHTS, np.exp(log_cdf))
        return ans / ans.sum()

    def simulate(self, rng: np.random.Generator, x: NDArray[np.float64]) -> int:
        utilities = self.eta(x)[0] + rng.standard_normal(self.nchoices)
        return int(np.argmax(utilities))

    def loglike(self) -> float:
        return float(sum(self.logp(d) for d in self._data))

    def __repr__(self) -> str:
        return f"MultinomialProbitModel(nchoices={self.nchoices}, xdim={self.xdim})"
