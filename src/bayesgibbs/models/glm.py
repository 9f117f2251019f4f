"""
Generalized linear models for binary and ordinal responses.

Mathematical formulation (latent variable form):
    z_i = x_iᵀβ + ε_i
    logistic: ε ~ Logistic(0, 1),   probit: ε ~ N(0, 1)
    binary:   y_i = 1{z_i > 0}
    ordinal:  y_i = k  iff  δ_{k-1} < z_i <= δ_k,
              δ_{-1} = -∞, δ_0 = 0, δ_{K-1} = +∞

The coefficients carry a Selector; excluded coefficients are held at 0.
A logistic model can carry a case-control offset log α, which is added to
every linear predictor.
"""

from typing import List, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.special import expit, log_expit

from bayesgibbs.distributions.truncated import rtrun_logis
from bayesgibbs.models.base import DiffLoglikeModel, LoglikeModel, Model
from bayesgibbs.models.params import Params, VectorParams
from bayesgibbs.models.selector import Selector


class GlmCoefs(VectorParams):
    """
    Regression coefficients with an inclusion vector.

    Excluded coefficients are 0. Serialization writes the full vector.
    """

    def __init__(self, beta: NDArray[np.float64], inc: Optional[Selector] = None) -> None:
        super().__init__(beta)
        if inc is None:
            inc = Selector(len(self.value))
        if inc.nvars_possible != len(self.value):
            raise ValueError(
                f"Selector length {inc.nvars_possible} does not match "
                f"{len(self.value)} coefficients"
            )
        self.inc = inc
        self.value[~inc.included] = 0.0

    def included_coefficients(self) -> NDArray[np.float64]:
        """Coefficients of the included variables, in position order."""
        return self.inc.select(self.value)

    def set_included_coefficients(self, beta: NDArray[np.float64]) -> None:
        """
        Set the included coefficients; excluded ones become 0.

        Parameters
        ----------
        beta : NDArray[np.float64]
            One value per included variable, length inc.nvars.
        """
        self.value = self.inc.expand(beta)

    def add(self, i: int) -> None:
        """
        Include variable i.

        The coefficient keeps its current value, which is 0 unless it
        was set while excluded.

        Parameters
        ----------
        i : int
            Position in the full coefficient vector.
        """
        self.inc.add(i)

    def drop(self, i: int) -> None:
        """
        Exclude variable i and zero its coefficient.

        Parameters
        ----------
        i : int
            Position in the full coefficient vector.
        """
        self.inc.drop(i)
        self.value[i] = 0.0

    def predict(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        """Linear predictor xᵀβ for one predictor or each row of a design matrix."""
        return np.asarray(x, dtype=np.float64) @ self.value

    def __repr__(self) -> str:
        return f"GlmCoefs(nvars={self.inc.nvars}/{self.inc.nvars_possible})"


class GlmModel(Model):
    """
    Shared data handling for regression-type models with (y, x) data.

    The response vector and design matrix are built on demand and cached
    until the data change.
    """

    def __init__(self, beta: NDArray[np.float64], inc: Optional[Selector] = None) -> None:
        super().__init__()
        self.coef = GlmCoefs(beta, inc)
        self._cache: Optional[Tuple[NDArray[np.float64], NDArray[np.float64]]] = None

    def params(self) -> List[Params]:
        return [self.coef]

    @property
    def xdim(self) -> int:
        """Number of possible predictors, included or not."""
        return len(self.coef.value)

    @property
    def beta(self) -> NDArray[np.float64]:
        """Full coefficient vector, zeros at excluded positions."""
        return self.coef.value

    def set_beta(self, beta: NDArray[np.float64]) -> None:
        """
        Set the full coefficient vector.

        Parameters
        ----------
        beta : NDArray[np.float64]
            Length xdim. Entries at excluded positions are discarded.
        """
        beta = np.asarray(beta, dtype=np.float64)
        self.coef.set(beta)
        self.coef.value[~self.coef.inc.included] = 0.0

    @property
    def inc(self) -> Selector:
        """Inclusion vector shared with the coefficients."""
        return self.coef.inc

    def add_data(self, datum: Tuple[float, NDArray[np.float64]]) -> None:
        y, x = datum
        x = np.asarray(x, dtype=np.float64).ravel()
        if len(x) != self.xdim:
            raise ValueError(f"Expected a predictor of length {self.xdim}, got {len(x)}")
        self._cache = None
        super().add_data((y, x))

    def clear_data(self) -> None:
        self._cache = None
        super().clear_data()

    def response_and_design(self) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """(y, X) arrays built from the stored data."""
        if self._cache is None:
            if self._data:
                y = np.array([d[0] for d in self._data], dtype=np.float64)
                X = np.vstack([d[1] for d in self._data])
            else:
                y, X = np.zeros(0), np.zeros((0, self.xdim))
            self._cache = (y, X)
        return self._cache


class BinaryRegressionModel(GlmModel, DiffLoglikeModel):
    """
    Base class for logistic and probit regression with 0/1 responses.

    log_likelihood works on the included coefficients only.
    """

    def add_data(self, datum: Tuple[float, NDArray[np.float64]]) -> None:
        y = datum[0]
        if y not in (0, 1, True, False):
            raise ValueError(f"Binary responses must be 0 or 1. Got {y}")
        super().add_data((float(bool(y)), datum[1]))

    def offset(self) -> float:
        """Constant added to every linear predictor. 0 unless overridden."""
        return 0.0

    def linear_predictor(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Linear predictor including the offset.

        Parameters
        ----------
        X : NDArray[np.float64]
            Design matrix of shape (n, xdim), or a single predictor.

        Returns
        -------
        NDArray[np.float64]
            Xβ + offset.
        """
        return np.asarray(X, dtype=np.float64) @ self.beta + self.offset()

    def likelihood_theta(self) -> NDArray[np.float64]:
        return self.coef.included_coefficients()

    def set_likelihood_theta(self, theta: NDArray[np.float64]) -> None:
        self.coef.set_included_coefficients(theta)

    def _log_probs(self, eta: NDArray[np.float64]):
        """(log P(y=1), log P(y=0), dlogP1/deta, dlogP0/deta, d2P1, d2P0)."""
        raise NotImplementedError

    def log_likelihood(self, theta: NDArray[np.float64], nd: int = 0):
        y, X = self.response_and_design()
        Xg = self.inc.select_columns(X)
        eta = Xg @ np.asarray(theta, dtype=np.float64) + self.offset()
        lp1, lp0, d1, d0, h1, h0 = self._log_probs(eta)
        ans = float(np.sum(np.where(y > 0, lp1, lp0)))
        gradient = hessian = None
        if nd > 0:
            score = np.where(y > 0, d1, d0)
            gradient = Xg.T @ score
            if nd > 1:
                curvature = np.where(y > 0, h1, h0)
                hessian = (Xg * curvature[:, np.newaxis]).T @ Xg
        return ans, gradient, hessian

    def logp(self, datum: Tuple[float, NDArray[np.float64]]) -> float:
        y, x = datum
        eta = np.atleast_1d(self.linear_predictor(np.atleast_2d(x)))
        lp1, lp0 = self._log_probs(eta)[:2]
        return float(lp1[0] if y else lp0[0])

    def success_probability(self, x: NDArray[np.float64]) -> float:
        """P(y = 1 | x) at the current coefficients."""
        return float(np.exp(self.logp((1, x))))

    def simulate(self, rng: np.random.Generator, x: NDArray[np.float64]) -> int:
        return int(rng.uniform() < self.success_probability(x))


class LogisticRegressionModel(BinaryRegressionModel):
    """
    Logistic regression, P(y = 1 | x) = logit^{-1}(xᵀβ + log α).

    Attributes
    ----------
    log_alpha : float
        Case-control offset. 0 for a prospective sample.
    """

    def __init__(self, beta: NDArray[np.float64], inc: Optional[Selector] = None) -> None:
        super().__init__(beta, inc)
        self.log_alpha = 0.0

    @classmethod
    def with_dim(cls, xdim: int) -> "LogisticRegressionModel":
        """Model with xdim zero coefficients, all included."""
        return cls(np.zeros(xdim))

    def set_log_alpha(self, log_alpha: float) -> None:
        """
        Set the case-control offset.

        Parameters
        ----------
        log_alpha : float
            log of the ratio of sampling rates for successes and failures.
            A prospective sample uses 0.
        """
        self.log_alpha = float(log_alpha)

    def offset(self) -> float:
        return self.log_alpha

    def _log_probs(self, eta: NDArray[np.float64]):
        p = expit(eta)
        curvature = -p * (1.0 - p)
        return log_expit(eta), log_expit(-eta), 1.0 - p, -p, curvature, curvature

    def __repr__(self) -> str:
        return f"LogisticRegressionModel(xdim={self.xdim}, nvars={self.inc.nvars})"


class ProbitRegressionModel(BinaryRegressionModel):
    """Probit regression, P(y = 1 | x) = Φ(xᵀβ)."""

    @classmethod
    def with_dim(cls, xdim: int) -> "ProbitRegressionModel":
        """Model with xdim zero coefficients, all included."""
        return cls(np.zeros(xdim))

    def _log_probs(self, eta: NDArray[np.float64]):
        lp1 = stats.norm.logcdf(eta)
        lp0 = stats.norm.logcdf(-eta)
        log_phi = stats.norm.logpdf(eta)
        # Inverse Mills ratios, computed on the log scale for stability.
        m1 = np.exp(log_phi - lp1)
        m0 = -np.exp(log_phi - lp0)
        h1 = -m1 * (eta + m1)
        h0 = -m0 * (eta + m0)
        return lp1, lp0, m1, m0, h1, h0

    def __repr__(self) -> str:
        return f"ProbitRegressionModel(xdim={self.xdim}, nvars={self.inc.nvars})"


class CumulativeLogitModel(GlmModel, LoglikeModel):
    """
    Ordinal logistic regression.

    Responses take values 0, …, K-1. The cutpoints are
    δ = (0, δ_1, …, δ_{K-2}); only δ_1, …, δ_{K-2} are free.

    Attributes
    ----------
    delta_prm : VectorParams
        Free cutpoints (length K - 2), strictly increasing and positive.
    """

    def __init__(
        self,
        beta: NDArray[np.float64],
        delta: Optional[Sequence[float]] = None,
        nlevels: Optional[int] = None,
    ) -> None:
        super().__init__(beta)
        if delta is None:
            if nlevels is None or nlevels < 2:
                raise ValueError("Either delta or nlevels >= 2 is required")
            delta = np.arange(1, nlevels - 1, dtype=np.float64)
        delta = np.asarray(delta, dtype=np.float64).ravel()
        self._check_delta(delta)
        self.delta_prm = VectorParams(delta)

    @staticmethod
    def _check_delta(delta: NDArray[np.float64]) -> None:
        full = np.concatenate([[0.0], delta])
        if np.any(np.diff(full) <= 0):
            raise ValueError("Cutpoints must be positive and strictly increasing")

    def params(self) -> List[Params]:
        return [self.coef, self.delta_prm]

    @property
    def nlevels(self) -> int:
        """Number of response categories K."""
        return len(self.delta_prm.value) + 2

    @property
    def delta(self) -> NDArray[np.float64]:
        """Free cutpoints δ_1, …, δ_{K-2}."""
        return self.delta_prm.value

    def set_delta(self, delta: NDArray[np.float64]) -> None:
        """
        Set the free cutpoints.

        Parameters
        ----------
        delta : NDArray[np.float64]
            Length K - 2, positive and strictly increasing.

        Raises
        ------
        ValueError
            If the cutpoints are out of order or not positive.
        """
        delta = np.asarray(delta, dtype=np.float64)
        self._check_delta(delta)
        self.delta_prm.set(delta)

    def cutpoints(self) -> NDArray[np.float64]:
        """All K + 1 interval boundaries, -inf, 0, δ_1, …, +inf."""
        return np.concatenate([[-np.inf, 0.0], self.delta, [np.inf]])

    def add_data(self, datum: Tuple[int, NDArray[np.float64]]) -> None:
        y = int(datum[0])
        if not 0 <= y < self.nlevels:
            raise ValueError(f"Response must be in [0, {self.nlevels - 1}]. Got {y}")
        super().add_data((y, datum[1]))

    def _interval_probs(self, y: NDArray[np.int64], eta: NDArray[np.float64]) -> NDArray[np.float64]:
        cuts = self.cutpoints()
        upper = expit(cuts[y + 1] - eta)
        lower = expit(cuts[y] - eta)
        return upper - lower

    def logp(self, datum: Tuple[int, NDArray[np.float64]]) -> float:
        y, x = datum
        eta = float(np.dot(x, self.beta))
        prob = self._interval_probs(np.array([int(y)]), np.array([eta]))[0]
        return float(np.log(prob)) if prob > 0 else -np.inf

    def response_probabilities(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Category probabilities for one predictor.

        Returns
        -------
        NDArray[np.float64]
            P(y = k | x) for k = 0, …, K-1. Sums to 1.
        """
        eta = float(np.dot(x, self.beta))
        return np.diff(expit(self.cutpoints() - eta))

    def loglike(self) -> float:
        y, X = self.response_and_design()
        if len(y) == 0:
            return 0.0
        probs = self._interval_probs(y.astype(np.int64), X @ self.beta)
        with np.errstate(divide="ignore"):
            return float(np.sum(np.log(probs)))

    def simulate(self, rng: np.random.Generator, x: NDArray[np.float64]) -> int:
        z = rtrun_logis(float(np.dot(x, self.beta)), -np.inf, np.inf, rng)
        return int(np.searchsorted(self.cutpoints()[1:-1], z, side="left"))

    def __repr__(self) -> str:
        return f"CumulativeLogitModel(xdim={self.xdim}, nlevels={self.nlevels})"
