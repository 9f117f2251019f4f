"""
Linear regression and the regression sufficient statistics.

Mathematical formulation:
    y_i = x_iᵀ β + ε_i,  ε_i ~ N(0, σ² / w_i)
    RegSuf         = {XᵀX, Xᵀy, yᵀy, n}
    WeightedRegSuf = {XᵀWX, XᵀWy, yᵀWy, Σw, n}

WeightedRegSuf is the accumulator every latent data sampler feeds: the
imputed latent values play the role of y and the inverse latent
variances the role of w.
"""

from typing import List, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import cho_solve

from bayesgibbs.distributions.draws import LOG_2PI
from bayesgibbs.linalg import cholesky, from_lower_triangle, lower_triangle
from bayesgibbs.models.base import LoglikeModel, Model, SufficientStatistic
from bayesgibbs.models.params import Params, UnivParams, VectorParams, VectorSource, as_iterator, take
from bayesgibbs.models.selector import Selector


class RegSuf(SufficientStatistic):
    """
    Unweighted regression sufficient statistics. Each datum is (y, x).

    Vector layout: n, yty, xty, xtx (lower triangle when minimal).
    """

    def __init__(self, xdim: int) -> None:
        if xdim <= 0:
            raise ValueError(f"xdim must be positive. Got {xdim}")
        self.xdim = xdim
        self.clear()

    def clear(self) -> None:
        self.n = 0.0
        self.yty = 0.0
        self.xty = np.zeros(self.xdim)
        self.xtx = np.zeros((self.xdim, self.xdim))

    def _check(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        x = np.asarray(x, dtype=np.float64).ravel()
        if len(x) != self.xdim:
            raise ValueError(f"Expected a predictor of length {self.xdim}, got {len(x)}")
        return x

    def add_data(self, y: float, x: NDArray[np.float64], weight: float = 1.0) -> None:
        """
        Add one observation.

        Parameters
        ----------
        y : float
            Response.
        x : NDArray[np.float64]
            Predictor vector of length xdim.
        weight : float
            Multiplies every term, n included.

        Raises
        ------
        ValueError
            If x has the wrong length.
        """
        x = self._check(x)
        y = float(y)
        self.n += weight
        self.yty += weight * y * y
        self.xty += weight * y * x
        self.xtx += weight * np.outer(x, x)

    def update(self, datum: Tuple[float, NDArray[np.float64]]) -> None:
        y, x = datum
        self.add_data(y, x)

    def update_with_weight(self, datum: Tuple[float, NDArray[np.float64]], prob: float) -> None:
        y, x = datum
        self.add_data(y, x, prob)

    def combine(self, other: "RegSuf") -> None:
        self._check_same_type(other)
        if other.xdim != self.xdim:
            raise ValueError(f"Cannot combine xdim {other.xdim} with {self.xdim}")
        self.n += other.n
        self.yty += other.yty
        self.xty += other.xty
        self.xtx += other.xtx

    def beta_hat(self, inc: Optional[Selector] = None) -> NDArray[np.float64]:
        """Least squares estimate on the included columns (full length)."""
        xtx, xty = self.xtx, self.xty
        if inc is not None:
            xtx, xty = inc.select_square(xtx), inc.select(xty)
        L, ok = cholesky(xtx)
        if ok:
            b = cho_solve((L, True), xty)
        else:
            b = np.linalg.lstsq(xtx, xty, rcond=None)[0]
        return b if inc is None else inc.expand(b)

    def sse(self, beta: NDArray[np.float64]) -> float:
        """Σ (y_i - x_iᵀβ)²."""
        return float(self.yty - 2.0 * beta @ self.xty + beta @ self.xtx @ beta)

    def _body(self, minimal: bool) -> NDArray[np.float64]:
        xtx = lower_triangle(self.xtx) if minimal else self.xtx.ravel()
        return np.concatenate([[self.yty], self.xty, xtx])

    def _read_body(self, it, minimal: bool) -> None:
        p = self.xdim
        self.yty = float(take(it, 1)[0])
        self.xty = take(it, p)
        if minimal:
            self.xtx = from_lower_triangle(take(it, p * (p + 1) // 2), p)
        else:
            self.xtx = take(it, p * p).reshape(p, p)

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([[self.n], self._body(minimal)])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        it = as_iterator(values)
        self.n = float(take(it, 1)[0])
        self._read_body(it, minimal)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(xdim={self.xdim}, n={self.n:g})"


class WeightedRegSuf(RegSuf):
    """
    Weighted regression sufficient statistics. Each datum is (y, x, w).

    xtx, xty and yty hold XᵀWX, XᵀWy and yᵀWy. Vector layout:
    n, sumw, yty, xty, xtx.
    """

    def clear(self) -> None:
        super().clear()
        self.sumw = 0.0

    def add_data(self, y: float, x: NDArray[np.float64], weight: float = 1.0) -> None:
        """
        Add one observation with precision weight w.

        n counts observations; the weight enters sumw and the cross products.

        Parameters
        ----------
        y : float
            Response, or an imputed latent value.
        x : NDArray[np.float64]
            Predictor vector of length xdim.
        weight : float
            Inverse residual variance of this observation.
        """
        x = self._check(x)
        y = float(y)
        self.n += 1.0
        self.sumw += weight
        self.yty += weight * y * y
        self.xty += weight * y * x
        self.xtx += weight * np.outer(x, x)

    def update(self, datum: Tuple[float, NDArray[np.float64], float]) -> None:
        y, x, w = datum
        self.add_data(y, x, w)

    def update_with_weight(self, datum, prob: float) -> None:
        y, x, w = datum
        x = self._check(x)
        self.n += prob
        self.sumw += prob * w
        self.yty += prob * w * y * y
        self.xty += prob * w * y * x
        self.xtx += prob * w * np.outer(x, x)

    def combine(self, other: "WeightedRegSuf") -> None:
        super().combine(other)
        self.sumw += other.sumw

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([[self.n, self.sumw], self._body(minimal)])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        it = as_iterator(values)
        self.n, self.sumw = (float(v) for v in take(it, 2))
        self._read_body(it, minimal)


class RegressionModel(Model, LoglikeModel):
    """
    Gaussian linear regression.

    Attributes
    ----------
    beta_prm : VectorParams
        Coefficients.
    sigsq_prm : UnivParams
        Residual variance.
    suf : RegSuf
        Sufficient statistics.
    """

    def __init__(
        self,
        beta: NDArray[np.float64],
        sigma: float = 1.0,
    ) -> None:
        super().__init__()
        beta = np.asarray(beta, dtype=np.float64).ravel()
        if sigma <= 0:
            raise ValueError(f"sigma must be positive. Got {sigma}")
        self.beta_prm = VectorParams(beta)
        self.sigsq_prm = UnivParams(sigma * sigma)
        self.suf = RegSuf(len(beta))

    def params(self) -> List[Params]:
        return [self.beta_prm, self.sigsq_prm]

    @property
    def xdim(self) -> int:
        """Number of predictors."""
        return len(self.beta)

    @property
    def beta(self) -> NDArray[np.float64]:
        """Coefficient vector."""
        return self.beta_prm.value

    @property
    def sigsq(self) -> float:
        """Residual variance σ²."""
        return self.sigsq_prm.value

    def set_beta(self, beta: NDArray[np.float64]) -> None:
        """Set the coefficients. Raises ValueError on a length mismatch."""
        self.beta_prm.set(beta)

    def set_sigsq(self, sigsq: float) -> None:
        """
        Set σ².

        Raises
        ------
        ValueError
            If sigsq is not positive.
        """
        if sigsq <= 0:
            raise ValueError(f"Variance must be positive. Got {sigsq}")
        self.sigsq_prm.set(sigsq)

    def predict(self, x: NDArray[np.float64]) -> float:
        """Conditional mean xᵀβ for one predictor vector."""
        return float(np.dot(x, self.beta))

    def logp(self, datum: Tuple[float, NDArray[np.float64]]) -> float:
        y, x = datum
        resid = float(y) - self.predict(x)
        return float(-0.5 * (LOG_2PI + np.log(self.sigsq) + resid * resid / self.sigsq))

    def simulate(self, rng: np.random.Generator, x: NDArray[np.float64]) -> float:
        """Draw a response at predictor x."""
        return float(rng.normal(self.predict(x), np.sqrt(self.sigsq)))

    def log_likelihood(self, beta: NDArray[np.float64], sigsq: float) -> float:
        """
        Log likelihood at (β, σ²).

        Parameters
        ----------
        beta : NDArray[np.float64]
            Coefficients, length xdim.
        sigsq : float
            Residual variance.

        Returns
        -------
        float
            -0.5 [n log 2πσ² + SSE(β) / σ²], or -inf when sigsq <= 0.
        """
        if sigsq <= 0:
            return -np.inf
        n = self.suf.n
        return float(-0.5 * (n * (LOG_2PI + np.log(sigsq)) + self.suf.sse(beta) / sigsq))

    def loglike(self) -> float:
        return self.log_likelihood(self.beta, self.sigsq)

    def mle(self) -> None:
        """Least squares coefficients and SSE / n."""
        if self.suf.n <= 0:
            return
        beta = self.suf.beta_hat()
        self.set_beta(beta)
        sse = self.suf.sse(beta)
        if sse > 0:
            self.set_sigsq(sse / self.suf.n)

    def __repr__(self) -> str:
        return f"RegressionModel(xdim={self.xdim}, sigma={np.sqrt(self.sigsq):.4g})"
