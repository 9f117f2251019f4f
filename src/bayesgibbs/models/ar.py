"""
Autoregressive time series model.

Mathematical formulation:
    y_t = φ_1 y_{t-1} + … + φ_p y_{t-p} + ε_t,   ε_t ~ N(0, σ²)

The likelihood conditions on the first p observations, so the
sufficient statistics are a RegSuf with x_t = (y_{t-1}, …, y_{t-p}).
The process is stationary when every root of
    1 - φ_1 z - … - φ_p z^p
lies outside the unit circle.
"""

from collections import deque
from typing import List, Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.distributions.draws import LOG_2PI
from bayesgibbs.models.base import LoglikeModel, Model
from bayesgibbs.models.params import Params, UnivParams, VectorParams
from bayesgibbs.models.regression import RegSuf


def is_stationary(phi: NDArray[np.float64]) -> bool:
    """True if the AR polynomial has all roots outside the unit circle."""
    phi = np.asarray(phi, dtype=np.float64)
    if len(phi) == 0 or np.all(phi == 0):
        return True
    # np.roots wants the highest power first: -φ_p z^p - … - φ_1 z + 1
    coefficients = np.concatenate([-phi[::-1], [1.0]])
    coefficients = np.trim_zeros(coefficients, "f")
    roots = np.roots(coefficients)
    return bool(np.all(np.abs(roots) > 1.0))


class ArModel(Model, LoglikeModel):
    """
    AR(p) model with coefficients φ and innovation variance σ².

    Data are added one time point at a time (or as a whole series with
    set_series); each point after the first p contributes one row to the
    regression sufficient statistics.

    Attributes
    ----------
    phi_prm : VectorParams
        AR coefficients (φ_1, …, φ_p).
    sigsq_prm : UnivParams
        Innovation variance.
    suf : RegSuf
        Lagged regression sufficient statistics.
    """

    def __init__(self, phi: NDArray[np.float64], sigma: float = 1.0) -> None:
        super().__init__()
        phi = np.atleast_1d(np.asarray(phi, dtype=np.float64))
        if len(phi) == 0:
            raise ValueError("An AR model needs at least one lag")
        if sigma <= 0:
            raise ValueError(f"sigma must be positive. Got {sigma}")
        self.phi_prm = VectorParams(phi)
        self.sigsq_prm = UnivParams(sigma * sigma)
        self.suf = RegSuf(len(phi))
        self._lags: deque = deque(maxlen=len(phi))

    @classmethod
    def with_lags(cls, number_of_lags: int, sigma: float = 1.0) -> "ArModel":
        """White noise model with number_of_lags zero coefficients."""
        return cls(np.zeros(number_of_lags), sigma)

    def params(self) -> List[Params]:
        return [self.phi_prm, self.sigsq_prm]

    @property
    def number_of_lags(self) -> int:
        """Order p of the process."""
        return len(self.phi)

    @property
    def phi(self) -> NDArray[np.float64]:
        """AR coefficients, lag 1 first."""
        return self.phi_prm.value

    @property
    def sigsq(self) -> float:
        """Innovation variance σ²."""
        return self.sigsq_prm.value

    @property
    def sigma(self) -> float:
        return float(np.sqrt(self.sigsq))

    def set_phi(self, phi: NDArray[np.float64]) -> None:
        """
        Set the coefficients.

        Stationarity is not enforced here; use check_stationary, or a
        sampler that only proposes stationary values.

        Parameters
        ----------
        phi : NDArray[np.float64]
            Length number_of_lags, lag 1 first.
        """
        self.phi_prm.set(phi)

    def set_sigsq(self, sigsq: float) -> None:
        """Set σ². Raises ValueError if sigsq is not positive."""
        if sigsq <= 0:
            raise ValueError(f"Variance must be positive. Got {sigsq}")
        self.sigsq_prm.set(sigsq)

    def check_stationary(self, phi: Optional[NDArray[np.float64]] = None) -> bool:
        """True if phi (default: the current coefficients) gives a stationary process."""
        return is_stationary(self.phi if phi is None else phi)

    def add_data(self, y: float) -> None:
        """
        Append the next value of the series.

        The first number_of_lags values only fill the lag buffer. Later values
        enter the regression statistics with their lags as predictors.
        """
        y = float(y)
        self._data.append(y)
        if len(self._lags) == self.number_of_lags:
            # Most recent lag first.
            self.suf.add_data(y, np.array(self._lags)[::-1])
        self._lags.append(y)

    def clear_data(self) -> None:
        super().clear_data()
        self._lags.clear()

    def refresh_suf(self) -> None:
        self.set_data(list(self._data))

    def set_series(self, series: Sequence[float]) -> None:
        """Replace the data with one time series, oldest value first."""
        self.set_data(series)

    def log_likelihood(self, phi: NDArray[np.float64], sigsq: float) -> float:
        """
        Conditional log likelihood given the first number_of_lags values.

        Parameters
        ----------
        phi : NDArray[np.float64]
            AR coefficients.
        sigsq : float
            Innovation variance.

        Returns
        -------
        float
            -inf when sigsq <= 0.
        """
        if sigsq <= 0:
            return -np.inf
        n = self.suf.n
        return float(-0.5 * (n * (LOG_2PI + np.log(sigsq)) + self.suf.sse(phi) / sigsq))

    def loglike(self) -> float:
        return self.log_likelihood(self.phi, self.sigsq)

    def mle(self) -> None:
        """Conditional least squares; stationarity is not enforced."""
        if self.suf.n <= self.number_of_lags:
            return
        phi = self.suf.beta_hat()
        self.set_phi(phi)
        self.set_sigsq(max(self.suf.sse(phi) / self.suf.n, 1e-12))

    def simulate(self, rng: np.random.Generator, length: int = 1, burn: int = 100) -> NDArray[np.float64]:
        """Simulate a series, discarding a burn-in started from zeros."""
        p = self.number_of_lags
        total = length + burn + p
        y = np.zeros(total)
        eps = rng.normal(0.0, self.sigma, size=total)
        for t in range(p, total):
            y[t] = np.dot(self.phi, y[t - p:t][::-1]) + eps[t]
        return y[p + burn:]

    def __repr__(self) -> str:
        return f"ArModel(p={self.number_of_lags}, sigma={self.sigma:.4g})"
