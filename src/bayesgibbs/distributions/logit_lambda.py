"""
Scale-mixture draw for logistic regression data augmentation.

A logistic variate z with location eta is a normal variate whose variance
is 4 ψ², where ψ follows the Kolmogorov-Smirnov distribution. Given the
residual r = |z - eta|, the variance λ has a density known only as an
alternating series. Holmes and Held (2006, Bayesian Analysis) sample it
by rejection from a generalized inverse Gaussian envelope, deciding
acceptance by squeezing the series between its partial sums.
"""

import numpy as np

# Residuals are floored here to keep the envelope draw finite.
SMALL_RESIDUAL = 1e-5

_LOG_2 = np.log(2.0)
_LOG_PI = np.log(np.pi)
_PI_SQUARED = np.pi ** 2


def _rightmost_interval(u: float, lam: float) -> bool:
    """Series squeeze used when λ > 4/3."""
    z = 1.0
    x = np.exp(-0.5 * lam)
    j = 0
    while True:
        j += 1
        n = j + 1
        z -= n * n * x ** (n * n - 1)
        if z > u:
            return True
        j += 1
        n = j + 1
        z += n * n * x ** (n * n - 1)
        if z < u:
            return False


def _leftmost_interval(u: float, lam: float) -> bool:
    """Series squeeze used when λ <= 4/3."""
    h = (
        0.5 * _LOG_2
        + 2.5 * _LOG_PI
        - 2.5 * np.log(lam)
        - _PI_SQUARED / (2.0 * lam)
        + 0.5 * lam
    )
    log_u = np.log(u)
    z = 1.0
    x = np.exp(-_PI_SQUARED / (2.0 * lam))
    k = lam / _PI_SQUARED
    j = 0
    while True:
        j += 1
        z -= k * x ** (j * j - 1)
        if z > 0 and h + np.log(z) > log_u:
            return True
        j += 1
        n = j + 1
        z += n * n * x ** (n * n - 1)
        if z > 0 and h + np.log(z) < log_u:
            return False


def draw_lambda_mixing_weight(r: float, rng: np.random.Generator) -> float:
    """
    Draw the normal variance λ of a logistic residual.

    Parameters
    ----------
    r : float
        Absolute residual |z - eta| of the latent logistic variable.
    rng : np.random.Generator
        Random number generator.

    Returns
    -------
    float
        Positive variance λ. The imputed observation enters the weighted
        regression with weight 1 / λ.
    """
    r = max(abs(r), SMALL_RESIDUAL)
    while True:
        y = rng.standard_normal() ** 2
        y = 1.0 + (y - np.sqrt(y * (4.0 * r + y))) / (2.0 * r)
        u = rng.uniform()
        lam = r / y if u <= 1.0 / (1.0 + y) else r * y
        u = rng.uniform()
        if lam > 4.0 / 3.0:
            if _rightmost_interval(u, lam):
                return float(lam)
        elif _leftmost_interval(u, lam):
            return float(lam)
