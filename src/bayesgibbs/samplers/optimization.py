"""
Numerical optimization used by maximum likelihood and mode finding.

Three entry points cover what the models need:
- newton_maximize: Newton-Raphson with step halving for targets that
  supply their own gradient and Hessian (Gamma, logistic regression).
- brent_maximize: scalar maximization (Wishart degrees of freedom, the
  mode of a target approximated by a normal mixture).
- powell_minimize: derivative-free minimization (Kullback-Leibler fit of
  a normal mixture).

None of them raises on non-convergence. The outcome is reported through
OptimizationResult.converged and callers decide what to do with it.
"""

import logging
from typing import Callable, Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy import optimize

from bayesgibbs.linalg import cholesky

logger = logging.getLogger(__name__)

NewtonTarget = Callable[
    [NDArray[np.float64]],
    Tuple[float, NDArray[np.float64], NDArray[np.float64]],
]


class OptimizationResult:
    """
    Outcome of an optimization run.

    Attributes
    ----------
    x : NDArray[np.float64] or float
        Location of the optimum found.
    value : float
        Target value at x.
    number_of_evaluations : int
        Number of target evaluations used.
    converged : bool
        Whether the convergence criterion was met.
    """

    def __init__(
        self,
        x,
        value: float,
        number_of_evaluations: int,
        converged: bool,
    ) -> None:
        self.x = x
        self.value = float(value)
        self.number_of_evaluations = int(number_of_evaluations)
        self.converged = bool(converged)

    def __repr__(self) -> str:
        return (
            f"OptimizationResult(value={self.value:.6g}, "
            f"evaluations={self.number_of_evaluations}, "
            f"converged={self.converged})"
        )


def _newton_step(
    gradient: NDArray[np.float64],
    hessian: NDArray[np.float64],
) -> NDArray[np.float64]:
    # Fall back to steepest ascent when -H is not positive definite.
    L, ok = cholesky(-hessian)
    if not ok:
        return gradient.copy()
    y = np.linalg.solve(L, gradient)
    return np.linalg.solve(L.T, y)


def newton_maximize(
    target: NewtonTarget,
    theta0: NDArray[np.float64],
    max_iterations: int = 100,
    tolerance: float = 1e-8,
    max_halvings: int = 40,
) -> OptimizationResult:
    """
    Maximize a twice differentiable target with Newton-Raphson.

    Parameters
    ----------
    target : callable
        Maps theta to (value, gradient, hessian). Returns -inf as the
        value outside the support.
    theta0 : NDArray[np.float64]
        Starting point. Must have a finite target value.
    max_iterations : int, optional
        Maximum number of Newton iterations. Default is 100.
    tolerance : float, optional
        Convergence is declared when the improvement in the target falls
        below this value. Default is 1e-8.
    max_halvings : int, optional
        Step halvings allowed per iteration before giving up. Default 40.

    Returns
    -------
    OptimizationResult
        x holds the best point found, even without convergence.
    """
    theta = np.array(theta0, dtype=np.float64)
    value, gradient, hessian = target(theta)
    evaluations = 1
    if not np.isfinite(value):
        logger.warning("Newton's method started at a point with value %s", value)
        return OptimizationResult(theta, value, evaluations, False)

    converged = False
    for _ in range(max_iterations):
        step = _newton_step(np.asarray(gradient), np.asarray(hessian))
        improved = False
        for _ in range(max_halvings):
            candidate = theta + step
            cand_value, cand_gradient, cand_hessian = target(candidate)
            evaluations += 1
            if np.isfinite(cand_value) and cand_value >= value:
                improved = True
                break
            step = step / 2.0
        if not improved:
            converged = float(np.max(np.abs(gradient))) < np.sqrt(tolerance)
            break
        change = cand_value - value
        theta, value = candidate, cand_value
        gradient, hessian = cand_gradient, cand_hessian
        if change < tolerance:
            converged = True
            break

    if not converged:
        logger.warning(
            "Newton's method did not converge after %d evaluations", evaluations
        )
    return OptimizationResult(theta, value, evaluations, converged)


def brent_maximize(
    f: Callable[[float], float],
    guess: float,
    bounds: Optional[Tuple[float, float]] = None,
) -> OptimizationResult:
    """
    Maximize a scalar function.

    Parameters
    ----------
    f : callable
        Scalar target.
    guess : float
        Starting point, used to build the initial bracket when no bounds
        are given.
    bounds : tuple of float, optional
        Search interval. When given, a bounded Brent search is used.
    """
    def negative(x: float) -> float:
        value = f(x)
        return np.inf if not np.isfinite(value) else -value

    if bounds is not None:
        res = optimize.minimize_scalar(negative, bounds=bounds, method="bounded")
    else:
        res = optimize.minimize_scalar(
            negative, bracket=(guess, guess + 1.0), method="brent"
        )
    if not res.success:
        logger.warning("Brent's method did not converge: %s", res.message)
    return OptimizationResult(float(res.x), -res.fun, res.nfev, res.success)


def powell_minimize(
    f: Callable[[NDArray[np.float64]], float],
    theta0: NDArray[np.float64],
    max_evaluations: int = 10000,
    precision: float = 1e-8,
    initial_stepsize: float = 1.0,
) -> OptimizationResult:
    """
    Minimize a vector function with Powell's derivative-free method.

    Parameters
    ----------
    f : callable
        Target to minimize.
    theta0 : NDArray[np.float64]
        Starting point.
    max_evaluations : int, optional
        Maximum number of function evaluations. Default is 10000.
    precision : float, optional
        Tolerance on both the argument and the function value.
    initial_stepsize : float, optional
        Length of the initial search directions.
    """
    theta0 = np.asarray(theta0, dtype=np.float64)
    res = optimize.minimize(
        f,
        theta0,
        method="Powell",
        options={
            "maxfev": max_evaluations,
            "xtol": precision,
            "ftol": precision,
            "direc": np.eye(len(theta0)) * initial_stepsize,
        },
    )
    if not res.success:
        logger.warning("Powell's method did not converge: %s", res.message)
    return OptimizationResult(np.asarray(res.x), res.fun, res.nfev, res.success)
