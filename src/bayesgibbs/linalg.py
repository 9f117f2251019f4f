"""
Dense linear algebra helpers.

Thin wrappers over numpy / scipy.linalg that report numerical failure
through a flag instead of an exception. Samplers use the flag to reject a
candidate or fall back to another strategy.
"""

from typing import Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_triangular


def cholesky(A: NDArray[np.float64]) -> Tuple[NDArray[np.float64], bool]:
    """
    Lower Cholesky factor of a symmetric matrix.

    Parameters
    ----------
    A : NDArray[np.float64]
        Symmetric matrix, shape (p, p).

    Returns
    -------
    L : NDArray[np.float64]
        Lower triangular factor with A = L L^T. Zeros if ok is False.
    ok : bool
        False if A is not positive definite.
    """
    A = np.asarray(A, dtype=np.float64)
    if A.shape[0] == 0:
        return np.zeros((0, 0)), True
    try:
        return np.linalg.cholesky(A), True
    except np.linalg.LinAlgError:
        return np.zeros_like(A), False


def logdet(A: NDArray[np.float64]) -> float:
    """Log determinant of a positive definite matrix, -inf if not PD."""
    L, ok = cholesky(A)
    if not ok:
        return -np.inf
    return 2.0 * float(np.sum(np.log(np.diag(L))))


def spd_inverse(A: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Inverse of a positive definite matrix via its Cholesky factor.

    Raises
    ------
    ValueError
        If A is not positive definite.
    """
    L, ok = cholesky(A)
    if not ok:
        raise ValueError("Matrix must be positive definite")
    Linv = solve_triangular(L, np.eye(L.shape[0]), lower=True)
    return Linv.T @ Linv


def trace_ab(A: NDArray[np.float64], B: NDArray[np.float64]) -> float:
    """trace(A B) without forming the product."""
    return float(np.sum(A * np.asarray(B).T))


def lower_triangle(A: NDArray[np.float64]) -> NDArray[np.float64]:
    """Lower triangle of a square matrix, row major, diagonal included."""
    return A[np.tril_indices(A.shape[0])]


def from_lower_triangle(values: NDArray[np.float64], dim: int) -> NDArray[np.float64]:
    """Rebuild a symmetric matrix from its lower triangle."""
    ans = np.zeros((dim, dim))
    ans[np.tril_indices(dim)] = values
    return ans + np.tril(ans, -1).T
