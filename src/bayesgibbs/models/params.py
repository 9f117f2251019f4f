"""
Model parameters and their flat-vector serialization.

Every parameter object owns one value and can write it to, and restore it
from, a flat numeric buffer. from_vector accepts either an array (read
from the start) or an iterator, which it advances past the values it
consumed. A chain of objects can therefore be restored from one buffer:

    it = iter(buffer)
    mean.from_vector(it)
    variance.from_vector(it)

A parameter object may be shared by several models, e.g. a residual
variance common to many Gaussian models.
"""

from abc import ABC, abstractmethod
import collections.abc
from itertools import islice
from typing import Iterable, Iterator, Union
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.linalg import cholesky, from_lower_triangle, lower_triangle

VectorSource = Union[NDArray[np.float64], Iterator[float], Iterable[float]]


def as_iterator(values: VectorSource) -> Iterator[float]:
    """Iterator over values, passing an existing iterator through unchanged."""
    if isinstance(values, collections.abc.Iterator):
        return values
    return iter(np.asarray(values, dtype=np.float64).ravel())


def take(values: VectorSource, n: int) -> NDArray[np.float64]:
    """
    Read n numbers from an array or iterator.

    Raises
    ------
    ValueError
        If fewer than n values are available.
    """
    if isinstance(values, collections.abc.Iterator):
        ans = np.fromiter(islice(values, n), dtype=np.float64)
    else:
        ans = np.asarray(values, dtype=np.float64).ravel()[:n]
    if len(ans) != n:
        raise ValueError(f"Expected {n} values, found {len(ans)}")
    return ans


class Params(ABC):
    """Base class for a serializable model parameter."""

    @abstractmethod
    def size(self, minimal: bool = True) -> int:
        """Length of the vector produced by to_vector."""

    @abstractmethod
    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        """Flatten the value."""

    @abstractmethod
    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        """Restore the value from the output of to_vector."""


class UnivParams(Params):
    """A scalar parameter."""

    def __init__(self, value: float = 0.0) -> None:
        self.value = float(value)

    def set(self, value: float) -> None:
        self.value = float(value)

    def size(self, minimal: bool = True) -> int:
        return 1

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.array([self.value])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.value = float(take(values, 1)[0])

    def __repr__(self) -> str:
        return f"UnivParams({self.value:.6g})"


class VectorParams(Params):
    """A vector parameter of fixed length."""

    def __init__(self, value: NDArray[np.float64]) -> None:
        self.value = np.array(value, dtype=np.float64).ravel()

    def set(self, value: NDArray[np.float64]) -> None:
        """
        Replace the value.

        Parameters
        ----------
        value : NDArray[np.float64]
            New vector, same length as the current one. Copied.

        Raises
        ------
        ValueError
            If the length differs.
        """
        value = np.asarray(value, dtype=np.float64).ravel()
        if len(value) != len(self.value):
            raise ValueError(
                f"Expected a vector of length {len(self.value)}, got {len(value)}"
            )
        self.value = value.copy()

    def size(self, minimal: bool = True) -> int:
        return len(self.value)

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return self.value.copy()

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.value = take(values, len(self.value))

    def __repr__(self) -> str:
        return f"VectorParams(dim={len(self.value)})"


class MatrixParams(Params):
    """A general matrix parameter, serialized in row-major order."""

    def __init__(self, value: NDArray[np.float64]) -> None:
        self.value = np.array(np.atleast_2d(value), dtype=np.float64)

    def set(self, value: NDArray[np.float64]) -> None:
        value = np.asarray(value, dtype=np.float64)
        if value.shape != self.value.shape:
            raise ValueError(
                f"Expected a matrix of shape {self.value.shape}, got {value.shape}"
            )
        self.value = value.copy()

    def size(self, minimal: bool = True) -> int:
        return self.value.size

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return self.value.ravel().copy()

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.value = take(values, self.value.size).reshape(self.value.shape)

    def __repr__(self) -> str:
        return f"MatrixParams(shape={self.value.shape})"


class SpdParams(Params):
    """
    A symmetric positive definite matrix parameter.

    The minimal encoding stores only the lower triangle.
    """

    def __init__(self, value: NDArray[np.float64]) -> None:
        value = np.array(np.atleast_2d(value), dtype=np.float64)
        self._check(value)
        self.value = value

    @staticmethod
    def _check(value: NDArray[np.float64]) -> None:
        if value.ndim != 2 or value.shape[0] != value.shape[1]:
            raise ValueError(f"SPD matrix must be square. Got shape {value.shape}")
        if not np.allclose(value, value.T):
            raise ValueError("SPD matrix must be symmetric")
        _, ok = cholesky(value)
        if not ok:
            raise ValueError("Matrix must be positive definite")

    @property
    def dim(self) -> int:
        """Number of rows."""
        return self.value.shape[0]

    def set(self, value: NDArray[np.float64], check: bool = True) -> None:
        """
        Replace the matrix.

        Parameters
        ----------
        value : NDArray[np.float64]
            New matrix with the current shape.
        check : bool
            Verify symmetry and positive definiteness with a Cholesky
            factorization. Samplers that produce SPD draws by construction
            pass False.

        Raises
        ------
        ValueError
            If the shape differs, or check is True and value is not SPD.
        """
        value = np.array(np.atleast_2d(value), dtype=np.float64)
        if value.shape != self.value.shape:
            raise ValueError(
                f"Expected a matrix of shape {self.value.shape}, got {value.shape}"
            )
        if check:
            self._check(value)
        self.value = value

    def size(self, minimal: bool = True) -> int:
        k = self.dim
        return k * (k + 1) // 2 if minimal else k * k

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        if minimal:
            return lower_triangle(self.value)
        return self.value.ravel().copy()

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        k = self.dim
        raw = take(values, self.size(minimal))
        if minimal:
            self.value = from_lower_triangle(raw, k)
        else:
            self.value = raw.reshape(k, k)

    def __repr__(self) -> str:
        return f"SpdParams(dim={self.dim})"
