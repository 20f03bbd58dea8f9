"""
The algebraic contract shared by the control-space, dual-space and
saddle-point vectors.

The Krylov solvers and the matrix-free operators are written against this
contract only. Operations are in place, mirroring the way increments are
updated during a minimization, and `copy` is used wherever an independent
value is needed.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

import numpy as np


class Vector(ABC):
    """
    Abstract base class for vectors that the minimization core operates on.
    """

    @abstractmethod
    def zero(self) -> None:
        """Set all components to zero."""

    @abstractmethod
    def random(self) -> None:
        """Fill with standard Gaussian random components."""

    @abstractmethod
    def copy(self) -> Vector:
        """Return an independent copy."""

    @abstractmethod
    def axpy(self, a: float, other: Vector) -> None:
        """In place update self <- self + a * other."""

    @abstractmethod
    def dot(self, other: Vector) -> float:
        """Inner product with a vector of the same structure."""

    @abstractmethod
    def __imul__(self, a: float) -> Vector:
        """In place scaling."""

    def __iadd__(self, other: Vector) -> Vector:
        self.axpy(1.0, other)
        return self

    def __isub__(self, other: Vector) -> Vector:
        self.axpy(-1.0, other)
        return self

    def norm(self) -> float:
        """The norm induced by the inner product."""
        return np.sqrt(self.dot(self))


def dot_product(x: Vector, y: Vector) -> float:
    """Returns the inner product of two vectors of the same structure."""
    return x.dot(y)
