"""
Linear changes of variable, such as the balance operator used when
ensemble perturbations are formed about the ensemble mean.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from .hilbert_space import HilbertSpace, Vector
from .linear_operators import LinearOperator


class LinearVariableChange(ABC):
    """
    A linear change of variable K on a space of increments, together with
    its adjoint and, where available, its inverse.
    """

    @property
    @abstractmethod
    def space(self) -> HilbertSpace:
        """The space the change of variable acts on."""

    @property
    def has_inverse(self) -> bool:
        """True if multiply_inverse is available."""
        return True

    @abstractmethod
    def multiply(self, dx: Vector) -> Vector:
        """Returns K dx."""

    @abstractmethod
    def multiply_ad(self, dx: Vector) -> Vector:
        """Returns K^T dx."""

    @abstractmethod
    def multiply_inverse(self, dx: Vector) -> Vector:
        """Returns K^-1 dx."""

    @abstractmethod
    def multiply_inverse_ad(self, dx: Vector) -> Vector:
        """Returns K^-T dx."""


class OperatorVariableChange(LinearVariableChange):
    """
    A change of variable built from a linear operator and, optionally, its
    inverse. Diagonal operators supply their own inverse.
    """

    def __init__(
        self, operator: LinearOperator, /, *, inverse: Optional[LinearOperator] = None
    ) -> None:
        """
        Args:
            operator (LinearOperator): The change of variable K. It must map
                a space into itself.
            inverse (LinearOperator | None): K^-1, if known.
        """
        if not operator.is_automorphism:
            raise ValueError("A change of variable must map a space into itself")
        if inverse is None and hasattr(operator, "inverse"):
            inverse = operator.inverse
        self._operator = operator
        self._inverse = inverse

    @property
    def space(self) -> HilbertSpace:
        return self._operator.domain

    @property
    def has_inverse(self) -> bool:
        return self._inverse is not None

    def multiply(self, dx: Vector) -> Vector:
        return self._operator(dx)

    def multiply_ad(self, dx: Vector) -> Vector:
        return self._operator.adjoint(dx)

    def multiply_inverse(self, dx: Vector) -> Vector:
        if self._inverse is None:
            raise NotImplementedError("Inverse of the change of variable is not available")
        return self._inverse(dx)

    def multiply_inverse_ad(self, dx: Vector) -> Vector:
        if self._inverse is None:
            raise NotImplementedError("Inverse of the change of variable is not available")
        return self._inverse.adjoint(dx)
