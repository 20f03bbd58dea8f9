"""
Real Hilbert spaces holding the model-space, auxiliary and observation-space
parts of an increment.

A space does not own its elements. It carries the operations a solver needs
(inner product, linear combinations and a component representation) and
applies them to whatever objects the collaborating model uses.
"""

from __future__ import annotations
from typing import Any, Callable, List, Optional, TYPE_CHECKING

import numpy as np
from scipy.stats import norm

if TYPE_CHECKING:
    from .linear_operators import LinearOperator


# Elements are whatever objects the space was built to operate on.
Vector = Any


class HilbertSpace:
    """
    A finite-dimensional real Hilbert space described by its operations.

    The component mappings give each element an array of length dim. They
    are used for random draws, basis vectors and dense diagnostics; the
    Krylov solvers only need the inner product and the linear operations.
    Linear operations default to the arithmetic operators of the elements.
    """

    def __init__(
        self,
        dim: int,
        to_components: Callable[[Vector], np.ndarray],
        from_components: Callable[[np.ndarray], Vector],
        inner_product: Callable[[Vector, Vector], float],
        /,
        *,
        add: Optional[Callable[[Vector, Vector], Vector]] = None,
        subtract: Optional[Callable[[Vector, Vector], Vector]] = None,
        multiply: Optional[Callable[[float, Vector], Vector]] = None,
        axpy: Optional[Callable[[float, Vector, Vector], Vector]] = None,
        copy: Optional[Callable[[Vector], Vector]] = None,
    ) -> None:
        """
        Args:
            dim (int): Number of components of an element.
            to_components (callable): Element to component array.
            from_components (callable): Component array to element. Must
                invert to_components.
            inner_product (callable): The inner product.
            add (callable | None): x, y -> x + y.
            subtract (callable | None): x, y -> x - y.
            multiply (callable | None): a, x -> a x, leaving x untouched.
            axpy (callable | None): a, x, y -> a x + y, free to reuse y.
            copy (callable | None): Deep copy of an element.
        """
        if dim < 0:
            raise ValueError("dim must be non-negative")
        self._dim = dim
        self._to_components = to_components
        self._from_components = from_components
        self._inner_product = inner_product
        self._add = (lambda x, y: x + y) if add is None else add
        self._subtract = (lambda x, y: x - y) if subtract is None else subtract
        self._multiply = (lambda a, x: a * x) if multiply is None else multiply
        self._axpy = _axpy_in_place if axpy is None else axpy
        self._copy = (lambda x: x.copy()) if copy is None else copy

    @property
    def dim(self) -> int:
        """Number of components of an element."""
        return self._dim

    @property
    def zero(self) -> Vector:
        """A new zero element."""
        return self.from_components(np.zeros(self.dim))

    def inner_product(self, x1: Vector, x2: Vector) -> float:
        return self._inner_product(x1, x2)

    def squared_norm(self, x: Vector) -> float:
        return self.inner_product(x, x)

    def norm(self, x: Vector) -> float:
        return np.sqrt(self.squared_norm(x))

    def add(self, x: Vector, y: Vector) -> Vector:
        return self._add(x, y)

    def subtract(self, x: Vector, y: Vector) -> Vector:
        return self._subtract(x, y)

    def multiply(self, a: float, x: Vector) -> Vector:
        """Returns a * x as a new element."""
        return self._multiply(a, x)

    def negative(self, x: Vector) -> Vector:
        return self.multiply(-1.0, x)

    def axpy(self, a: float, x: Vector, y: Vector) -> Vector:
        """
        Returns a * x + y. The storage of y may be reused, so callers must
        use the returned element rather than y.
        """
        return self._axpy(a, x, y)

    def copy(self, x: Vector) -> Vector:
        return self._copy(x)

    def is_element(self, x: Any) -> bool:
        """True if x has the type of the elements this space builds."""
        return isinstance(x, type(self.zero))

    def to_components(self, x: Vector) -> np.ndarray:
        return self._to_components(x)

    def from_components(self, c: np.ndarray) -> Vector:
        return self._from_components(c)

    def basis_vector(self, i: int) -> Vector:
        """The element whose only non-zero component is a one at index i."""
        c = np.zeros(self.dim)
        c[i] = 1.0
        return self.from_components(c)

    def random(self) -> Vector:
        """An element with independent standard normal components."""
        return self.from_components(norm().rvs(size=self.dim))

    def sample_expectation(self, vectors: List[Vector]) -> Vector:
        """The arithmetic mean of a non-empty list of elements."""
        n = len(vectors)
        if n == 0:
            raise ValueError("Cannot form the mean of an empty list")
        mean = self.zero
        for x in vectors:
            mean = self.axpy(1.0 / n, x, mean)
        return mean

    def identity_operator(self) -> LinearOperator:
        """
        The identity on the space. Its actions return their argument
        itself, not a copy.
        """
        from .linear_operators import LinearOperator

        return LinearOperator.self_adjoint(self, lambda x: x)

    def zero_operator(self, codomain: Optional[HilbertSpace] = None) -> LinearOperator:
        """The zero map into codomain, this space by default."""
        from .linear_operators import LinearOperator

        target = self if codomain is None else codomain
        return LinearOperator(
            self,
            target,
            lambda x: target.zero,
            adjoint_mapping=lambda y: self.zero,
        )


def _axpy_in_place(a, x, y):
    y += a * x
    return y


class EuclideanSpace(HilbertSpace):
    """
    R^n with the dot product. Elements are one-dimensional numpy arrays.
    Two Euclidean spaces of the same dimension compare equal.
    """

    def __init__(self, dim: int) -> None:
        super().__init__(
            dim,
            lambda x: np.asarray(x, dtype=float),
            lambda c: np.array(c, dtype=float),
            lambda x1, x2: float(np.dot(x1, x2)),
        )

    def __eq__(self, other):
        return isinstance(other, EuclideanSpace) and self.dim == other.dim

    def __hash__(self):
        return hash((EuclideanSpace, self.dim))

    def __repr__(self) -> str:
        return f"EuclideanSpace({self.dim})"
