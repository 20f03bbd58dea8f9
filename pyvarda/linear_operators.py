"""
Module for linear operators between Hilbert spaces.

Collaborators describe their covariances, observation operators and
propagators with these objects. The operators are matrix-free: only the
action and, where needed, the adjoint action are required.
"""

from __future__ import annotations
from typing import Any, Callable, Optional

import numpy as np
from scipy.sparse import diags

from .hilbert_space import HilbertSpace, Vector


class LinearOperator:
    """
    A linear map between two Hilbert spaces, given by its action and,
    optionally, the action of its adjoint.

    Sums, differences, scalar multiples and compositions are formed lazily:
    the result wraps the operands and applies them on demand.
    """

    def __init__(
        self,
        domain: HilbertSpace,
        codomain: HilbertSpace,
        mapping: Callable[[Vector], Vector],
        /,
        *,
        adjoint_mapping: Optional[Callable[[Vector], Vector]] = None,
        adjoint_base: Optional[LinearOperator] = None,
    ) -> None:
        """
        Args:
            domain (HilbertSpace): Space the operator acts on.
            codomain (HilbertSpace): Space the results live in.
            mapping (callable): The action x -> A x.
            adjoint_mapping (callable | None): The action y -> A^T y. Without
                it the adjoint raises NotImplementedError when applied.
            adjoint_base (LinearOperator | None): The operator this one is
                the adjoint of. Set only by the adjoint property.
        """
        self._domain = domain
        self._codomain = codomain
        self.__mapping = mapping
        self.__adjoint_mapping = adjoint_mapping
        self._adjoint_base = adjoint_base

    @staticmethod
    def self_adjoint(
        domain: HilbertSpace, mapping: Callable[[Vector], Vector]
    ) -> LinearOperator:
        """An operator that is its own adjoint, such as a covariance."""
        return LinearOperator(domain, domain, mapping, adjoint_mapping=mapping)

    @staticmethod
    def from_matrix(
        domain: HilbertSpace, codomain: HilbertSpace, matrix: Any
    ) -> LinearOperator:
        """
        Wraps a dense or sparse matrix acting on components.

        The adjoint is formed from the transpose, which is exact when the
        component bases are orthonormal for the inner products (as for
        Euclidean spaces).

        Args:
            domain (HilbertSpace): Space the operator acts on.
            codomain (HilbertSpace): Space the results live in.
            matrix (matrix-like): Array of shape (codomain.dim, domain.dim).

        Raises:
            ValueError: If the shape does not match the spaces.
        """
        if matrix.shape != (codomain.dim, domain.dim):
            raise ValueError(
                f"Matrix shape {matrix.shape} does not match "
                f"({codomain.dim}, {domain.dim})"
            )

        transpose = matrix.T
        return LinearOperator(
            domain,
            codomain,
            lambda x: codomain.from_components(matrix @ domain.to_components(x)),
            adjoint_mapping=lambda y: domain.from_components(
                transpose @ codomain.to_components(y)
            ),
        )

    @property
    def domain(self) -> HilbertSpace:
        """Space the operator acts on."""
        return self._domain

    @property
    def codomain(self) -> HilbertSpace:
        """Space the results live in."""
        return self._codomain

    @property
    def is_automorphism(self) -> bool:
        """True if the operator maps a space into itself."""
        return self.domain == self.codomain

    @property
    def has_adjoint(self) -> bool:
        """True if the adjoint action is available."""
        return self._adjoint_base is not None or self.__adjoint_mapping is not None

    @property
    def adjoint(self) -> LinearOperator:
        """
        The adjoint operator. Taking the adjoint twice gives back the
        original object.
        """
        if self._adjoint_base is not None:
            return self._adjoint_base
        return LinearOperator(
            self.codomain, self.domain, self._adjoint_action,
            adjoint_mapping=self, adjoint_base=self,
        )

    def matrix(self) -> np.ndarray:
        """Dense matrix of the operator, built one basis vector at a time."""
        columns = [
            self.codomain.to_components(self(self.domain.basis_vector(j)))
            for j in range(self.domain.dim)
        ]
        return np.column_stack(columns) if columns else np.zeros((self.codomain.dim, 0))

    def _adjoint_action(self, y: Vector) -> Vector:
        if self.__adjoint_mapping is None:
            raise NotImplementedError("Adjoint mapping has not been provided")
        return self.__adjoint_mapping(y)

    def __call__(self, x: Vector) -> Vector:
        return self.__mapping(x)

    def _combine(
        self,
        domain: HilbertSpace,
        codomain: HilbertSpace,
        action: Callable[[Vector], Vector],
        adjoint_action: Callable[[Vector], Vector],
    ) -> LinearOperator:
        return LinearOperator(domain, codomain, action, adjoint_mapping=adjoint_action)

    def _require_same_spaces(self, other: LinearOperator) -> None:
        if self.domain != other.domain or self.codomain != other.codomain:
            raise ValueError("Operators must share their domain and codomain")

    def __mul__(self, a: float) -> LinearOperator:
        domain, codomain = self.domain, self.codomain
        return self._combine(
            domain,
            codomain,
            lambda x: codomain.multiply(a, self(x)),
            lambda y: domain.multiply(a, self.adjoint(y)),
        )

    def __rmul__(self, a: float) -> LinearOperator:
        return self * a

    def __truediv__(self, a: float) -> LinearOperator:
        return self * (1.0 / a)

    def __neg__(self) -> LinearOperator:
        return self * -1.0

    def __add__(self, other: LinearOperator) -> LinearOperator:
        self._require_same_spaces(other)
        domain, codomain = self.domain, self.codomain
        return self._combine(
            domain,
            codomain,
            lambda x: codomain.add(self(x), other(x)),
            lambda y: domain.add(self.adjoint(y), other.adjoint(y)),
        )

    def __sub__(self, other: LinearOperator) -> LinearOperator:
        self._require_same_spaces(other)
        domain, codomain = self.domain, self.codomain
        return self._combine(
            domain,
            codomain,
            lambda x: codomain.subtract(self(x), other(x)),
            lambda y: domain.subtract(self.adjoint(y), other.adjoint(y)),
        )

    def __matmul__(self, other: LinearOperator) -> LinearOperator:
        """Composition, (A @ C) x = A(C x)."""
        if self.domain != other.codomain:
            raise ValueError("Operators cannot be composed")
        return self._combine(
            other.domain,
            self.codomain,
            lambda x: self(other(x)),
            lambda y: other.adjoint(self.adjoint(y)),
        )

    def __str__(self) -> str:
        return str(self.matrix())


class DiagonalLinearOperator(LinearOperator):
    """
    An operator with a diagonal component matrix, the usual form of an
    uncorrelated background or observation error covariance. It knows its
    inverse and square root.
    """

    def __init__(
        self, domain: HilbertSpace, codomain: HilbertSpace, diagonal_values: Any
    ) -> None:
        """
        Args:
            domain (HilbertSpace): Space the operator acts on.
            codomain (HilbertSpace): Space of the same dimension.
            diagonal_values (array-like): The diagonal entries.
        """
        diagonal_values = np.asarray(diagonal_values, dtype=float)
        if domain.dim != codomain.dim:
            raise ValueError("Domain and codomain must have the same dimension")
        if domain.dim != len(diagonal_values):
            raise ValueError("Number of diagonal values must match the dimension")
        self._diagonal_values = diagonal_values
        matrix = diags([diagonal_values], [0])
        operator = LinearOperator.from_matrix(domain, codomain, matrix)
        super().__init__(
            operator.domain,
            operator.codomain,
            operator,
            adjoint_mapping=operator.adjoint,
        )

    @staticmethod
    def euclidean(diagonal_values: Any) -> DiagonalLinearOperator:
        """The diagonal operator on R^n, n = len(diagonal_values)."""
        from .hilbert_space import EuclideanSpace

        space = EuclideanSpace(len(diagonal_values))
        return DiagonalLinearOperator(space, space, diagonal_values)

    @property
    def diagonal_values(self) -> np.ndarray:
        """The diagonal entries."""
        return self._diagonal_values

    @property
    def inverse(self) -> DiagonalLinearOperator:
        """The inverse. Raises ValueError if an entry is zero."""
        if np.any(self._diagonal_values == 0):
            raise ValueError("Diagonal operator with a zero entry is not invertible")
        diagonal_values = np.reciprocal(self._diagonal_values.copy())
        return DiagonalLinearOperator(self.codomain, self.domain, diagonal_values)

    @property
    def sqrt(self) -> DiagonalLinearOperator:
        """The square root. Raises ValueError if an entry is negative."""
        if np.any(self._diagonal_values < 0):
            raise ValueError("Diagonal operator has negative entries")
        return DiagonalLinearOperator(
            self.domain, self.codomain, np.sqrt(self._diagonal_values)
        )
