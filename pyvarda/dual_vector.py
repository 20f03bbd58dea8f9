"""
Dual-space vectors: per-term observation/constraint space vectors and the
ordered collection of them built while an operator is applied.
"""

from __future__ import annotations
from typing import Iterator, List, Optional

from .control_increment import ControlIncrement
from .exceptions import ConsistencyError
from .hilbert_space import HilbertSpace, Vector as Element
from .vector_space import Vector


class GeneralizedDepartures(Vector):
    """
    A vector in the dual (observation or constraint) space of one cost term.

    Attributes:
        values: The element of the term's space.
    """

    def __init__(self, space: HilbertSpace, values: Optional[Element] = None) -> None:
        """
        Args:
            space (HilbertSpace): The dual space of the term.
            values: Initial values. Zero if not given. The values are not copied.
        """
        self._space = space
        self.values = space.zero if values is None else values

    @property
    def space(self) -> HilbertSpace:
        """The space the values live in."""
        return self._space

    def _check_compatible(self, other: GeneralizedDepartures) -> None:
        if not isinstance(other, GeneralizedDepartures) or other.space != self.space:
            raise ConsistencyError("Departures belong to different spaces")

    def zero(self) -> None:
        self.values = self.space.zero

    def random(self) -> None:
        self.values = self.space.random()

    def copy(self) -> GeneralizedDepartures:
        return GeneralizedDepartures(self.space, self.space.copy(self.values))

    def axpy(self, a: float, other: GeneralizedDepartures) -> None:
        self._check_compatible(other)
        self.values = self.space.axpy(a, other.values, self.values)

    def dot(self, other: GeneralizedDepartures) -> float:
        self._check_compatible(other)
        return self.space.inner_product(self.values, other.values)

    def __imul__(self, a: float) -> GeneralizedDepartures:
        self.values = self.space.multiply(a, self.values)
        return self

    def __repr__(self) -> str:
        return f"GeneralizedDepartures(dim={self.space.dim})"


class DualVector(Vector):
    """
    An ordered, heterogeneous collection of dual-space vectors, one per cost
    term, optionally preceded by a background-linked control increment.

    Entries are positionally aligned with the cost function's term order.
    """

    def __init__(self, dx: Optional[ControlIncrement] = None) -> None:
        """
        Args:
            dx (ControlIncrement | None): Optional background-linked slot.
        """
        self._dx = dx
        self._entries: List[Vector] = []

    @property
    def dx(self) -> Optional[ControlIncrement]:
        """The background-linked slot, or None."""
        return self._dx

    @dx.setter
    def dx(self, value: Optional[ControlIncrement]) -> None:
        self._dx = value

    def append(self, vector: Vector) -> None:
        """Append an entry. Its index is the arrival order."""
        self._entries.append(vector)

    def getv(self, i: int) -> Vector:
        """Returns the ith entry."""
        return self._entries[i]

    def clear(self) -> None:
        """Remove all entries and the background-linked slot."""
        self._entries = []
        self._dx = None

    def __getitem__(self, i: int) -> Vector:
        return self._entries[i]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Vector]:
        return iter(self._entries)

    def _check_compatible(self, other: DualVector) -> None:
        if not isinstance(other, DualVector):
            raise ConsistencyError("Expected a DualVector")
        if len(self) != len(other) or (self.dx is None) != (other.dx is None):
            raise ConsistencyError("Dual vectors have different structure")

    def zero(self) -> None:
        if self.dx is not None:
            self.dx.zero()
        for entry in self._entries:
            entry.zero()

    def random(self) -> None:
        if self.dx is not None:
            self.dx.random()
        for entry in self._entries:
            entry.random()

    def copy(self) -> DualVector:
        other = DualVector(None if self.dx is None else self.dx.copy())
        for entry in self._entries:
            other.append(entry.copy())
        return other

    def axpy(self, a: float, other: DualVector) -> None:
        self._check_compatible(other)
        if self.dx is not None:
            self.dx.axpy(a, other.dx)
        for mine, theirs in zip(self._entries, other):
            mine.axpy(a, theirs)

    def dot(self, other: DualVector) -> float:
        self._check_compatible(other)
        product = 0.0
        if self.dx is not None:
            product += self.dx.dot(other.dx)
        for mine, theirs in zip(self._entries, other):
            product += mine.dot(theirs)
        return product

    def __imul__(self, a: float) -> DualVector:
        if self.dx is not None:
            self.dx *= a
        for entry in self._entries:
            entry *= a
        return self

    def __repr__(self) -> str:
        return f"DualVector(nterms={len(self)}, has_dx={self.dx is not None})"
