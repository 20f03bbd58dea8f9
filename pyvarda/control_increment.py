"""
Control-space vectors: the model-space increment together with the
auxiliary-control increments (e.g. observation bias) of the cost terms.
"""

from __future__ import annotations
from typing import List, Optional, Sequence

from .exceptions import ConsistencyError
from .hilbert_space import HilbertSpace, Vector as Element
from .vector_space import Vector


class ControlSpace:
    """
    The space of control increments. It is made up of the space the model
    increments live in and an ordered list of auxiliary-control spaces. An
    entry of the list may be None for terms without auxiliary control.
    """

    def __init__(
        self,
        state_space: HilbertSpace,
        aux_spaces: Sequence[Optional[HilbertSpace]] = (),
    ) -> None:
        """
        Args:
            state_space (HilbertSpace): Space of the model increments.
            aux_spaces ([HilbertSpace | None]): Auxiliary-control spaces.
        """
        self._state_space = state_space
        self._aux_spaces = list(aux_spaces)

    @property
    def state_space(self) -> HilbertSpace:
        """Space of the model-space part of the increment."""
        return self._state_space

    @property
    def aux_spaces(self) -> List[Optional[HilbertSpace]]:
        """Auxiliary-control spaces, aligned with the increment's aux list."""
        return self._aux_spaces

    @property
    def dim(self) -> int:
        """Total number of components."""
        return self.state_space.dim + sum(
            space.dim for space in self.aux_spaces if space is not None
        )

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, ControlSpace):
            return False
        return self.state_space == other.state_space and len(self.aux_spaces) == len(
            other.aux_spaces
        ) and all(a == b for a, b in zip(self.aux_spaces, other.aux_spaces))

    def __hash__(self):
        return hash((self.state_space, tuple(self.aux_spaces)))


class ControlIncrement(Vector):
    """
    A full control-space perturbation. Instances start at zero.

    Attributes:
        state: The model-space increment, an element of the state space.
        aux: Auxiliary-control increments, one per auxiliary space (None
            where the space is None).
    """

    def __init__(self, space: ControlSpace) -> None:
        self._space = space
        self.state: Element = space.state_space.zero
        self.aux: List[Optional[Element]] = [
            None if aux_space is None else aux_space.zero
            for aux_space in space.aux_spaces
        ]

    @property
    def space(self) -> ControlSpace:
        """The control space of the increment."""
        return self._space

    def _pairs(self):
        # Iterate over (space, index) for the non-empty auxiliary entries.
        for i, aux_space in enumerate(self.space.aux_spaces):
            if aux_space is not None:
                yield aux_space, i

    def _check_compatible(self, other: ControlIncrement) -> None:
        if not isinstance(other, ControlIncrement) or other.space != self.space:
            raise ConsistencyError("Control increments belong to different spaces")

    def zero(self) -> None:
        self.state = self.space.state_space.zero
        for aux_space, i in self._pairs():
            self.aux[i] = aux_space.zero

    def random(self) -> None:
        self.state = self.space.state_space.random()
        for aux_space, i in self._pairs():
            self.aux[i] = aux_space.random()

    def copy(self) -> ControlIncrement:
        other = ControlIncrement(self.space)
        other.assign(self)
        return other

    def assign(self, other: ControlIncrement) -> None:
        """Overwrite the contents with a copy of another increment."""
        self._check_compatible(other)
        state_space = self.space.state_space
        self.state = state_space.copy(other.state)
        for aux_space, i in self._pairs():
            self.aux[i] = aux_space.copy(other.aux[i])

    def axpy(self, a: float, other: ControlIncrement) -> None:
        self._check_compatible(other)
        self.state = self.space.state_space.axpy(a, other.state, self.state)
        for aux_space, i in self._pairs():
            self.aux[i] = aux_space.axpy(a, other.aux[i], self.aux[i])

    def dot(self, other: ControlIncrement) -> float:
        self._check_compatible(other)
        product = self.space.state_space.inner_product(self.state, other.state)
        for aux_space, i in self._pairs():
            product += aux_space.inner_product(self.aux[i], other.aux[i])
        return product

    def __imul__(self, a: float) -> ControlIncrement:
        self.state = self.space.state_space.multiply(a, self.state)
        for aux_space, i in self._pairs():
            self.aux[i] = aux_space.multiply(a, self.aux[i])
        return self

    def __repr__(self) -> str:
        return f"ControlIncrement(norm={self.norm():.6e}, naux={len(self.aux)})"
