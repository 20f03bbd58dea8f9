"""
Module containing an abstract test class for implementations of the vector
contract used by the Krylov solvers.

To use it, create a concrete test class that inherits from this one and
provide a pytest fixture named `new_vector` returning a callable that
creates a new zero vector of the type under test.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

import pytest
import numpy as np

if TYPE_CHECKING:
    from pyvarda.vector_space import Vector


class VectorChecks:
    """
    Contract tests for pyvarda.vector_space.Vector implementations.
    """

    @pytest.fixture
    def x(self, new_vector) -> "Vector":
        """A random vector."""
        v = new_vector()
        v.random()
        return v

    @pytest.fixture
    def y(self, new_vector) -> "Vector":
        """A second random vector."""
        v = new_vector()
        v.random()
        return v

    @pytest.fixture
    def a(self) -> float:
        """A random scalar."""
        return np.random.randn()

    def test_new_vector_is_zero(self, new_vector):
        """A new vector has zero norm."""
        assert new_vector().dot(new_vector()) == 0

    def test_zero(self, x: "Vector"):
        """After zero(), dot(v, v) == 0."""
        x.zero()
        assert x.dot(x) == 0

    def test_random(self, new_vector):
        """After random(), dot(v, v) > 0."""
        v = new_vector()
        v.random()
        assert v.dot(v) > 0

    def test_copy_is_independent(self, x: "Vector"):
        """Changing a copy leaves the original unchanged."""
        expected = x.dot(x)
        z = x.copy()
        z *= 3.0
        z += x
        assert np.isclose(x.dot(x), expected)
        assert np.isclose(z.dot(z), 16 * expected)

    def test_dot_symmetry(self, x: "Vector", y: "Vector"):
        """<x, y> == <y, x>."""
        assert np.isclose(x.dot(y), y.dot(x))

    def test_axpy(self, x: "Vector", y: "Vector", a: float):
        """<y + a x, y + a x> expands bilinearly."""
        expected = y.dot(y) + 2 * a * x.dot(y) + a * a * x.dot(x)
        z = y.copy()
        z.axpy(a, x)
        assert np.isclose(z.dot(z), expected)

    def test_scaling(self, x: "Vector", a: float):
        """||a x|| == |a| ||x||."""
        z = x.copy()
        z *= a
        assert np.isclose(z.norm(), abs(a) * x.norm())

    def test_add_subtract_identity(self, x: "Vector", y: "Vector"):
        """(x + y) - y == x."""
        z = x.copy()
        z += y
        z -= y
        z -= x
        assert z.norm() <= 1e-12 * max(x.norm(), 1.0)

    def test_dot_linearity(self, x: "Vector", y: "Vector", a: float):
        """<a x + y, y> == a <x, y> + <y, y>."""
        z = y.copy()
        z.axpy(a, x)
        assert np.isclose(z.dot(y), a * x.dot(y) + y.dot(y))
