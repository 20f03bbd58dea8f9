"""
Tests for dual-space vectors.
"""

import pytest
import numpy as np

from pyvarda.control_increment import ControlIncrement, ControlSpace
from pyvarda.dual_vector import DualVector, GeneralizedDepartures
from pyvarda.exceptions import ConsistencyError
from pyvarda.hilbert_space import EuclideanSpace

from .checks.vector import VectorChecks


@pytest.fixture
def obs_spaces():
    return [EuclideanSpace(3), EuclideanSpace(2)]


@pytest.fixture
def control_space():
    return ControlSpace(EuclideanSpace(4))


class TestGeneralizedDepartures(VectorChecks):

    @pytest.fixture
    def new_vector(self):
        space = EuclideanSpace(6)
        return lambda: GeneralizedDepartures(space)


class TestDualVector(VectorChecks):

    @pytest.fixture
    def new_vector(self, obs_spaces):
        def factory():
            dual = DualVector()
            for space in obs_spaces:
                dual.append(GeneralizedDepartures(space))
            return dual

        return factory


class TestDualVectorWithBackgroundSlot(VectorChecks):

    @pytest.fixture
    def new_vector(self, obs_spaces, control_space):
        def factory():
            dual = DualVector(ControlIncrement(control_space))
            for space in obs_spaces:
                dual.append(GeneralizedDepartures(space))
            return dual

        return factory


def test_entries_keep_arrival_order(obs_spaces):
    dual = DualVector()
    first = GeneralizedDepartures(obs_spaces[0], np.array([1.0, 2.0, 3.0]))
    second = GeneralizedDepartures(obs_spaces[1], np.array([4.0, 5.0]))
    dual.append(first)
    dual.append(second)
    assert len(dual) == 2
    assert dual[0] is first
    assert dual.getv(1) is second
    assert list(dual) == [first, second]


def test_dot_adds_matching_entries(obs_spaces, control_space):
    dual = DualVector(ControlIncrement(control_space))
    dual.dx.state = np.array([1.0, 0.0, 0.0, 0.0])
    dual.append(GeneralizedDepartures(obs_spaces[0], np.array([1.0, 1.0, 1.0])))
    dual.append(GeneralizedDepartures(obs_spaces[1], np.array([2.0, 0.0])))
    assert dual.dot(dual) == pytest.approx(1 + 3 + 4)


def test_structure_mismatch_fails(obs_spaces, control_space):
    a = DualVector()
    a.append(GeneralizedDepartures(obs_spaces[0]))
    b = DualVector()
    b.append(GeneralizedDepartures(obs_spaces[0]))
    b.append(GeneralizedDepartures(obs_spaces[1]))
    with pytest.raises(ConsistencyError):
        a.dot(b)

    c = DualVector(ControlIncrement(control_space))
    c.append(GeneralizedDepartures(obs_spaces[0]))
    with pytest.raises(ConsistencyError):
        a.dot(c)


def test_departures_in_different_spaces_fail(obs_spaces):
    a = GeneralizedDepartures(obs_spaces[0])
    b = GeneralizedDepartures(obs_spaces[1])
    with pytest.raises(ConsistencyError):
        a += b


def test_clear(obs_spaces, control_space):
    dual = DualVector(ControlIncrement(control_space))
    dual.append(GeneralizedDepartures(obs_spaces[0]))
    dual.clear()
    assert len(dual) == 0
    assert dual.dx is None
