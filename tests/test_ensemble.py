"""
Tests for ensemble linearization.
"""

import pytest
import numpy as np

from pyvarda.config import EnsembleConfig
from pyvarda.ensemble import Ensemble, State, StateEnsemble
from pyvarda.exceptions import ConfigurationError, ConsistencyError
from pyvarda.hilbert_space import EuclideanSpace
from pyvarda.linear_operators import DiagonalLinearOperator, LinearOperator
from pyvarda.variable_change import OperatorVariableChange


VALID_TIME = "2020-01-01T00:00:00Z"


@pytest.fixture
def space() -> EuclideanSpace:
    return EuclideanSpace(3)


@pytest.fixture
def members() -> dict:
    """Four members with known values, keyed by their descriptors."""
    return {
        "mem001": np.array([1.0, 2.0, 0.0]),
        "mem002": np.array([3.0, -2.0, 1.0]),
        "mem003": np.array([-1.0, 0.0, 2.0]),
        "mem004": np.array([1.0, 4.0, 5.0]),
    }


@pytest.fixture
def reader(members):
    def read(descriptor):
        return State(members[descriptor].copy(), VALID_TIME)

    return read


@pytest.fixture
def config(members) -> dict:
    return {"members": 4, "state": list(members), "variables": ["u", "v", "t"]}


@pytest.fixture
def ensemble(space, config, reader) -> Ensemble:
    return Ensemble(VALID_TIME, config, space, reader)


def expected_perturbations(members):
    values = np.array(list(members.values()))
    return (values - values.mean(axis=0)) / np.sqrt(3.0)


def test_properties(ensemble):
    assert ensemble.size == 4
    assert tuple(ensemble.variables) == ("u", "v", "t")
    assert len(ensemble) == 0


def test_background_centred_with_zero_background(ensemble, space, members):
    ensemble.linearize(State(space.zero, VALID_TIME))
    assert len(ensemble) == 4
    expected = expected_perturbations(members)
    for m in range(4):
        assert np.allclose(ensemble[m], expected[m])


def test_background_value_cancels(ensemble, space, members):
    ensemble.linearize(State(np.array([10.0, -5.0, 2.0]), VALID_TIME))
    expected = expected_perturbations(members)
    for m in range(4):
        assert np.allclose(ensemble[m], expected[m])


def test_rescaled_variance_matches_sample_variance(ensemble, space, members):
    ensemble.linearize(State(space.zero, VALID_TIME))
    values = np.array(list(members.values()))
    assert np.allclose(ensemble.variance(), values.var(axis=0, ddof=1))
    trace = sum(space.squared_norm(p) for p in ensemble.perturbations)
    assert trace == pytest.approx(np.trace(np.cov(values.T)))


def test_interpolation_is_applied(ensemble, members):
    calls = []

    def interpolate(values):
        calls.append(values)
        return values[:3]

    background = State(np.array([0.0, 0.0, 0.0, 7.0]), VALID_TIME)
    ensemble.linearize(background, interpolate=interpolate)
    assert len(calls) == 1
    assert np.allclose(ensemble[0], expected_perturbations(members)[0])


def test_mean_centred_with_balance(ensemble, space, members):
    diagonal = np.array([1.0, 2.0, 4.0])
    balance = OperatorVariableChange(DiagonalLinearOperator(space, space, diagonal))
    ensemble.linearize(State(space.zero, VALID_TIME), balance=balance)
    expected = expected_perturbations(members) / diagonal
    for m in range(4):
        assert np.allclose(ensemble[m], expected[m])


def test_balance_without_inverse_fails(ensemble, space):
    operator = LinearOperator.self_adjoint(space, lambda x: 2 * x)
    balance = OperatorVariableChange(operator)
    with pytest.raises(NotImplementedError):
        ensemble.linearize(State(space.zero, VALID_TIME), balance=balance)


def test_relinearizing_replaces_perturbations(ensemble, space, members):
    ensemble.linearize(State(space.zero, VALID_TIME))
    ensemble.linearize(State(space.zero, VALID_TIME))
    assert len(ensemble) == 4


def test_background_valid_time_mismatch(ensemble, space):
    with pytest.raises(ConsistencyError):
        ensemble.linearize(State(space.zero, "2020-01-01T06:00:00Z"))


def test_member_valid_time_mismatch(space, config, members):
    def read(descriptor):
        time = "2020-01-01T06:00:00Z" if descriptor == "mem003" else VALID_TIME
        return State(members[descriptor], time)

    ensemble = Ensemble(VALID_TIME, config, space, read)
    with pytest.raises(ConsistencyError):
        ensemble.linearize(State(space.zero, VALID_TIME))


def test_member_count_mismatch(space, config, reader):
    config["members"] = 5
    ensemble = Ensemble(VALID_TIME, config, space, reader)
    with pytest.raises(ConfigurationError):
        ensemble.linearize(State(space.zero, VALID_TIME))


def test_single_member_is_rejected(space, reader):
    ensemble = Ensemble(
        VALID_TIME, EnsembleConfig(members=1, state=("mem001",)), space, reader
    )
    with pytest.raises(ConfigurationError):
        ensemble.linearize(State(space.zero, VALID_TIME))


def test_variance_before_linearize_fails(ensemble):
    with pytest.raises(ValueError):
        ensemble.variance()


def test_state_ensemble_mean(space, config, reader, members):
    states = StateEnsemble.from_config(space, config, reader)
    assert len(states) == 4
    mean = states.mean()
    assert mean.valid_time == VALID_TIME
    assert np.allclose(mean.values, np.mean(list(members.values()), axis=0))


def test_state_ensemble_mixed_times(space):
    states = StateEnsemble(
        space, [State(space.zero, VALID_TIME), State(space.zero, "later")]
    )
    with pytest.raises(ConsistencyError):
        states.mean()
