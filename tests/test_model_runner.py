"""
Tests for the model runner, the observers and the cost terms.
"""

import pytest
import numpy as np

from pyvarda.control_increment import ControlIncrement, ControlSpace
from pyvarda.cost_terms import CostJb, CostJo
from pyvarda.dual_vector import GeneralizedDepartures
from pyvarda.exceptions import ConsistencyError
from pyvarda.hilbert_space import EuclideanSpace
from pyvarda.linear_operators import DiagonalLinearOperator, LinearOperator
from pyvarda.model_runner import LinearModelRunner
from pyvarda.observers import ADObserver, ObserverSet, TLObserver


class Recorder(TLObserver):
    """Records the times and states it sees."""

    def __init__(self):
        self.events = []
        self.window = None
        self.finalized = False

    def initialize(self, begin, end):
        self.window = (begin, end)

    def process(self, dx, time):
        self.events.append((time, np.array(dx.state)))

    def finalize(self):
        self.finalized = True

    def release_output(self):
        return None


class Forcing(ADObserver):
    """Adds a constant forcing at one time and records the visits."""

    def __init__(self, time, forcing):
        self.time = time
        self.forcing = forcing
        self.times = []

    def process(self, dx, time):
        self.times.append(time)
        if time == self.time:
            dx.state = dx.state + self.forcing
        return dx


@pytest.fixture
def space():
    return EuclideanSpace(3)


@pytest.fixture
def matrix():
    return np.array([[1.0, 2.0, 0.0], [0.0, 1.0, -1.0], [0.5, 0.0, 1.0]])


@pytest.fixture
def runner(space, matrix):
    propagator = LinearOperator.from_matrix(space, space, matrix)
    return LinearModelRunner(space, propagator, ["t0", "t1", "t2"])


def test_runner_properties(runner):
    assert runner.begin == "t0"
    assert runner.end == "t2"
    assert runner.times == ["t0", "t1", "t2"]
    assert runner.tlm_runs == 0
    assert runner.adj_runs == 0


def test_tangent_linear_run(runner, space, matrix):
    dx = ControlIncrement(ControlSpace(space))
    dx.state = np.array([1.0, 2.0, 3.0])
    recorder = Recorder()
    observers = ObserverSet()
    observers.enroll(recorder)
    runner.run_tlm(dx, observers)

    assert recorder.window == ("t0", "t2")
    assert recorder.finalized
    assert [t for t, _ in recorder.events] == ["t0", "t1", "t2"]
    x0 = np.array([1.0, 2.0, 3.0])
    for k, (_, state) in enumerate(recorder.events):
        assert np.allclose(state, np.linalg.matrix_power(matrix, k) @ x0)
    assert runner.tlm_runs == 1


def test_adjoint_run(runner, space, matrix):
    dx = ControlIncrement(ControlSpace(space))
    f0 = np.array([1.0, 0.0, 0.0])
    f2 = np.array([0.0, 2.0, 1.0])
    first = Forcing("t0", f0)
    last = Forcing("t2", f2)
    observers = ObserverSet()
    observers.enroll(first)
    observers.enroll(last)
    runner.run_adj(dx, observers)

    assert first.times == ["t2", "t1", "t0"]
    expected = f0 + np.linalg.matrix_power(matrix.T, 2) @ f2
    assert np.allclose(dx.state, expected)
    assert runner.adj_runs == 1


def test_runner_validation(space):
    other = EuclideanSpace(2)
    with pytest.raises(ValueError):
        LinearModelRunner(
            space, LinearOperator.from_matrix(space, other, np.zeros((2, 3))), [0]
        )
    with pytest.raises(ValueError):
        LinearModelRunner(space, space.identity_operator(), [])


def test_observer_set_ignores_none():
    observers = ObserverSet()
    observers.enroll(None)
    recorder = Recorder()
    observers.enroll(recorder)
    observers.enroll(None)
    assert len(observers) == 1
    assert observers[0] is recorder
    assert observers.release_output_from_tl(0) is None


def test_observer_set_threads_returned_increment(space):
    control_space = ControlSpace(space)
    replacement = ControlIncrement(control_space)

    class Replacing(ADObserver):
        def process(self, dx, time):
            return replacement

    seen = []

    class Watching(ADObserver):
        def process(self, dx, time):
            seen.append(dx)
            return None

    observers = ObserverSet()
    observers.enroll(Replacing())
    observers.enroll(Watching())
    assert observers.process(ControlIncrement(control_space), 0) is replacement
    assert seen == [replacement]


def test_gradient_at_first_guess(toy_bias):
    out = toy_bias.cost_function.new_increment()
    toy_bias.cost_function.compute_gradient_fg(out)
    assert np.allclose(toy_bias.to_array(out), toy_bias.gradient())
    assert toy_bias.runner.adj_runs == 1
    assert toy_bias.runner.tlm_runs == 0


# =============================================================================
# Cost terms
# =============================================================================


def test_observation_time_not_reached(toy):
    term = CostJo(
        toy.terms[0].obs_space,
        toy.departures[0],
        DiagonalLinearOperator(toy.terms[0].obs_space, toy.terms[0].obs_space, toy.r_diags[0]),
        toy.terms[0].obs_operator,
        time=7,
    )
    dx = toy.cost_function.new_increment()
    observers = ObserverSet()
    observer = term.setup_tl(dx)
    observers.enroll(observer)
    toy.runner.run_tlm(dx, observers)
    with pytest.raises(ConsistencyError):
        observer.release_output()

    observers = ObserverSet()
    observers.enroll(term.setup_ad(term.new_gradient_fg(), dx))
    with pytest.raises(ConsistencyError):
        toy.runner.run_adj(dx, observers)


def test_observation_term_weights(toy):
    term = toy.terms[0]
    dy = GeneralizedDepartures(term.obs_space, np.ones(term.obs_space.dim))
    assert np.allclose(term.multiply_co_inv(dy).values, 1.0 / toy.r_diags[0])
    assert np.allclose(term.multiply_covar(dy).values, toy.r_diags[0])
    assert np.allclose(
        term.new_gradient_fg().values, toy.departures[0] / toy.r_diags[0]
    )
    assert term.new_dual_vector().norm() == 0


def test_set_departures(toy):
    term = toy.terms[1]
    term.set_departures(np.ones(term.obs_space.dim))
    assert np.allclose(term.new_gradient_fg().values, 1.0 / toy.r_diags[1])


def test_observation_term_validation(space):
    obs_space = EuclideanSpace(2)
    h = LinearOperator.from_matrix(space, obs_space, np.ones((2, 3)))
    r = DiagonalLinearOperator.euclidean([1.0, 2.0])
    with pytest.raises(ValueError):
        CostJo(space, space.zero, r, h)
    with pytest.raises(ValueError):
        CostJo(obs_space, obs_space.zero, DiagonalLinearOperator.euclidean([1.0]), h)
    with pytest.raises(ValueError):
        CostJo(obs_space, obs_space.zero, r, h, aux_index=0)
    with pytest.raises(ValueError):
        CostJo(obs_space, obs_space.zero, r, h, bias_operator=h)


def test_background_term(space):
    control_space = ControlSpace(space, [EuclideanSpace(2)])
    jb = CostJb(
        control_space,
        DiagonalLinearOperator(space, space, np.array([1.0, 2.0, 4.0])),
    )
    assert jb.first_guess().norm() == 0

    dx = ControlIncrement(control_space)
    dx.state = np.array([1.0, 1.0, 1.0])
    dx.aux[0] = np.array([3.0, -1.0])
    out = jb.new_increment()
    jb.multiply_binv(dx, out)
    assert np.allclose(out.state, [1.0, 0.5, 0.25])
    # A missing auxiliary covariance acts as the identity.
    assert np.allclose(out.aux[0], [3.0, -1.0])

    fg = ControlIncrement(control_space)
    fg.state = np.array([2.0, 2.0, 2.0])
    jb.set_first_guess(fg)
    fg.state = np.zeros(3)
    assert np.allclose(jb.first_guess().state, [2.0, 2.0, 2.0])


def test_background_covariance_needs_an_inverse(space):
    operator = LinearOperator.self_adjoint(space, lambda x: 2 * x)
    with pytest.raises(ValueError):
        CostJb(ControlSpace(space), operator)
