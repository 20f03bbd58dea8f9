"""
Shared fixtures: a small linear assimilation problem whose Hessian, gradient
and solution are also available as dense matrices.
"""

import pytest
import numpy as np

from pyvarda.control_increment import ControlIncrement, ControlSpace
from pyvarda.cost_function import CostFunction
from pyvarda.cost_terms import CostJb, CostJo
from pyvarda.hilbert_space import EuclideanSpace
from pyvarda.linear_operators import DiagonalLinearOperator, LinearOperator
from pyvarda.model_runner import LinearModelRunner


class ToyProblem:
    """
    Two observation terms over a three-step window. The first term observes
    the increment at the start of the window, the second at the end. With
    bias=True the second term also carries a two-component bias control.
    """

    def __init__(self, *, n=6, obs_dims=(4, 3), bias=False, identity_model=False):
        self.state_space = EuclideanSpace(n)
        self.times = [0, 1, 2]

        if identity_model:
            self.model_matrix = np.eye(n)
            propagator = self.state_space.identity_operator()
        else:
            self.model_matrix = np.eye(n) + 0.2 * np.random.randn(n, n) / np.sqrt(n)
            propagator = LinearOperator.from_matrix(
                self.state_space, self.state_space, self.model_matrix
            )

        self.naux = 2 if bias else 0
        aux_spaces = [EuclideanSpace(self.naux)] if bias else []
        self.control_space = ControlSpace(self.state_space, aux_spaces)

        self.b_diag = 0.5 + np.random.rand(n)
        self.bias_b_diag = 0.5 + np.random.rand(self.naux)
        aux_covariances = None
        if bias:
            aux_covariances = [DiagonalLinearOperator.euclidean(self.bias_b_diag)]

        self.first_guess = ControlIncrement(self.control_space)
        self.first_guess.random()
        self.jb = CostJb(
            self.control_space,
            DiagonalLinearOperator(self.state_space, self.state_space, self.b_diag),
            first_guess=self.first_guess,
            aux_covariances=aux_covariances,
        )

        self.obs_matrices = []
        self.bias_matrix = None
        self.r_diags = []
        self.departures = []
        self.terms = []
        propagated = [np.eye(n), np.linalg.matrix_power(self.model_matrix, 2)]
        self.effective = []
        for j, (m, obs_time) in enumerate(zip(obs_dims, [0, None])):
            obs_space = EuclideanSpace(m)
            h = np.random.randn(m, n)
            r = 0.5 + np.random.rand(m)
            d = np.random.randn(m)
            options = {"time": obs_time}
            effective = np.zeros((m, n + self.naux))
            effective[:, :n] = h @ propagated[j]
            if bias and j == len(obs_dims) - 1:
                self.bias_matrix = np.random.randn(m, self.naux)
                options["aux_index"] = 0
                options["bias_operator"] = LinearOperator.from_matrix(
                    aux_spaces[0], obs_space, self.bias_matrix
                )
                effective[:, n:] = self.bias_matrix
            self.terms.append(
                CostJo(
                    obs_space,
                    d,
                    DiagonalLinearOperator(obs_space, obs_space, r),
                    LinearOperator.from_matrix(self.state_space, obs_space, h),
                    **options,
                )
            )
            self.obs_matrices.append(h)
            self.r_diags.append(r)
            self.departures.append(d)
            self.effective.append(effective)

        self.runner = LinearModelRunner(self.state_space, propagator, self.times)
        self.cost_function = CostFunction(self.jb, self.terms, self.runner)

    @property
    def dim(self):
        return self.state_space.dim + self.naux

    def to_array(self, dx):
        parts = [np.asarray(dx.state)] + [np.asarray(a) for a in dx.aux]
        return np.concatenate(parts)

    def increment(self, array):
        dx = ControlIncrement(self.control_space)
        n = self.state_space.dim
        dx.state = np.array(array[:n], dtype=float)
        if self.naux:
            dx.aux[0] = np.array(array[n:], dtype=float)
        return dx

    def b_matrix(self):
        return np.diag(np.concatenate([self.b_diag, self.bias_b_diag]))

    def hessian_matrix(self):
        a = np.linalg.inv(self.b_matrix())
        for h, r in zip(self.effective, self.r_diags):
            a += h.T @ np.diag(1.0 / r) @ h
        return a

    def gradient(self):
        g = np.linalg.solve(self.b_matrix(), self.to_array(self.first_guess))
        for h, r, d in zip(self.effective, self.r_diags, self.departures):
            g += h.T @ (d / r)
        return g

    def solution(self):
        return -np.linalg.solve(self.hessian_matrix(), self.gradient())


@pytest.fixture(autouse=True)
def seed():
    """Makes the randomised tests reproducible."""
    np.random.seed(42)


@pytest.fixture
def toy():
    """A toy problem with a non-trivial linear model."""
    return ToyProblem()


@pytest.fixture
def toy_bias():
    """A toy problem with an auxiliary bias control."""
    return ToyProblem(bias=True)


@pytest.fixture
def toy_identity():
    """A toy problem with identity tangent-linear and adjoint models."""
    return ToyProblem(identity_model=True)
