"""
The saddle-point (primal-dual) formulation of the incremental problem.

The unknown is a pair (dx, lambda) of a control increment and Lagrange
multipliers, one per term plus one linked to the background. The system

    [ 0  I  H^T ] [ dx       ]
    [ I  B  0   ] [ lambda_b ]
    [ H  0  R   ] [ lambda_o ]

is symmetric but indefinite. Its solution has the same primal part as the
solution of the Hessian system.
"""

from __future__ import annotations
import logging

from .control_increment import ControlIncrement
from .cost_function import CostFunction
from .dual_vector import DualVector
from .exceptions import ConsistencyError
from .observers import ObserverSet
from .vector_space import Vector


logger = logging.getLogger(__name__)


class SaddlePointVector(Vector):
    """
    A pair of a primal control increment and dual multipliers. All
    arithmetic is componentwise.
    """

    def __init__(self, dx: ControlIncrement, multipliers: DualVector) -> None:
        """
        Args:
            dx (ControlIncrement): The primal part. Not copied.
            multipliers (DualVector): The dual part. Not copied.
        """
        self.dx = dx
        self.multipliers = multipliers

    def _check_compatible(self, other: SaddlePointVector) -> None:
        if not isinstance(other, SaddlePointVector):
            raise ConsistencyError("Expected a SaddlePointVector")

    def zero(self) -> None:
        self.dx.zero()
        self.multipliers.zero()

    def random(self) -> None:
        self.dx.random()
        self.multipliers.random()

    def copy(self) -> SaddlePointVector:
        return SaddlePointVector(self.dx.copy(), self.multipliers.copy())

    def axpy(self, a: float, other: SaddlePointVector) -> None:
        self._check_compatible(other)
        self.dx.axpy(a, other.dx)
        self.multipliers.axpy(a, other.multipliers)

    def dot(self, other: SaddlePointVector) -> float:
        self._check_compatible(other)
        return self.dx.dot(other.dx) + self.multipliers.dot(other.multipliers)

    def __imul__(self, a: float) -> SaddlePointVector:
        self.dx *= a
        self.multipliers *= a
        return self

    def __repr__(self) -> str:
        return f"SaddlePointVector(nterms={len(self.multipliers)})"


class SaddlePointMatrix:
    """
    The saddle-point operator. Each product costs one tangent-linear and one
    adjoint integration.
    """

    def __init__(self, cost_function: CostFunction, /) -> None:
        self._cost_function = cost_function
        self._iteration = 0

    @property
    def iteration(self) -> int:
        """Number of products computed so far."""
        return self._iteration

    def multiply(self, x: SaddlePointVector) -> SaddlePointVector:
        cf = self._cost_function
        self._iteration += 1
        logger.debug("Saddle-point product %d", self._iteration)
        lam = x.multipliers

        # lambda_b part: B lambda_b + dx
        zdx = cf.new_increment()
        cf.jb.multiply_b(lam.dx, zdx)
        zdx += x.dx
        zlam = DualVector(zdx)

        # lambda_o part: R lambda_o + H dx
        tl_observers = ObserverSet()
        for term in cf.terms:
            tl_observers.enroll(term.setup_tl(x.dx))
        cf.run_tlm(x.dx.copy(), tl_observers)
        for j, term in enumerate(cf.terms):
            ww = term.multiply_covar(lam[j])
            ww += tl_observers.release_output_from_tl(j)
            zlam.append(ww)

        # dx part: lambda_b + H^T lambda_o
        dw = cf.new_increment()
        cf.zero_ad(dw)
        ad_observers = ObserverSet()
        for j, term in enumerate(cf.terms):
            ad_observers.enroll(term.setup_ad(lam[j], dw))
        cf.run_adj(dw, ad_observers)
        dw += lam.dx

        return SaddlePointVector(dw, zlam)

    def __call__(self, x: SaddlePointVector) -> SaddlePointVector:
        return self.multiply(x)


class SaddlePointPrecondMatrix:
    """
    Inexact constraint preconditioner: the exact inverse of the saddle-point
    operator with H dropped,

        [ -B  I  0    ]
        [  I  0  0    ]
        [  0  0  R^-1 ]

    No model integration is needed.
    """

    def __init__(self, cost_function: CostFunction, /) -> None:
        self._cost_function = cost_function

    def multiply(self, x: SaddlePointVector) -> SaddlePointVector:
        cf = self._cost_function
        lam = x.multipliers

        zlam = DualVector(x.dx.copy())
        for j, term in enumerate(cf.terms):
            zlam.append(term.multiply_co_inv(lam[j]))

        zdx = cf.new_increment()
        cf.jb.multiply_b(x.dx, zdx)
        zdx *= -1.0
        zdx += lam.dx

        return SaddlePointVector(zdx, zlam)

    def __call__(self, x: SaddlePointVector) -> SaddlePointVector:
        return self.multiply(x)
