"""
Matrix-free operators of the primal incremental problem: the Hessian
B^-1 + H^T R^-1 H of the cost function and the background covariance B.
"""

from __future__ import annotations
import logging

from .checks.adjoint import log_adjoint_test
from .control_increment import ControlIncrement
from .cost_function import CostFunction
from .dual_vector import DualVector
from .observers import ObserverSet


logger = logging.getLogger(__name__)


class HessianMatrix:
    """
    The Hessian of the incremental cost function, B^-1 + H^T R^-1 H.

    Each product costs one tangent-linear and one adjoint integration. The
    operator counts its applications; the counter only labels diagnostics.
    """

    def __init__(self, cost_function: CostFunction, /, *, test: bool = False) -> None:
        """
        Args:
            cost_function (CostFunction): The cost function. Borrowed.
            test (bool): If True, run the online adjoint test on every product.
        """
        self._cost_function = cost_function
        self._test = test
        self._iteration = 0

    @property
    def iteration(self) -> int:
        """Number of products computed so far."""
        return self._iteration

    @property
    def test(self) -> bool:
        """True if the online adjoint test is enabled."""
        return self._test

    def multiply(self, dx: ControlIncrement) -> ControlIncrement:
        """
        Returns (B^-1 + H^T R^-1 H) dx. The input is not modified.
        """
        cf = self._cost_function
        jb = cf.jb
        self._iteration += 1

        # Tangent-linear run.
        tl_observers = ObserverSet()
        background_tl = jb.initialize_tl()
        tl_observers.enroll(background_tl)
        for term in cf.terms:
            tl_observers.enroll(term.setup_tl(dx))
        cf.run_tlm(dx.copy(), tl_observers)

        # Background contribution, B^-1 dx.
        dw = cf.new_increment()
        jb.finalize_tl(background_tl, dx, dw)
        tmp = cf.new_increment()
        jb.multiply_binv(dw, tmp)

        dz = cf.new_increment()
        ad_observers = ObserverSet()
        background_ad = jb.initialize_ad(dz, tmp)
        ad_observers.enroll(background_ad)

        # Weighted departures drive the adjoint run.
        cf.zero_ad(dw)
        offset = 0 if background_tl is None else 1
        hdx = DualVector()
        weighted = DualVector()
        for j, term in enumerate(cf.terms):
            hdx.append(tl_observers.release_output_from_tl(offset + j))
            weighted.append(term.multiply_co_inv(hdx[j]))
            ad_observers.enroll(term.setup_ad(weighted[j], dw))

        cf.run_adj(dw, ad_observers)
        dz += dw
        jb.finalize_ad(background_ad)

        if self._test:
            log_adjoint_test(
                weighted.dot(hdx),
                dx.dot(dw),
                "G",
                header=f"Online adjoint test, iteration: {self._iteration}",
                logger=logger,
            )
        return dz

    def __call__(self, dx: ControlIncrement) -> ControlIncrement:
        return self.multiply(dx)


class BMatrix:
    """The background error covariance B as an operator on control increments."""

    def __init__(self, cost_function: CostFunction, /) -> None:
        self._cost_function = cost_function

    def multiply(self, dx: ControlIncrement) -> ControlIncrement:
        """Returns B dx."""
        dz = self._cost_function.new_increment()
        self._cost_function.jb.multiply_b(dx, dz)
        return dz

    def __call__(self, dx: ControlIncrement) -> ControlIncrement:
        return self.multiply(dx)
