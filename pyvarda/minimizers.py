"""
Minimizers: one inner-loop solve of the incremental problem.

A minimizer builds the right-hand side from the gradient at the first
guess, hands the matrix-free operator to a Krylov solver and returns the
control increment.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, Optional, Tuple, Type

from .config import MinimizerConfig, as_minimizer_config
from .control_increment import ControlIncrement
from .cost_function import CostFunction
from .dual_vector import DualVector
from .exceptions import ConfigurationError
from .hessian import BMatrix, HessianMatrix
from .krylov import FGMRESSolver, GMRESRSolver, KrylovResult
from .saddle_point import SaddlePointMatrix, SaddlePointPrecondMatrix, SaddlePointVector


logger = logging.getLogger(__name__)

# Lines on this logger are compared against reference outputs.
test_logger = logging.getLogger("pyvarda.test")


class Minimizer(ABC):
    """
    Abstract base class for minimizers of the incremental cost function.
    """

    def __init__(self, cost_function: CostFunction, /) -> None:
        """
        Args:
            cost_function (CostFunction): The cost function. Borrowed.
        """
        self._cost_function = cost_function
        self._last_result: Optional[KrylovResult] = None

    @property
    def cost_function(self) -> CostFunction:
        return self._cost_function

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def last_result(self) -> Optional[KrylovResult]:
        """The Krylov result of the last minimization, if any."""
        return self._last_result

    def minimize(self, config: Any) -> ControlIncrement:
        """
        Runs one inner-loop minimization.

        Args:
            config (MinimizerConfig | Mapping): The options.

        Returns:
            ControlIncrement: The increment minimizing the quadratic cost.
        """
        options = as_minimizer_config(config)
        logger.info(
            "%s: at most %d iterations, target reduction %.1e",
            self.name,
            options.ninner,
            options.gradient_norm_reduction,
        )
        result = self._do_minimize(options)
        self._last_result = result
        test_logger.info(
            "%s: reduction in residual norm = %.4g", self.name, result.reduction
        )
        return self._extract(result)

    @abstractmethod
    def _do_minimize(self, options: MinimizerConfig) -> KrylovResult:
        """Solves the linear system and returns the Krylov result."""

    @abstractmethod
    def _extract(self, result: KrylovResult) -> ControlIncrement:
        """Returns the control increment held by the solution."""


class SaddlePointMinimizer(Minimizer):
    """
    Solves the saddle-point formulation with GMRESR, preconditioned by the
    inexact constraint preconditioner.
    """

    def _do_minimize(self, options: MinimizerConfig) -> KrylovResult:
        cf = self.cost_function

        multipliers = DualVector(cf.new_increment())
        for term in cf.terms:
            multipliers.append(term.new_dual_vector())
        unknown = SaddlePointVector(cf.new_increment(), multipliers)

        rhs_multipliers = DualVector(cf.jb.first_guess())
        for term in cf.terms:
            rhs_multipliers.append(term.multiply_covar(term.new_gradient_fg()))
        rhs = SaddlePointVector(cf.new_increment(), rhs_multipliers)
        rhs *= -1.0

        solver = GMRESRSolver(options.ninner, rtol=options.gradient_norm_reduction)
        return solver.solve(
            SaddlePointMatrix(cf),
            rhs,
            preconditioner=SaddlePointPrecondMatrix(cf),
            x0=unknown,
        )

    def _extract(self, result: KrylovResult) -> ControlIncrement:
        return result.solution.dx


class FGMRESMinimizer(Minimizer):
    """
    Solves the primal system (B^-1 + H^T R^-1 H) dx = -grad J with flexible
    GMRES, preconditioned by B. The solver, and with it the recycled search
    directions, is kept across calls while the options are unchanged.
    """

    def __init__(self, cost_function: CostFunction, /) -> None:
        super().__init__(cost_function)
        self._solver: Optional[FGMRESSolver] = None
        self._solver_key: Optional[Tuple] = None

    @property
    def solver(self) -> Optional[FGMRESSolver]:
        """The solver used by the last minimization."""
        return self._solver

    def _solver_for(self, options: MinimizerConfig) -> FGMRESSolver:
        key = (
            options.ninner,
            options.gradient_norm_reduction,
            options.restart,
            options.memory,
        )
        if self._solver is None or key != self._solver_key:
            self._solver = FGMRESSolver(
                options.ninner,
                rtol=options.gradient_norm_reduction,
                restart=options.restart,
                memory=options.memory,
            )
            self._solver_key = key
        return self._solver

    def _do_minimize(self, options: MinimizerConfig) -> KrylovResult:
        cf = self.cost_function
        rhs = cf.new_increment()
        cf.compute_gradient_fg(rhs)
        rhs *= -1.0

        hessian = HessianMatrix(cf, test=options.online_adjoint_test)
        return self._solver_for(options).solve(
            hessian, rhs, preconditioner=BMatrix(cf)
        )

    def _extract(self, result: KrylovResult) -> ControlIncrement:
        return result.solution


MINIMIZERS: Dict[str, Type[Minimizer]] = {
    "SaddlePoint": SaddlePointMinimizer,
    "FGMRES": FGMRESMinimizer,
}


def create_minimizer(config: Any, cost_function: CostFunction) -> Minimizer:
    """
    Returns the minimizer named by the algorithm option.

    Args:
        config (MinimizerConfig | Mapping): The options.
        cost_function (CostFunction): The cost function.

    Raises:
        ConfigurationError: If the algorithm is unknown.
    """
    options = as_minimizer_config(config)
    try:
        minimizer_class = MINIMIZERS[options.algorithm]
    except KeyError:
        raise ConfigurationError(
            f"Unknown minimizer '{options.algorithm}', expected one of "
            f"{sorted(MINIMIZERS)}"
        ) from None
    return minimizer_class(cost_function)
