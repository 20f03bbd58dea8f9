"""
Self-checks for error covariance implementations.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional, TYPE_CHECKING

from ..config import CheckConfig
from .adjoint import check_operator_symmetry, random_like

if TYPE_CHECKING:
    from ..cost_function import BackgroundTerm
    from ..vector_space import Vector


logger = logging.getLogger(__name__)


class ErrorCovarianceChecks:
    """
    Checks that a covariance C, given by its multiply and inverse-multiply
    actions, maps zero to zero, is symmetric, and that C^-1 C is the
    identity.
    """

    def __init__(
        self,
        multiply: Callable[[Vector], Vector],
        inverse_multiply: Callable[[Vector], Vector],
        new_vector: Callable[[], Vector],
        /,
        *,
        config: Optional[CheckConfig] = None,
    ) -> None:
        """
        Args:
            multiply (callable): Returns C dx.
            inverse_multiply (callable): Returns C^-1 dx.
            new_vector (callable): Returns a new zero vector.
            config (CheckConfig | None): Tolerances.
        """
        self._multiply = multiply
        self._inverse_multiply = inverse_multiply
        self._new_vector = new_vector
        self._config = CheckConfig() if config is None else config

    @staticmethod
    def from_background(
        background: BackgroundTerm, /, *, config: Optional[CheckConfig] = None
    ) -> ErrorCovarianceChecks:
        """Checks for the covariance of a background term."""

        def multiply(dx):
            out = background.new_increment()
            background.multiply_b(dx, out)
            return out

        def inverse_multiply(dx):
            out = background.new_increment()
            background.multiply_binv(dx, out)
            return out

        return ErrorCovarianceChecks(
            multiply, inverse_multiply, background.new_increment, config=config
        )

    def zero(self) -> None:
        """C 0 = 0 and C^-1 0 = 0."""
        dx = self._new_vector()
        for name, op in (("C", self._multiply), ("C^-1", self._inverse_multiply)):
            if op(dx.copy()).norm() != 0:
                raise AssertionError(f"{name} applied to zero is not zero")

    def symmetry(self) -> None:
        """<x, C y> = <C x, y>."""
        x = random_like(self._new_vector)
        y = random_like(self._new_vector)
        check_operator_symmetry(
            self._multiply, x, y, tolerance=self._config.tolerance, label="C"
        )

    def inverse(self) -> None:
        """||C^-1 C x - x|| / ||x|| is within the inverse tolerance."""
        x = random_like(self._new_vector)
        y = self._inverse_multiply(self._multiply(x.copy()))
        y -= x
        error = y.norm() / x.norm()
        logger.info("Covariance inverse test: relative error %.6e", error)
        if error > self._config.tolerance_inverse:
            raise AssertionError(
                f"C^-1 C differs from the identity: relative error {error:.4e}"
            )

    def run_all(self) -> None:
        """Runs every check."""
        self.zero()
        self.symmetry()
        self.inverse()
