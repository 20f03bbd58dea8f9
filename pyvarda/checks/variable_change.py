"""
Self-checks for linear changes of variable.
"""

from __future__ import annotations
import logging
from typing import Optional, TYPE_CHECKING

from ..config import CheckConfig
from .adjoint import log_adjoint_test

if TYPE_CHECKING:
    from ..variable_change import LinearVariableChange


logger = logging.getLogger(__name__)


class LinearVariableChangeChecks:
    """
    Checks a LinearVariableChange K: zero maps to zero, K^T is the adjoint
    of K, and K^-1 inverts K. The inverse check is skipped when the
    configuration turns it off.
    """

    def __init__(
        self, change: LinearVariableChange, /, *, config: Optional[CheckConfig] = None
    ) -> None:
        self._change = change
        self._config = CheckConfig() if config is None else config

    @property
    def space(self):
        return self._change.space

    def zero(self) -> None:
        space = self.space
        change = self._change
        actions = [("K", change.multiply), ("K^T", change.multiply_ad)]
        if self._config.test_inverse:
            actions += [
                ("K^-1", change.multiply_inverse),
                ("K^-T", change.multiply_inverse_ad),
            ]
        for name, action in actions:
            if space.norm(action(space.zero)) != 0:
                raise AssertionError(f"{name} applied to zero is not zero")

    def adjoint(self) -> None:
        """<K x, y> = <x, K^T y>, and likewise for K^-1."""
        space = self.space
        change = self._change
        pairs = [("K", change.multiply, change.multiply_ad)]
        if self._config.test_inverse:
            pairs.append(
                ("K^-1", change.multiply_inverse, change.multiply_inverse_ad)
            )
        for label, forward, backward in pairs:
            x = space.random()
            y = space.random()
            report = log_adjoint_test(
                space.inner_product(forward(space.copy(x)), y),
                space.inner_product(x, backward(space.copy(y))),
                label,
            )
            if not report.passes(self._config.tolerance):
                raise AssertionError(
                    f"Adjoint test of {label} failed: relative mismatch "
                    f"{report.relative_mismatch:.4e}"
                )

    def inverse(self) -> None:
        """K^-1 K x = x and K^-T K^T x = x."""
        if not self._config.test_inverse:
            logger.info("Inverse test of the change of variable skipped")
            return
        space = self.space
        change = self._change
        pairs = [
            ("K^-1 K", change.multiply, change.multiply_inverse),
            ("K^-T K^T", change.multiply_ad, change.multiply_inverse_ad),
        ]
        for label, forward, backward in pairs:
            x = space.random()
            y = backward(forward(space.copy(x)))
            error = space.norm(space.subtract(y, x)) / space.norm(x)
            logger.info("Inverse test %s: relative error %.6e", label, error)
            if error > self._config.tolerance_inverse:
                raise AssertionError(
                    f"{label} differs from the identity: relative error {error:.4e}"
                )

    def run_all(self) -> None:
        self.zero()
        self.adjoint()
        self.inverse()
