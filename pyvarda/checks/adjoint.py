"""
Adjoint-consistency tests for matrix-free operators.

A tangent-linear/adjoint pair G, G^T is consistent when <G dx, dy> equals
<dx, G^T dy> up to round-off. The report records both bilinear values and
their signed relative mismatch.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional

import numpy as np

from ..vector_space import Vector


@dataclass(frozen=True)
class AdjointTestReport:
    """
    Result of one adjoint test.

    Attributes:
        forward: The forward bilinear value <G dx, dy>.
        backward: The backward bilinear value <dx, G^T dy>.
        label: Name of the operator under test.
    """

    forward: float
    backward: float
    label: str = "G"

    @property
    def relative_mismatch(self) -> float:
        """(forward - backward) / forward."""
        if self.forward == 0:
            return 0.0 if self.backward == 0 else np.inf
        return (self.forward - self.backward) / self.forward

    def passes(self, tolerance: float) -> bool:
        """True if the absolute relative mismatch is below the tolerance."""
        return abs(self.relative_mismatch) < tolerance

    def __str__(self) -> str:
        label = self.label
        return (
            f"  <{label} dx,dy> = {self.forward:.16e}\n"
            f"  <dx,{label}^T dy> = {self.backward:.16e}\n"
            f"  <{label} dx,dy>-<dx,{label}^T dy>/<{label} dx,dy> = "
            f"{self.relative_mismatch:.16e}"
        )


def log_adjoint_test(
    forward: float,
    backward: float,
    label: str,
    /,
    *,
    header: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> AdjointTestReport:
    """
    Builds the report of an adjoint test and logs it at INFO level.

    Args:
        forward (float): The forward bilinear value.
        backward (float): The backward bilinear value.
        label (str): Name of the operator under test.
        header (str | None): Line logged before the report.
        logger (Logger | None): Destination. The module logger by default.

    Returns:
        AdjointTestReport: The report.
    """
    log = logging.getLogger(__name__) if logger is None else logger
    report = AdjointTestReport(float(forward), float(backward), label)
    if header is not None:
        log.info(header)
    log.info("Adjoint test %s:\n%s", label, report)
    return report


def check_operator_symmetry(
    operator: Callable[[Vector], Vector],
    x: Vector,
    y: Vector,
    /,
    *,
    tolerance: float,
    label: str = "A",
) -> AdjointTestReport:
    """
    Checks that an operator is self-adjoint for one pair of vectors,
    |<x, A y> - <A x, y>| / |<x, A y>| < tolerance.

    Args:
        operator (callable): The operator, applied as operator(v).
        x (Vector): First vector.
        y (Vector): Second vector.
        tolerance (float): Allowed relative mismatch.
        label (str): Name used in the report.

    Returns:
        AdjointTestReport: The report.

    Raises:
        AssertionError: If the mismatch exceeds the tolerance.
    """
    ay = operator(y.copy())
    ax = operator(x.copy())
    report = log_adjoint_test(x.dot(ay), ax.dot(y), label)
    if not report.passes(tolerance):
        raise AssertionError(
            f"Symmetry check of {label} failed: relative mismatch "
            f"{report.relative_mismatch:.4e} exceeds {tolerance:.1e}"
        )
    return report


def random_like(factory: Callable[[], Any]) -> Any:
    """Returns a new vector from the factory filled with random values."""
    v = factory()
    v.random()
    return v
