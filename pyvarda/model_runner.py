"""
A model runner for linear propagators supplied as LinearOperators.
"""

from __future__ import annotations
import logging
from typing import Any, List, Sequence

from .cost_function import ModelRunner
from .control_increment import ControlIncrement
from .hilbert_space import HilbertSpace
from .linear_operators import LinearOperator
from .observers import ObserverSet


logger = logging.getLogger(__name__)


class LinearModelRunner(ModelRunner):
    """
    Runs a linear propagator M over an ordered list of observation times.

    In a tangent-linear run the observers see dx at times[0] and then M dx,
    M^2 dx, ... at the following times. The adjoint run sweeps the times in
    reverse, letting the observers add their forcing before applying M^T.
    An identity propagator gives a model whose tangent-linear and adjoint
    are both the identity.
    """

    def __init__(
        self, space: HilbertSpace, propagator: LinearOperator, times: Sequence[Any]
    ) -> None:
        """
        Args:
            space (HilbertSpace): Space of the model-space increments.
            propagator (LinearOperator): The propagator between consecutive
                times. It must map the space into itself.
            times ([Any]): The ordered simulated times. At least one.
        """
        if propagator.domain != space or propagator.codomain != space:
            raise ValueError("Propagator must map the increment space into itself")
        if len(times) == 0:
            raise ValueError("At least one time is required")
        self._space = space
        self._propagator = propagator
        self._times: List[Any] = list(times)
        self._ntlm = 0
        self._nadj = 0

    @property
    def begin(self) -> Any:
        return self._times[0]

    @property
    def end(self) -> Any:
        return self._times[-1]

    @property
    def times(self) -> List[Any]:
        """The simulated times."""
        return list(self._times)

    @property
    def tlm_runs(self) -> int:
        """Number of tangent-linear integrations performed."""
        return self._ntlm

    @property
    def adj_runs(self) -> int:
        """Number of adjoint integrations performed."""
        return self._nadj

    def run_tlm(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        self._ntlm += 1
        logger.debug("Tangent-linear run %d", self._ntlm)
        observers.initialize(self.begin, self.end)
        for k, time in enumerate(self._times):
            if k > 0:
                dx.state = self._propagator(dx.state)
            observers.process(dx, time)
        observers.finalize()

    def run_adj(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        self._nadj += 1
        logger.debug("Adjoint run %d", self._nadj)
        observers.initialize(self.begin, self.end)
        for k in range(len(self._times) - 1, -1, -1):
            result = observers.process(dx, self._times[k])
            if result is not dx:
                dx.assign(result)
            if k > 0:
                dx.state = self._propagator.adjoint(dx.state)
        observers.finalize()
