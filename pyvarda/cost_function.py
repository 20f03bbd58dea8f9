"""
Module for the incremental cost function and the interfaces of its
collaborators: the background term, the observation/constraint terms and
the model runner that integrates over the assimilation window.

The minimization core only ever sees these interfaces. Concrete models and
observation operators are supplied from outside.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import logging
from typing import Any, Optional, Sequence

from .control_increment import ControlIncrement, ControlSpace
from .dual_vector import DualVector, GeneralizedDepartures
from .observers import ADObserver, ObserverSet, TLObserver


logger = logging.getLogger(__name__)


class ModelRunner(ABC):
    """
    Executes one tangent-linear or adjoint integration over the window,
    invoking the enrolled observers at their simulated times. Errors raised
    by the model propagate to the caller.
    """

    @property
    @abstractmethod
    def begin(self) -> Any:
        """Start of the assimilation window."""

    @property
    @abstractmethod
    def end(self) -> Any:
        """End of the assimilation window."""

    @abstractmethod
    def run_tlm(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        """Tangent-linear integration of dx. The increment may be overwritten."""

    @abstractmethod
    def run_adj(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        """
        Adjoint integration. On return dx holds the adjoint increment at the
        start of the window.
        """


class BackgroundTerm(ABC):
    """
    The background term Jb of the cost function.
    """

    @property
    @abstractmethod
    def control_space(self) -> ControlSpace:
        """The control space of the increments."""

    def new_increment(self) -> ControlIncrement:
        """Returns a zero increment in the control space."""
        return ControlIncrement(self.control_space)

    def initialize_tl(self) -> Optional[TLObserver]:
        """Returns an observer for the tangent-linear run, if one is needed."""
        return None

    def finalize_tl(
        self, observer: Optional[TLObserver], dx: ControlIncrement, out: ControlIncrement
    ) -> None:
        """
        Combines the output of the background observer with dx and writes
        the increment that B^-1 acts on into out. By default this is dx.
        """
        out.assign(dx)

    def initialize_ad(
        self, out: ControlIncrement, tmp: ControlIncrement
    ) -> Optional[ADObserver]:
        """
        Returns an observer for the adjoint run, if one is needed. By default
        tmp is added into out and no observer is returned.
        """
        out += tmp
        return None

    def finalize_ad(self, observer: Optional[ADObserver]) -> None:
        """Completes the background contribution after the adjoint run."""

    @abstractmethod
    def multiply_binv(self, dx: ControlIncrement, out: ControlIncrement) -> None:
        """Writes B^-1 dx into out."""

    @abstractmethod
    def multiply_b(self, dx: ControlIncrement, out: ControlIncrement) -> None:
        """Writes B dx into out."""

    @abstractmethod
    def first_guess(self) -> ControlIncrement:
        """The current first guess x_k - x_b as a control increment."""

    def add_gradient_fg(self, out: ControlIncrement) -> None:
        """Adds B^-1 times the first guess into out."""
        tmp = self.new_increment()
        self.multiply_binv(self.first_guess(), tmp)
        out += tmp


class CostTerm(ABC):
    """
    An observation or constraint term of the cost function.
    """

    @abstractmethod
    def setup_tl(self, dx: ControlIncrement) -> TLObserver:
        """Returns the observer computing H dx during a tangent-linear run."""

    @abstractmethod
    def setup_ad(
        self, forcing: GeneralizedDepartures, accumulator: ControlIncrement
    ) -> ADObserver:
        """Returns the observer injecting H^T forcing during an adjoint run."""

    @abstractmethod
    def multiply_co_inv(self, dy: GeneralizedDepartures) -> GeneralizedDepartures:
        """Returns R^-1 dy."""

    @abstractmethod
    def multiply_covar(self, dy: GeneralizedDepartures) -> GeneralizedDepartures:
        """Returns R dy."""

    @abstractmethod
    def new_dual_vector(self) -> GeneralizedDepartures:
        """Returns a zero vector in the term's dual space."""

    @abstractmethod
    def new_gradient_fg(self) -> GeneralizedDepartures:
        """
        Returns the gradient of the term at the first guess in its dual space,
        R^-1 (H(x_k) - y).
        """


class CostFunction:
    """
    The incremental cost function J = Jb + sum_j Jo_j. The background, the
    terms and the model runner are borrowed, not owned.
    """

    def __init__(
        self,
        background: BackgroundTerm,
        terms: Sequence[CostTerm],
        runner: ModelRunner,
    ) -> None:
        """
        Args:
            background (BackgroundTerm): The background term.
            terms ([CostTerm]): The observation/constraint terms, in order.
            runner (ModelRunner): Runs tangent-linear and adjoint integrations.
        """
        self._background = background
        self._terms = tuple(terms)
        self._runner = runner

    @property
    def jb(self) -> BackgroundTerm:
        """The background term."""
        return self._background

    @property
    def terms(self) -> tuple:
        """The terms, in order."""
        return self._terms

    @property
    def nterms(self) -> int:
        """Number of observation/constraint terms."""
        return len(self._terms)

    @property
    def runner(self) -> ModelRunner:
        return self._runner

    @property
    def control_space(self) -> ControlSpace:
        return self.jb.control_space

    def jterm(self, i: int) -> CostTerm:
        """Returns the ith term."""
        return self._terms[i]

    def new_increment(self) -> ControlIncrement:
        """Returns a zero control increment."""
        return self.jb.new_increment()

    def zero_ad(self, dx: ControlIncrement) -> None:
        """Prepares an increment to receive an adjoint integration."""
        dx.zero()

    def run_tlm(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        self._runner.run_tlm(dx, observers)

    def run_adj(self, dx: ControlIncrement, observers: ObserverSet) -> None:
        self._runner.run_adj(dx, observers)

    def compute_gradient_fg(self, out: ControlIncrement) -> None:
        """
        Writes the gradient of the cost function at the first guess,
        B^-1 (x_k - x_b) + sum_j H_j^T R_j^-1 (H_j(x_k) - y_j), into out.
        One adjoint integration is run.
        """
        observers = ObserverSet()
        dw = self.new_increment()
        self.zero_ad(dw)
        for term in self._terms:
            observers.enroll(term.setup_ad(term.new_gradient_fg(), dw))
        logger.debug("Gradient at first guess: %d adjoint observers", len(observers))
        self.run_adj(dw, observers)
        out.assign(dw)
        self.jb.add_gradient_fg(out)

    def new_dual_vector(self) -> DualVector:
        """Returns a dual vector with one zero entry per term."""
        dual = DualVector()
        for term in self._terms:
            dual.append(term.new_dual_vector())
        return dual

    def __repr__(self) -> str:
        return f"CostFunction(nterms={self.nterms})"
