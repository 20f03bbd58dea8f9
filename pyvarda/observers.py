"""
Integration observers.

A model runner integrates over the assimilation window and, at each
simulated time, hands the current increment to every enrolled observer.
Tangent-linear observers sample the increment (producing the term's
H dx); adjoint observers add their forcing into the running adjoint
increment. Observers are used for exactly one integration.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import logging
from typing import Any, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .control_increment import ControlIncrement
    from .dual_vector import GeneralizedDepartures


logger = logging.getLogger(__name__)


class TLObserver(ABC):
    """
    Observer enrolled in a tangent-linear integration.
    """

    def initialize(self, begin: Any, end: Any) -> None:
        """Called once before the integration starts."""

    @abstractmethod
    def process(self, dx: ControlIncrement, time: Any) -> None:
        """Called at each simulated time with the current increment."""

    def finalize(self) -> None:
        """Called once after the integration ends."""

    @abstractmethod
    def release_output(self) -> Optional[GeneralizedDepartures]:
        """Returns the output accumulated during the integration."""


class ADObserver(ABC):
    """
    Observer enrolled in an adjoint integration.
    """

    def initialize(self, begin: Any, end: Any) -> None:
        """Called once before the integration starts."""

    @abstractmethod
    def process(self, dx: ControlIncrement, time: Any) -> ControlIncrement:
        """
        Adds the observer's forcing at the given time into the running
        adjoint increment.

        Args:
            dx (ControlIncrement): The running adjoint increment.
            time: The simulated time.

        Returns:
            ControlIncrement: The updated adjoint increment.
        """

    def finalize(self) -> None:
        """Called once after the integration ends."""


class ObserverSet:
    """
    An ordered set of observers for one integration. Observers are invoked
    in the order of enrolment.
    """

    def __init__(self) -> None:
        self._observers: List[Any] = []

    def enroll(self, observer: Any) -> None:
        """
        Enroll an observer. None is ignored, so that a term with nothing to
        observe leaves the positions of the others unchanged.
        """
        if observer is not None:
            self._observers.append(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def __getitem__(self, i: int) -> Any:
        return self._observers[i]

    def initialize(self, begin: Any, end: Any) -> None:
        logger.debug("Initializing %d observers", len(self))
        for observer in self._observers:
            observer.initialize(begin, end)

    def process(self, dx: ControlIncrement, time: Any) -> ControlIncrement:
        """
        Broadcast the increment at the given time. The value returned by an
        observer, if any, replaces the increment for the observers that
        follow.
        """
        for observer in self._observers:
            result = observer.process(dx, time)
            if result is not None:
                dx = result
        return dx

    def finalize(self) -> None:
        for observer in self._observers:
            observer.finalize()

    def release_output_from_tl(self, i: int) -> Optional[GeneralizedDepartures]:
        """Returns the output of the ith enrolled tangent-linear observer."""
        return self._observers[i].release_output()
