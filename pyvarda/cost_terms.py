"""
Background and observation terms assembled from linear operators.

The terms here know nothing about a particular model or observing system.
They compose the covariances and linearized observation operators that a
collaborator hands them.
"""

from __future__ import annotations
from typing import Any, List, Optional, Sequence

from .control_increment import ControlIncrement, ControlSpace
from .cost_function import BackgroundTerm, CostTerm
from .dual_vector import GeneralizedDepartures
from .exceptions import ConsistencyError
from .hilbert_space import HilbertSpace, Vector
from .linear_operators import LinearOperator
from .observers import ADObserver, TLObserver


def _inverse_of(
    covariance: LinearOperator, inverse: Optional[LinearOperator]
) -> LinearOperator:
    # Diagonal operators know their inverse, anything else must be given one.
    if inverse is not None:
        return inverse
    if hasattr(covariance, "inverse"):
        return covariance.inverse
    raise ValueError("An inverse covariance must be supplied")


class CostJb(BackgroundTerm):
    """
    Static background term Jb = 1/2 (dx + x_k - x_b)^T B^-1 (dx + x_k - x_b).
    """

    def __init__(
        self,
        control_space: ControlSpace,
        covariance: LinearOperator,
        /,
        *,
        inverse_covariance: Optional[LinearOperator] = None,
        first_guess: Optional[ControlIncrement] = None,
        aux_covariances: Optional[Sequence[Optional[LinearOperator]]] = None,
    ) -> None:
        """
        Args:
            control_space (ControlSpace): The control space.
            covariance (LinearOperator): Background error covariance B on the
                state space.
            inverse_covariance (LinearOperator | None): B^-1. Taken from
                covariance.inverse when not given.
            first_guess (ControlIncrement | None): x_k - x_b. Zero if not given.
            aux_covariances ([LinearOperator | None] | None): Covariances of
                the auxiliary controls, aligned with the auxiliary spaces.
                A missing entry stands for the identity.
        """
        if covariance.domain != control_space.state_space:
            raise ValueError("Covariance does not act on the state space")
        self._control_space = control_space
        self._b = covariance
        self._binv = _inverse_of(covariance, inverse_covariance)

        naux = len(control_space.aux_spaces)
        aux_covariances = [] if aux_covariances is None else list(aux_covariances)
        if len(aux_covariances) > naux:
            raise ValueError("More auxiliary covariances than auxiliary spaces")
        aux_covariances += [None] * (naux - len(aux_covariances))
        self._aux_b: List[Optional[LinearOperator]] = aux_covariances
        self._aux_binv: List[Optional[LinearOperator]] = [
            None if cov is None else _inverse_of(cov, None) for cov in aux_covariances
        ]

        if first_guess is None:
            first_guess = ControlIncrement(control_space)
        self._first_guess = first_guess.copy()

    @property
    def control_space(self) -> ControlSpace:
        return self._control_space

    @property
    def covariance(self) -> LinearOperator:
        """The background error covariance on the state space."""
        return self._b

    def first_guess(self) -> ControlIncrement:
        return self._first_guess.copy()

    def set_first_guess(self, first_guess: ControlIncrement) -> None:
        """Replaces x_k - x_b, for example after an outer-loop update."""
        self._first_guess = first_guess.copy()

    def _apply(
        self,
        state_op: LinearOperator,
        aux_ops: List[Optional[LinearOperator]],
        dx: ControlIncrement,
        out: ControlIncrement,
    ) -> None:
        out.state = self._control_space.state_space.copy(state_op(dx.state))
        for i, aux_space in enumerate(self._control_space.aux_spaces):
            if aux_space is None:
                continue
            op = aux_ops[i]
            value = dx.aux[i] if op is None else op(dx.aux[i])
            out.aux[i] = aux_space.copy(value)

    def multiply_binv(self, dx: ControlIncrement, out: ControlIncrement) -> None:
        self._apply(self._binv, self._aux_binv, dx, out)

    def multiply_b(self, dx: ControlIncrement, out: ControlIncrement) -> None:
        self._apply(self._b, self._aux_b, dx, out)


class _JoTLObserver(TLObserver):
    """Samples H dx (plus the bias contribution) at the observation time."""

    def __init__(self, term: CostJo) -> None:
        self._term = term
        self._time = term.time
        self._output: Optional[Vector] = None

    def initialize(self, begin: Any, end: Any) -> None:
        if self._time is None:
            self._time = end
        self._output = None

    def process(self, dx: ControlIncrement, time: Any) -> None:
        if self._output is not None or time != self._time:
            return
        term = self._term
        hdx = term.obs_operator(dx.state)
        if term.bias_operator is not None:
            hdx = term.obs_space.add(hdx, term.bias_operator(dx.aux[term.aux_index]))
        self._output = term.obs_space.copy(hdx)

    def release_output(self) -> GeneralizedDepartures:
        if self._output is None:
            raise ConsistencyError(
                f"Observation time {self._time} was not reached by the model run"
            )
        output = GeneralizedDepartures(self._term.obs_space, self._output)
        self._output = None
        return output


class _JoADObserver(ADObserver):
    """Injects H^T forcing at the observation time."""

    def __init__(
        self,
        term: CostJo,
        forcing: GeneralizedDepartures,
        accumulator: ControlIncrement,
    ) -> None:
        self._term = term
        self._time = term.time
        self._forcing = forcing
        self._accumulator = accumulator
        self._done = False

    def initialize(self, begin: Any, end: Any) -> None:
        if self._time is None:
            self._time = end
        self._done = False

    def process(self, dx: ControlIncrement, time: Any) -> ControlIncrement:
        if self._done or time != self._time:
            return dx
        term = self._term
        values = self._forcing.values
        state_space = dx.space.state_space
        dx.state = state_space.axpy(1.0, term.obs_operator.adjoint(values), dx.state)
        if term.bias_operator is not None:
            i = term.aux_index
            aux_space = self._accumulator.space.aux_spaces[i]
            self._accumulator.aux[i] = aux_space.axpy(
                1.0, term.bias_operator.adjoint(values), self._accumulator.aux[i]
            )
        self._done = True
        return dx

    def finalize(self) -> None:
        if not self._done:
            raise ConsistencyError(
                f"Observation time {self._time} was not reached by the adjoint run"
            )


class CostJo(CostTerm):
    """
    Observation term Jo = 1/2 (H dx + d)^T R^-1 (H dx + d) for the first-guess
    departures d = H(x_k) - y of one observing system at one time.
    """

    def __init__(
        self,
        obs_space: HilbertSpace,
        departures: Vector,
        covariance: LinearOperator,
        obs_operator: LinearOperator,
        /,
        *,
        time: Any = None,
        inverse_covariance: Optional[LinearOperator] = None,
        aux_index: Optional[int] = None,
        bias_operator: Optional[LinearOperator] = None,
    ) -> None:
        """
        Args:
            obs_space (HilbertSpace): The observation space.
            departures: First-guess departures H(x_k) - y.
            covariance (LinearOperator): Observation error covariance R.
            obs_operator (LinearOperator): Linearized observation operator
                from the state space to the observation space.
            time: Observation time. The end of the window when None.
            inverse_covariance (LinearOperator | None): R^-1. Taken from
                covariance.inverse when not given.
            aux_index (int | None): Index of the auxiliary control used for
                the observation bias.
            bias_operator (LinearOperator | None): Maps the auxiliary control
                into the observation space.
        """
        if obs_operator.codomain != obs_space:
            raise ValueError("Observation operator does not map into obs_space")
        if covariance.domain != obs_space:
            raise ValueError("Covariance does not act on obs_space")
        if (aux_index is None) != (bias_operator is None):
            raise ValueError("aux_index and bias_operator must be given together")
        self._obs_space = obs_space
        self._departures = departures
        self._r = covariance
        self._rinv = _inverse_of(covariance, inverse_covariance)
        self._obs_operator = obs_operator
        self._time = time
        self._aux_index = aux_index
        self._bias_operator = bias_operator

    @property
    def obs_space(self) -> HilbertSpace:
        """The observation space."""
        return self._obs_space

    @property
    def obs_operator(self) -> LinearOperator:
        return self._obs_operator

    @property
    def bias_operator(self) -> Optional[LinearOperator]:
        return self._bias_operator

    @property
    def aux_index(self) -> Optional[int]:
        return self._aux_index

    @property
    def time(self) -> Any:
        """The observation time, None meaning the end of the window."""
        return self._time

    def set_departures(self, departures: Vector) -> None:
        """Replaces the first-guess departures, for example after an outer loop."""
        self._departures = departures

    def setup_tl(self, dx: ControlIncrement) -> TLObserver:
        return _JoTLObserver(self)

    def setup_ad(
        self, forcing: GeneralizedDepartures, accumulator: ControlIncrement
    ) -> ADObserver:
        return _JoADObserver(self, forcing, accumulator)

    def multiply_co_inv(self, dy: GeneralizedDepartures) -> GeneralizedDepartures:
        return GeneralizedDepartures(
            self._obs_space, self._obs_space.copy(self._rinv(dy.values))
        )

    def multiply_covar(self, dy: GeneralizedDepartures) -> GeneralizedDepartures:
        return GeneralizedDepartures(
            self._obs_space, self._obs_space.copy(self._r(dy.values))
        )

    def new_dual_vector(self) -> GeneralizedDepartures:
        return GeneralizedDepartures(self._obs_space)

    def new_gradient_fg(self) -> GeneralizedDepartures:
        return GeneralizedDepartures(
            self._obs_space, self._obs_space.copy(self._rinv(self._departures))
        )
