"""
Ensemble linearization: forming rescaled perturbations from ensemble members
for sampling flow-dependent covariances.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .config import EnsembleConfig
from .exceptions import ConfigurationError, ConsistencyError
from .hilbert_space import HilbertSpace, Vector
from .variable_change import LinearVariableChange


logger = logging.getLogger(__name__)


@dataclass
class State:
    """
    A model state as seen by the ensemble code.

    Attributes:
        values: The state, an element of the ensemble's increment space.
        valid_time: The time the state is valid at.
    """

    values: Vector
    valid_time: Any


Reader = Callable[[Any], State]


def _as_ensemble_config(config: Union[EnsembleConfig, Mapping]) -> EnsembleConfig:
    if isinstance(config, EnsembleConfig):
        return config
    return EnsembleConfig.from_dict(config)


class StateEnsemble:
    """
    An ordered collection of ensemble member states.
    """

    def __init__(self, space: HilbertSpace, states: Sequence[State]) -> None:
        """
        Args:
            space (HilbertSpace): The space the member values live in.
            states ([State]): The members.
        """
        self._space = space
        self._states = list(states)

    @staticmethod
    def from_config(
        space: HilbertSpace,
        config: Union[EnsembleConfig, Mapping],
        reader: Reader,
    ) -> StateEnsemble:
        """
        Reads the members described by the configuration.

        Args:
            space (HilbertSpace): The space the member values live in.
            config (EnsembleConfig | Mapping): Member count and descriptors.
            reader (callable): Returns the State for a descriptor.

        Raises:
            ConfigurationError: If the number of descriptors does not match
                the number of members.
        """
        options = _as_ensemble_config(config)
        if len(options.state) != options.members:
            raise ConfigurationError(
                f"Ensemble has {options.members} members but "
                f"{len(options.state)} state descriptors"
            )
        return StateEnsemble(space, [reader(descriptor) for descriptor in options.state])

    @property
    def space(self) -> HilbertSpace:
        return self._space

    def __len__(self) -> int:
        return len(self._states)

    def __getitem__(self, i: int) -> State:
        return self._states[i]

    def __iter__(self):
        return iter(self._states)

    def mean(self) -> State:
        """
        The ensemble mean.

        Raises:
            ConsistencyError: If the members have different valid times.
        """
        if len(self) == 0:
            raise ConfigurationError("Cannot form the mean of an empty ensemble")
        valid_time = self._states[0].valid_time
        for state in self._states:
            if state.valid_time != valid_time:
                raise ConsistencyError("Ensemble members have different valid times")
        values = self.space.sample_expectation([state.values for state in self._states])
        return State(values, valid_time)


class Ensemble:
    """
    Rescaled ensemble perturbations, 0-indexed.

    Before linearize is called the ensemble holds no perturbations.
    """

    def __init__(
        self,
        valid_time: Any,
        config: Union[EnsembleConfig, Mapping],
        space: HilbertSpace,
        reader: Reader,
    ) -> None:
        """
        Args:
            valid_time: Valid time expected of every member.
            config (EnsembleConfig | Mapping): Member count and descriptors.
            space (HilbertSpace): The space of the perturbations, at the
                ensemble resolution.
            reader (callable): Returns the State for a member descriptor.
        """
        self._valid_time = valid_time
        self._config = _as_ensemble_config(config)
        self._space = space
        self._reader = reader
        self._perturbations: List[Vector] = []

    @property
    def valid_time(self) -> Any:
        return self._valid_time

    @property
    def space(self) -> HilbertSpace:
        return self._space

    @property
    def size(self) -> int:
        """The configured number of members."""
        return self._config.members

    @property
    def variables(self) -> Optional[Sequence[str]]:
        return self._config.variables

    def __len__(self) -> int:
        return len(self._perturbations)

    def __getitem__(self, i: int) -> Vector:
        return self._perturbations[i]

    @property
    def perturbations(self) -> List[Vector]:
        return list(self._perturbations)

    def _read_members(self) -> StateEnsemble:
        members = StateEnsemble.from_config(self.space, self._config, self._reader)
        for i, state in enumerate(members):
            if state.valid_time != self.valid_time:
                raise ConsistencyError(
                    f"Member {i} is valid at {state.valid_time}, "
                    f"expected {self.valid_time}"
                )
        return members

    def linearize(
        self,
        background: State,
        /,
        *,
        interpolate: Optional[Callable[[Vector], Vector]] = None,
        balance: Optional[LinearVariableChange] = None,
    ) -> None:
        """
        Forms the perturbations, replacing any previous ones.

        Without a balance operator the perturbations are taken about the
        background and re-centred on the ensemble mean. With one they are
        taken about the ensemble mean and passed through the inverse of the
        balance operator. Both are scaled by 1/sqrt(R-1).

        Args:
            background (State): The background state.
            interpolate (callable | None): Maps the background values to the
                ensemble resolution.
            balance (LinearVariableChange | None): Balance operator.

        Raises:
            ConsistencyError: If the background or a member is not valid at
                the ensemble valid time.
            ConfigurationError: If the descriptors do not match the member
                count or there are fewer than two members.
        """
        if background.valid_time != self.valid_time:
            raise ConsistencyError(
                f"Background is valid at {background.valid_time}, "
                f"expected {self.valid_time}"
            )
        if self.size < 2:
            raise ConfigurationError("At least two ensemble members are required")

        members = self._read_members()
        space = self.space
        scale = 1.0 / np.sqrt(self.size - 1)
        mean = members.mean().values

        perturbations = []
        if balance is None:
            xb = background.values if interpolate is None else interpolate(background.values)
            shift = space.subtract(xb, mean)
            for state in members:
                p = space.subtract(state.values, xb)
                p = space.add(p, shift)
                perturbations.append(space.multiply(scale, p))
        else:
            for state in members:
                p = balance.multiply_inverse(space.subtract(state.values, mean))
                perturbations.append(space.multiply(scale, p))

        self._perturbations = perturbations
        logger.info(
            "Ensemble linearized: %d perturbations, %s",
            len(perturbations),
            "mean-centred with balance" if balance is not None else "background-centred",
        )

    def variance(self) -> np.ndarray:
        """
        Per-component variance sampled by the perturbations, the diagonal
        of sum_m p_m p_m^T.
        """
        if len(self) == 0:
            raise ValueError("The ensemble has not been linearized")
        components = np.array([self.space.to_components(p) for p in self._perturbations])
        return np.sum(components**2, axis=0)
