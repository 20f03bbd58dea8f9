"""
Configuration objects.

Options arrive as plain mappings (already parsed from YAML or JSON) and are
converted into frozen dataclasses. Unknown keys are ignored.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .exceptions import ConfigurationError


def _lookup(options: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    # First spelling present wins.
    for key in keys:
        if key in options:
            return options[key]
    return default


def _require(options: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in options:
            return options[key]
    raise ConfigurationError(f"Missing required option '{keys[0]}'")


@dataclass(frozen=True)
class MinimizerConfig:
    """
    Options of one inner-loop minimization.

    Attributes:
        ninner: Maximum number of inner iterations.
        gradient_norm_reduction: Target reduction of the residual norm.
        online_adjoint_test: Run the adjoint test on every Hessian product.
        algorithm: Name of the minimizer.
        restart: Restart length of the Krylov solver, if any.
        memory: Number of search directions recycled across solves.
    """

    ninner: int
    gradient_norm_reduction: float = 1e-10
    online_adjoint_test: bool = False
    algorithm: str = "SaddlePoint"
    restart: Optional[int] = None
    memory: int = 0

    def __post_init__(self):
        if self.ninner <= 0:
            raise ConfigurationError("ninner must be positive")
        if self.gradient_norm_reduction <= 0:
            raise ConfigurationError("gradient_norm_reduction must be positive")
        if self.restart is not None and self.restart <= 0:
            raise ConfigurationError("restart must be positive")
        if self.memory < 0:
            raise ConfigurationError("memory must be non-negative")

    @staticmethod
    def from_dict(options: Mapping[str, Any]) -> MinimizerConfig:
        """Builds the configuration from a mapping of options."""
        online = _lookup(options, "online_adjoint_test")
        if online is None:
            diagnostics = _lookup(options, "online diagnostics", default={})
            online = _lookup(diagnostics, "online adj test", default=False)
        restart = _lookup(options, "restart")
        return MinimizerConfig(
            ninner=int(_require(options, "ninner")),
            gradient_norm_reduction=float(
                _lookup(
                    options,
                    "gradient_norm_reduction",
                    "gradient norm reduction",
                    default=1e-10,
                )
            ),
            online_adjoint_test=bool(online),
            algorithm=str(_lookup(options, "algorithm", default="SaddlePoint")),
            restart=None if restart is None else int(restart),
            memory=int(_lookup(options, "memory", default=0)),
        )


@dataclass(frozen=True)
class EnsembleConfig:
    """
    Options describing an ensemble.

    Attributes:
        members: Number of members.
        state: One source descriptor per member, handed to the reader.
        variables: Names of the variables, if restricted.
    """

    members: int
    state: Tuple[Any, ...] = ()
    variables: Optional[Tuple[str, ...]] = None

    @staticmethod
    def from_dict(options: Mapping[str, Any]) -> EnsembleConfig:
        state = _require(options, "state")
        variables = _lookup(options, "variables")
        return EnsembleConfig(
            members=int(_require(options, "members")),
            state=tuple(state),
            variables=None if variables is None else tuple(variables),
        )


@dataclass(frozen=True)
class CheckConfig:
    """Options read by the self-test harness."""

    tolerance: float = 1e-10
    tolerance_inverse: float = 1e-10
    test_inverse: bool = True

    def __post_init__(self):
        if self.tolerance < 0 or self.tolerance_inverse < 0:
            raise ValueError("Tolerances must be non-negative")

    @staticmethod
    def from_dict(options: Mapping[str, Any]) -> CheckConfig:
        return CheckConfig(
            tolerance=float(_lookup(options, "tolerance", default=1e-10)),
            tolerance_inverse=float(
                _lookup(options, "tolerance_inverse", "toleranceInverse", default=1e-10)
            ),
            test_inverse=bool(
                _lookup(options, "test_inverse", "testinverse", default=True)
            ),
        )


def as_minimizer_config(config: Any) -> MinimizerConfig:
    """Accepts a MinimizerConfig or a mapping of options."""
    if isinstance(config, MinimizerConfig):
        return config
    if isinstance(config, Mapping):
        return MinimizerConfig.from_dict(config)
    raise ConfigurationError(f"Cannot read minimizer options from {type(config)}")
