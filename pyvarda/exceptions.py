"""
Exceptions raised by the minimization core.

Numerical non-convergence is deliberately absent: solvers return their best
estimate together with the achieved reduction and leave the decision to the
caller.
"""


class PyvardaError(Exception):
    """Base class for errors raised by pyvarda."""


class ConfigurationError(PyvardaError, ValueError):
    """An option is missing, malformed or inconsistent with the inputs."""


class ConsistencyError(PyvardaError, ValueError):
    """
    Objects that must agree do not, e.g. a member read at the wrong valid
    time or two vectors of different structure combined.
    """
