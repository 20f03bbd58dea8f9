"""
Self-test harness: adjoint-consistency tests and checks of covariances
and changes of variable.
"""

from .adjoint import (
    AdjointTestReport,
    log_adjoint_test,
    check_operator_symmetry,
)
from .covariance import ErrorCovarianceChecks
from .variable_change import LinearVariableChangeChecks
